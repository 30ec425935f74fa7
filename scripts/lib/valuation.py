"""
Valuation of the jar holdings against the cost of a burn.

Everything here is a pure function of its inputs.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import MissingPriceError
from .models import (
    LP_SHARE_SYMBOL,
    EnrichedToken,
    JarSnapshot,
    TokenBalanceRecord,
    TokenMetadata,
    normalize_address,
)
from .prices import lookup_price


def human_balance(raw_balance: int, decimals: int) -> Decimal:
    """
    Shift a raw integer balance by ``decimals`` decimal digits, exactly.

    Examples:
        human_balance(1000000, 6) -> Decimal("1")
    """
    if decimals < 0:
        raise ValueError(f"Decimals must be non-negative, got {decimals}")
    # String construction is exact; arithmetic would round to context precision
    return Decimal(f"{raw_balance}e-{decimals}")


def is_lp_share(symbol: str) -> bool:
    return symbol.strip().upper() == LP_SHARE_SYMBOL


def _dedupe_balances(balances: Iterable[TokenBalanceRecord]) -> List[TokenBalanceRecord]:
    """Collapse duplicates by address; last record wins, first position is kept."""
    by_address: "OrderedDict[str, TokenBalanceRecord]" = OrderedDict()
    for record in balances:
        by_address[normalize_address(record.token_address)] = record
    return list(by_address.values())


def enrich_token(
    record: TokenBalanceRecord,
    metadata: Mapping[str, TokenMetadata],
    prices: Mapping[str, float],
    price_ids: Optional[Mapping[str, str]] = None,
) -> EnrichedToken:
    """Join one balance with its metadata and price."""
    address = normalize_address(record.token_address)
    meta = metadata.get(address) or TokenMetadata(token_address=address)
    price_id = (price_ids or {}).get(address, address)

    try:
        price = lookup_price(prices, price_id)
    except MissingPriceError:
        price = 0.0

    amount = human_balance(record.raw_balance, meta.decimals)
    return EnrichedToken(
        token_address=address,
        symbol=meta.symbol,
        decimals=meta.decimals,
        raw_balance=record.raw_balance,
        human_balance=amount,
        usd_price=price,
        usd_value=float(amount) * price,
        price_available=price > 0,
    )


def valuate(
    balances: Iterable[TokenBalanceRecord],
    metadata: Mapping[str, TokenMetadata],
    prices: Mapping[str, float],
    burn_price: float,
    burn_quantity: int,
    price_ids: Optional[Mapping[str, str]] = None,
) -> JarSnapshot:
    """
    Value the jar and compare it to the cost of burning.

    Args:
        balances: Discovered balances, in discovery order
        metadata: Map of lowercase address -> TokenMetadata
        prices: Map of normalized identifier -> USD price
        burn_price: USD price of the burn token
        burn_quantity: Number of burn tokens required
        price_ids: Optional map of address -> price-service identifier for
            tokens priced under a different id than their address

    Returns:
        JarSnapshot with tokens sorted by USD value, highest first
    """
    normalized_ids: Dict[str, str] = {
        normalize_address(address): normalize_address(identifier)
        for address, identifier in (price_ids or {}).items()
    }

    tokens: List[EnrichedToken] = []
    for record in _dedupe_balances(balances):
        token = enrich_token(record, metadata, prices, normalized_ids)
        if is_lp_share(token.symbol):
            continue
        tokens.append(token)

    total_value = 0.0
    for token in tokens:
        total_value += token.usd_value

    burn_cost = burn_quantity * burn_price

    return JarSnapshot(
        tokens=sorted(tokens, key=lambda token: token.usd_value, reverse=True),
        total_value=total_value,
        burn_price=burn_price,
        burn_quantity=burn_quantity,
        burn_cost=burn_cost,
        net_profit=total_value - burn_cost,
    )
