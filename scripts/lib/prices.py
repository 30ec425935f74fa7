"""
USD price resolution with chunked, concurrent DexScreener requests.

Identifiers are split into chunks no larger than the service's batch limit
and fetched in parallel. A failed chunk only loses the prices of its own
identifiers.
"""

import math
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .dexscreener_client import MAX_ADDRESSES_PER_REQUEST, DexScreenerClient
from .errors import MissingPriceError, NetworkError
from .models import normalize_address


DEFAULT_MAX_WORKERS = 4


def chunked(items: List[str], size: int) -> List[List[str]]:
    """
    Split a list into consecutive chunks of at most ``size`` items.

    Examples:
        chunked(["a", "b", "c"], 2) -> [["a", "b"], ["c"]]
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [items[start : start + size] for start in range(0, len(items), size)]


def parse_price(value: Any) -> Optional[float]:
    """Parse a USD price string/number. Returns None for unusable values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def pairs_to_prices(pairs: Iterable[Dict[str, Any]], requested: Iterable[str]) -> Dict[str, float]:
    """
    Map requested identifiers to the price of their first listed pair.

    DexScreener orders pairs by relevance, so the first pair seen for a base
    token wins and later pairs for the same token are ignored. Matching is
    case-insensitive; pairs for tokens that were not requested are dropped,
    as are malformed entries.
    """
    wanted = {normalize_address(identifier) for identifier in requested}
    prices: Dict[str, float] = {}

    for pair in pairs:
        if not isinstance(pair, dict):
            continue
        base_token = pair.get("baseToken")
        if not isinstance(base_token, dict):
            continue
        address = base_token.get("address")
        if not address or not isinstance(address, str):
            continue
        address = normalize_address(address)
        if address not in wanted or address in prices:
            continue
        price = parse_price(pair.get("priceUsd"))
        if price is not None:
            prices[address] = price

    return prices


def lookup_price(prices: Mapping[str, float], identifier: str) -> float:
    """
    Get the price for an identifier.

    Raises:
        MissingPriceError: If the identifier has no price
    """
    key = normalize_address(identifier)
    if key not in prices:
        raise MissingPriceError(key)
    return prices[key]


class PriceResolver:
    """Resolves USD unit prices for token identifiers."""

    def __init__(
        self,
        client: DexScreenerClient,
        chunk_size: int = MAX_ADDRESSES_PER_REQUEST,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        Args:
            client: DexScreener client
            chunk_size: Identifiers per request (capped at the service limit)
            max_workers: Concurrent chunk requests
        """
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.client = client
        self.chunk_size = min(chunk_size, MAX_ADDRESSES_PER_REQUEST)
        self.max_workers = max_workers

    def _fetch_chunk(self, chunk: List[str]) -> Dict[str, float]:
        try:
            pairs = self.client.get_token_pairs(chunk)
        except NetworkError as e:
            print(
                f"[prices] Failed to fetch prices for chunk of {len(chunk)} "
                f"starting at {chunk[0]}: {e}",
                file=sys.stderr,
            )
            return {}
        return pairs_to_prices(pairs, chunk)

    def resolve(self, identifiers: List[str]) -> Dict[str, float]:
        """
        Fetch prices for all identifiers. Never raises for service errors.

        Args:
            identifiers: Token addresses (any case, duplicates allowed)

        Returns:
            Map of normalized identifier -> USD price. Identifiers without a
            price are absent.
        """
        unique: List[str] = []
        seen = set()
        for identifier in identifiers:
            normalized = normalize_address(identifier)
            if normalized and normalized not in seen:
                seen.add(normalized)
                unique.append(normalized)

        if not unique:
            return {}

        chunks = chunked(unique, self.chunk_size)
        workers = max(1, min(self.max_workers, len(chunks)))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._fetch_chunk, chunk) for chunk in chunks]
            chunk_prices = [future.result() for future in futures]

        merged: Dict[str, float] = {}
        for prices in chunk_prices:
            for identifier, price in prices.items():
                if identifier not in merged:
                    merged[identifier] = price

        missing = len(unique) - len(merged)
        if missing > 0:
            print(f"[prices] No price found for {missing} of {len(unique)} token(s)", file=sys.stderr)

        return merged
