"""
Data models for token jar monitoring.

This module defines the records flowing through the aggregation pipeline
(balances, metadata, enriched tokens, the jar snapshot) and the tagged
result type each pipeline stage reports.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Generic, List, TypeVar, Union


T = TypeVar("T")

# Fallback metadata when a contract read fails
UNKNOWN_SYMBOL = "???"
DEFAULT_DECIMALS = 18

# Symbol of Uniswap V2 LP share tokens, excluded from valuation
LP_SHARE_SYMBOL = "UNI-V2"

# CSV column order for output
CSV_COLUMNS = [
    "symbol",
    "token_address",
    "balance",
    "price_usd",
    "value_usd",
]


def normalize_address(address: str) -> str:
    """Normalize an address or price identifier for comparisons and map keys."""
    return address.strip().lower()


@dataclass(frozen=True)
class TokenBalanceRecord:
    """A nonzero ERC-20 balance held by the jar."""

    token_address: str  # Lowercase
    raw_balance: int  # Base units


@dataclass(frozen=True)
class TokenMetadata:
    """Symbol and decimals of a token contract."""

    token_address: str
    symbol: str = UNKNOWN_SYMBOL
    decimals: int = DEFAULT_DECIMALS


@dataclass(frozen=True)
class EnrichedToken:
    """
    A balance joined with its metadata and USD price.

    ``human_balance`` is exact (raw balance shifted by ``decimals`` digits);
    ``usd_value`` is 0 when no price is known.
    """

    token_address: str
    symbol: str
    decimals: int
    raw_balance: int
    human_balance: Decimal
    usd_price: float
    usd_value: float
    price_available: bool


@dataclass(frozen=True)
class JarSnapshot:
    """
    Valuation of the jar at one refresh cycle.

    This is the only structure the presentation layer consumes.
    """

    tokens: List[EnrichedToken]
    total_value: float
    burn_price: float
    burn_quantity: int
    burn_cost: float
    net_profit: float

    @property
    def is_profitable(self) -> bool:
        """Strictly positive net profit; break-even is not profitable."""
        return self.net_profit > 0

    @property
    def token_addresses(self) -> List[str]:
        return [token.token_address for token in self.tokens]


@dataclass(frozen=True)
class Pending:
    """Stage has not produced a result for its current parameters yet."""

    @property
    def is_pending(self) -> bool:
        return True


@dataclass(frozen=True)
class Succeeded(Generic[T]):
    """Stage finished with a value."""

    value: T

    @property
    def is_pending(self) -> bool:
        return False


@dataclass(frozen=True)
class Failed:
    """Stage failed; ``error`` is the exception raised by the fetch."""

    error: Exception = field(compare=False)

    @property
    def is_pending(self) -> bool:
        return False


StageResult = Union[Pending, Succeeded[Any], Failed]
