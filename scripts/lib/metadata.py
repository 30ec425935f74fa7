"""
Token metadata resolution via batched read-only contract calls.

Symbol and decimals are read with ``symbol()`` and ``decimals()`` calls,
two per token, submitted as one batch. Each field degrades to a placeholder
on its own when its call reverts or cannot be decoded.
"""

import sys
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .alchemy_client import CallResult, ContractCall
from .errors import DegradedResultError, NetworkError, PartialDecodeError
from .models import TokenMetadata, normalize_address


# bytes4(keccak256(signature))
SYMBOL_SELECTOR = "0x95d89b41"  # symbol()
DECIMALS_SELECTOR = "0x313ce567"  # decimals()

MAX_DECIMALS = 255  # decimals() returns uint8


class ContractReader(Protocol):
    """Anything that can execute a batch of read-only calls in order."""

    def call_many(self, calls: List[ContractCall]) -> List[CallResult]: ...


def decode_symbol(data: bytes) -> str:
    """
    Decode a ``symbol()`` return value.

    Handles the standard ABI ``string`` return as well as the ``bytes32``
    return used by some early tokens (e.g. MKR).

    Raises:
        PartialDecodeError: If the data is neither
    """
    if len(data) == 32:
        # bytes32 symbols are right-padded with zeros
        try:
            symbol = data.rstrip(b"\x00").decode("utf-8")
        except UnicodeDecodeError as e:
            raise PartialDecodeError(f"Undecodable bytes32 symbol: {data.hex()}") from e
    else:
        try:
            (symbol,) = decode(["string"], data)
        except (DecodingError, ValueError) as e:
            raise PartialDecodeError(f"Undecodable symbol: {e}") from e

    symbol = symbol.strip()
    if not symbol:
        raise PartialDecodeError("Empty symbol")
    return symbol


def decode_decimals(data: bytes) -> int:
    """
    Decode a ``decimals()`` return value.

    Raises:
        PartialDecodeError: If the data is not a uint8-range integer
    """
    try:
        (decimals,) = decode(["uint256"], data)
    except (DecodingError, ValueError) as e:
        raise PartialDecodeError(f"Undecodable decimals: {e}") from e

    if decimals > MAX_DECIMALS:
        raise PartialDecodeError(f"Decimals out of range: {decimals}")
    return decimals


class MetadataResolver:
    """
    Resolves symbol and decimals for token addresses.

    An optional static table of well-known tokens is consulted before any
    live call. Known tokens are skipped entirely unless ``verify_known`` is
    set, in which case they are queried as well and the live result wins.
    """

    def __init__(
        self,
        reader: ContractReader,
        known_tokens: Optional[Mapping[str, Tuple[str, int]]] = None,
        verify_known: bool = False,
    ):
        """
        Args:
            reader: Contract-read collaborator (e.g. AlchemyClient)
            known_tokens: Map of address -> (symbol, decimals)
            verify_known: Query known tokens live too
        """
        self.reader = reader
        self.known_tokens = {
            normalize_address(address): info for address, info in (known_tokens or {}).items()
        }
        self.verify_known = verify_known

    def _fallback(self, address: str) -> TokenMetadata:
        if address in self.known_tokens:
            symbol, decimals = self.known_tokens[address]
            return TokenMetadata(token_address=address, symbol=symbol, decimals=decimals)
        return TokenMetadata(token_address=address)

    def resolve(self, addresses: List[str], strict: bool = False) -> Dict[str, TokenMetadata]:
        """
        Resolve metadata for every address.

        Args:
            addresses: Token addresses (any case)
            strict: Raise instead of returning when the whole batch failed

        Returns:
            Map of lowercase address -> TokenMetadata

        Raises:
            DegradedResultError: Only with ``strict``, when the contract reads
                failed as a whole. The fallback map is attached to the error.
        """
        unique: List[str] = []
        for address in addresses:
            normalized = normalize_address(address)
            if normalized not in unique:
                unique.append(normalized)

        metadata = {address: self._fallback(address) for address in unique}

        to_query = [
            address
            for address in unique
            if self.verify_known or address not in self.known_tokens
        ]
        if not to_query:
            return metadata

        calls: List[ContractCall] = []
        for address in to_query:
            calls.append(ContractCall(address=address, data=SYMBOL_SELECTOR))
            calls.append(ContractCall(address=address, data=DECIMALS_SELECTOR))

        try:
            results = self.reader.call_many(calls)
        except NetworkError as e:
            print(
                f"[metadata] Contract reads failed, using fallback metadata "
                f"for {len(to_query)} token(s): {e}",
                file=sys.stderr,
            )
            if strict:
                raise DegradedResultError(
                    f"Contract reads failed: {e}", fallback=metadata, status_code=e.status_code
                ) from e
            return metadata

        failed_fields = 0
        for index, address in enumerate(to_query):
            fallback = metadata[address]
            symbol_result = results[index * 2] if index * 2 < len(results) else None
            decimals_result = results[index * 2 + 1] if index * 2 + 1 < len(results) else None

            symbol = fallback.symbol
            decimals = fallback.decimals

            try:
                symbol = decode_symbol(self._require_success(symbol_result))
            except PartialDecodeError:
                failed_fields += 1

            try:
                decimals = decode_decimals(self._require_success(decimals_result))
            except PartialDecodeError:
                failed_fields += 1

            metadata[address] = TokenMetadata(token_address=address, symbol=symbol, decimals=decimals)

        if failed_fields > 0:
            print(f"[metadata] {failed_fields} field(s) fell back to defaults", file=sys.stderr)

        return metadata

    @staticmethod
    def _require_success(result: Optional[CallResult]) -> bytes:
        if result is None:
            raise PartialDecodeError("No result for call")
        if not result.success or result.result is None:
            raise PartialDecodeError(result.error or "Call failed")
        return result.result
