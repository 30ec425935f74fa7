"""
Alchemy API client with automatic rate limit handling and retry logic.

This module provides the balance discovery (``alchemy_getTokenBalances``,
paginated) and the batched read-only contract calls (``eth_call`` sent as a
JSON-RPC batch) used by the jar monitoring pipeline.
"""

import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .errors import NetworkError
from .http_client import RetryingHTTPClient
from .models import TokenBalanceRecord, normalize_address


# The jar lives on Ethereum mainnet
ALCHEMY_ENDPOINT = "eth-mainnet.g.alchemy.com"

# Maximum eth_call entries sent in one JSON-RPC batch request
MAX_BATCH_SIZE = 100


@dataclass(frozen=True)
class ContractCall:
    """A read-only call: target contract plus ABI-encoded call data."""

    address: str
    data: str  # 0x-prefixed selector + encoded arguments


@dataclass(frozen=True)
class CallResult:
    """Outcome of one ContractCall. ``result`` is the raw return data on success."""

    success: bool
    result: Optional[bytes] = None
    error: Optional[str] = None


class AlchemyAPIError(NetworkError):
    """Exception raised for Alchemy API errors."""

    pass


class AlchemyRateLimitError(AlchemyAPIError):
    """Exception raised when rate limit is exceeded and retries are exhausted."""

    pass


def parse_token_balance(value: Union[str, int, None]) -> int:
    """
    Parse a balance as returned by the indexing service.

    Accepts 0x-prefixed hex strings of any width (including the 32-byte
    zero encoding and the bare "0x") as well as plain integers.

    Raises:
        ValueError: If the value is not a valid unsigned integer
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid token balance: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text in ("", "0x"):
            return 0
        amount = int(text, 16) if text.startswith("0x") else int(text)
    else:
        raise ValueError(f"Unsupported token balance type: {value!r}")
    if amount < 0:
        raise ValueError(f"Negative token balance: {value!r}")
    return amount


class AlchemyClient(RetryingHTTPClient):
    """
    Alchemy JSON-RPC client with automatic 429 retry handling.

    Handles:
    - HTTP 429 rate limit retries with exponential backoff
    - Pagination for token balance discovery
    - Batched eth_call requests for contract reads
    - Rejection of malformed response shapes as AlchemyAPIError
    """

    error_class = AlchemyAPIError
    rate_limit_error_class = AlchemyRateLimitError

    def __init__(self, api_key: str, **retry_options: Any):
        """
        Initialize the Alchemy client.

        Args:
            api_key: Alchemy API key
            **retry_options: Retry settings passed to RetryingHTTPClient
        """
        super().__init__(**retry_options)
        self.api_key = api_key
        self.base_url = f"https://{ALCHEMY_ENDPOINT}/v2/{api_key}"

    def _sanitize_error_message(self, message: str) -> str:
        """Remove API key from error messages to prevent credential leakage."""
        return message.replace(self.api_key, "[REDACTED]")

    @staticmethod
    def _error_message(error: Any) -> str:
        if isinstance(error, dict):
            return str(error.get("message", error))
        return str(error)

    @staticmethod
    def _error_code(error: Any) -> Optional[int]:
        return error.get("code") if isinstance(error, dict) else None

    def _request(self, method: str, params: Any, request_id: int = 1) -> Any:
        """
        Make a JSON-RPC request with automatic 429 retry and exponential backoff.

        Args:
            method: JSON-RPC method name
            params: Method parameters
            request_id: JSON-RPC request ID

        Returns:
            The 'result' field from the JSON-RPC response

        Raises:
            AlchemyAPIError: For API errors
            AlchemyRateLimitError: When rate limit retries are exhausted
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }

        response = self._execute_with_retry(
            lambda: self.session.post(self.base_url, json=payload, timeout=self.timeout)
        )
        data = self._parse_json(response)

        if not isinstance(data, dict):
            raise AlchemyAPIError("Unexpected JSON-RPC response shape")

        if "error" in data:
            error = data["error"]
            raise AlchemyAPIError(
                f"API error: {self._error_message(error)}",
                status_code=self._error_code(error),
            )

        return data.get("result")

    def _request_batch(self, payloads: List[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
        """
        Send a JSON-RPC batch and index the responses by request id.

        Raises:
            AlchemyAPIError: If the batch as a whole is rejected
        """
        response = self._execute_with_retry(
            lambda: self.session.post(self.base_url, json=payloads, timeout=self.timeout)
        )
        data = self._parse_json(response)

        if isinstance(data, dict):
            error = data.get("error", {})
            raise AlchemyAPIError(
                f"Batch rejected: {self._error_message(error)}",
                status_code=self._error_code(error),
            )
        if not isinstance(data, list):
            raise AlchemyAPIError("Unexpected JSON-RPC batch response shape")

        return {item.get("id"): item for item in data if isinstance(item, dict)}

    def get_token_balances(self, address: str) -> List[TokenBalanceRecord]:
        """
        Get all nonzero ERC-20 token balances held by an address.

        Automatically paginates through all results. Zero balances are
        excluded whatever their encoding. Duplicates across pages are kept.

        Args:
            address: Account or contract address to inspect

        Returns:
            List of TokenBalanceRecord objects with lowercase token addresses
        """
        raw_entries: List[Dict[str, Any]] = []
        page_key: Optional[str] = None

        while True:
            params: List[Any] = [address, "erc20"]
            if page_key:
                params.append({"pageKey": page_key})

            result = self._request("alchemy_getTokenBalances", params)
            if not isinstance(result, dict):
                raise AlchemyAPIError(f"Unexpected token balances result: {result!r}")

            entries = result.get("tokenBalances") or []
            if not isinstance(entries, list):
                raise AlchemyAPIError(f"Unexpected tokenBalances value: {entries!r}")
            raw_entries.extend(entries)

            page_key = result.get("pageKey")
            if not page_key:
                break

        records: List[TokenBalanceRecord] = []
        for entry in raw_entries:
            if not isinstance(entry, dict):
                print(f"[balances] Skipping malformed entry {entry!r}", file=sys.stderr)
                continue
            contract = entry.get("contractAddress")
            if not contract or not isinstance(contract, str):
                continue
            try:
                balance = parse_token_balance(entry.get("tokenBalance"))
            except ValueError:
                print(
                    f"[balances] Skipping {contract}: unparseable balance "
                    f"{entry.get('tokenBalance')!r}",
                    file=sys.stderr,
                )
                continue
            if balance > 0:
                records.append(
                    TokenBalanceRecord(token_address=normalize_address(contract), raw_balance=balance)
                )

        return records

    def call_many(self, calls: List[ContractCall], block: str = "latest") -> List[CallResult]:
        """
        Execute read-only contract calls as JSON-RPC batches.

        Results are returned in the same order as ``calls``. A reverted or
        missing entry yields a failed CallResult without affecting the
        others.

        Args:
            calls: Contract calls to execute
            block: Block tag to read state at

        Returns:
            One CallResult per call

        Raises:
            AlchemyAPIError: If a batch request as a whole fails
        """
        results: List[CallResult] = []

        for start in range(0, len(calls), MAX_BATCH_SIZE):
            batch = calls[start : start + MAX_BATCH_SIZE]
            payloads = [
                {
                    "jsonrpc": "2.0",
                    "method": "eth_call",
                    "params": [{"to": call.address, "data": call.data}, block],
                    "id": index,
                }
                for index, call in enumerate(batch)
            ]

            responses_by_id = self._request_batch(payloads)

            for index in range(len(batch)):
                item = responses_by_id.get(index)
                if item is None:
                    results.append(CallResult(success=False, error="Missing response"))
                elif "error" in item:
                    error = item["error"]
                    message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                    results.append(CallResult(success=False, error=message))
                else:
                    results.append(self._to_call_result(item.get("result")))

        return results

    @staticmethod
    def _to_call_result(raw: Any) -> CallResult:
        """Convert a hex eth_call result into a CallResult."""
        if not isinstance(raw, str) or not raw.startswith("0x"):
            return CallResult(success=False, error=f"Unexpected result: {raw!r}")
        try:
            return CallResult(success=True, result=bytes.fromhex(raw[2:]))
        except ValueError:
            return CallResult(success=False, error=f"Invalid hex result: {raw!r}")
