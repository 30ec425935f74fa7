"""
DexScreener API client.

DexScreener covers long-tail tokens that aggregated price feeds miss. Its
token endpoint accepts up to 30 comma-separated addresses per request and
returns trading pairs ordered by relevance.
"""

from typing import Any, Dict, List

from .errors import NetworkError
from .http_client import RetryingHTTPClient


DEXSCREENER_BASE_URL = "https://api.dexscreener.com/latest/dex/tokens"

# Documented maximum number of addresses per token request
MAX_ADDRESSES_PER_REQUEST = 30


class DexScreenerAPIError(NetworkError):
    """Exception raised for DexScreener API errors."""

    pass


class DexScreenerClient(RetryingHTTPClient):
    """Fetches trading pairs for batches of token addresses."""

    error_class = DexScreenerAPIError
    rate_limit_error_class = DexScreenerAPIError

    def __init__(self, base_url: str = DEXSCREENER_BASE_URL, **retry_options: Any):
        super().__init__(**retry_options)
        self.base_url = base_url.rstrip("/")

    def get_token_pairs(self, identifiers: List[str]) -> List[Dict[str, Any]]:
        """
        Get all trading pairs for up to 30 tokens.

        Args:
            identifiers: Token addresses to query

        Returns:
            The ``pairs`` list from the response (empty if none)

        Raises:
            ValueError: If more identifiers than the service accepts are given
            DexScreenerAPIError: For API errors after retries
        """
        if not identifiers:
            return []
        if len(identifiers) > MAX_ADDRESSES_PER_REQUEST:
            raise ValueError(
                f"At most {MAX_ADDRESSES_PER_REQUEST} identifiers per request, "
                f"got {len(identifiers)}"
            )

        url = f"{self.base_url}/{','.join(identifiers)}"
        response = self._execute_with_retry(lambda: self.session.get(url, timeout=self.timeout))
        data = self._parse_json(response)

        if not isinstance(data, dict):
            raise DexScreenerAPIError("Unexpected response shape")

        pairs = data.get("pairs") or []
        if not isinstance(pairs, list):
            raise DexScreenerAPIError(f"Unexpected pairs value: {pairs!r}")
        return pairs
