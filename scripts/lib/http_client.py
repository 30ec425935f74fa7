"""
Shared HTTP request execution with rate limit handling and retry logic.

All external services (Alchemy, DexScreener, JSON-RPC wallet bridges) are
reached through subclasses of RetryingHTTPClient so that 429 responses,
server errors and transport failures are retried the same way everywhere.
"""

import random
import time
from typing import Callable, Type

import requests

from .errors import NetworkError


# Retry configuration
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_DELAY = 32.0  # seconds
DEFAULT_JITTER = 0.1  # ±10%
DEFAULT_TIMEOUT = 30.0  # seconds


class RetryingHTTPClient:
    """
    Base client executing requests with exponential backoff.

    Subclasses set ``error_class`` and ``rate_limit_error_class`` to the
    exception types raised once retries are exhausted.
    """

    error_class: Type[NetworkError] = NetworkError
    rate_limit_error_class: Type[NetworkError] = NetworkError

    def __init__(
        self,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            initial_delay: Initial delay in seconds for retry backoff
            backoff_multiplier: Multiplier for exponential backoff
            max_retries: Maximum number of retry attempts
            max_delay: Maximum delay cap in seconds
            jitter: Jitter factor (±percentage) to randomize delays
            timeout: Per-request timeout in seconds
        """
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_retries = max_retries
        self.max_delay = max_delay
        self.jitter = jitter
        self.timeout = timeout
        self.session = requests.Session()

    def _sanitize_error_message(self, message: str) -> str:
        """Hook for subclasses that must scrub credentials from messages."""
        return message

    def _apply_jitter(self, delay: float) -> float:
        """Apply random jitter to a delay value."""
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)

    def _sleep_before_retry(self, delay: float) -> float:
        """Sleep for the (capped, jittered) delay and return the next delay."""
        time.sleep(self._apply_jitter(min(delay, self.max_delay)))
        return delay * self.backoff_multiplier

    def _execute_with_retry(
        self,
        request_func: Callable[[], requests.Response],
    ) -> requests.Response:
        """
        Execute a request function with retry logic for rate limits and server errors.

        Args:
            request_func: A callable that returns a requests.Response

        Returns:
            The successful response

        Raises:
            NetworkError subclass: For API errors after retries exhausted
        """
        delay = self.initial_delay

        for attempt in range(self.max_retries + 1):
            try:
                response = request_func()

                if response.status_code == 429:
                    if attempt < self.max_retries:
                        delay = self._sleep_before_retry(delay)
                        continue
                    raise self.rate_limit_error_class(
                        "Rate limit exceeded and max retries reached",
                        status_code=429,
                    )

                if response.status_code == 401:
                    raise self.error_class("Invalid API key", status_code=401)

                if response.status_code >= 500:
                    if attempt < self.max_retries:
                        delay = self._sleep_before_retry(delay)
                        continue
                    raise self.error_class(
                        f"Server error: {response.status_code}",
                        status_code=response.status_code,
                    )

                if response.status_code >= 400:
                    raise self.error_class(
                        f"Client error: {response.status_code}",
                        status_code=response.status_code,
                    )

                return response

            except requests.RequestException as e:
                if attempt < self.max_retries:
                    delay = self._sleep_before_retry(delay)
                    continue
                sanitized_msg = self._sanitize_error_message(str(e))
                raise self.error_class(f"Request failed: {sanitized_msg}") from e

        raise self.error_class("Max retries exceeded")

    def _parse_json(self, response: requests.Response):
        """Decode a JSON body, mapping malformed payloads to the client's error."""
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(
                f"Invalid JSON response: {e}",
                status_code=response.status_code,
            ) from e
