"""
Polling monitor tying the pipeline stages together.

The monitor owns one result slot per stage (balances, metadata, prices).
Balances are discovered first; metadata and prices are then fetched
concurrently for the discovered addresses. The jar is re-valued from
whatever each slot currently holds, so a failing stage degrades the
snapshot instead of blocking it.
"""

import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional

from .alchemy_client import AlchemyClient
from .cache import ResultCache, canonical_key
from .errors import MissingPriceError, NetworkError
from .metadata import MetadataResolver
from .models import (
    Failed,
    JarSnapshot,
    Pending,
    StageResult,
    Succeeded,
    TokenBalanceRecord,
    normalize_address,
)
from .prices import PriceResolver, lookup_price
from .valuation import valuate


def log(stage: str, message: str) -> None:
    """Log a message with stage prefix."""
    print(f"[{stage}] {message}", file=sys.stderr)


class StageSlot:
    """
    Result slot for one pipeline stage.

    The slot remembers the key of the most recent request. Completions for
    any other key are stale and are discarded. A failure keeps the last
    value obtained for the same key so valuation can continue with it.
    """

    def __init__(self, name: str, cache: ResultCache):
        self.name = name
        self.cache = cache
        self.key: Optional[Hashable] = None
        self.result: StageResult = Pending()
        self._last_value: Any = None
        self._lock = threading.Lock()

    def begin(self, key: Hashable) -> None:
        """Record a new request. Changing parameters resets the slot to Pending."""
        with self._lock:
            if key != self.key:
                self.key = key
                self.result = Pending()
                self._last_value = None

    def complete(self, key: Hashable, value: Any, from_cache: bool = False) -> bool:
        """Store a value. Returns False (and stores nothing) if ``key`` is stale."""
        with self._lock:
            if key != self.key:
                return False
            self.result = Succeeded(value)
            self._last_value = value
            if not from_cache:
                self.cache.put(key, value)
            return True

    def fail(self, key: Hashable, error: Exception, fallback: Any = None) -> bool:
        """
        Record a failure. Returns False if ``key`` is stale.

        ``fallback`` is used as the value only when nothing better is known
        for ``key``. It is never written to the cache.
        """
        with self._lock:
            if key != self.key:
                return False
            self.result = Failed(error)
            if self._last_value is None and fallback is not None:
                self._last_value = fallback
            return True

    @property
    def value(self) -> Any:
        """Latest value for the current key, or None if none is available yet."""
        return self._last_value

    @property
    def is_pending(self) -> bool:
        return self.result.is_pending


class JarMonitor:
    """
    Periodically values the jar against the cost of the burn.

    ``snapshot()`` returns None until balance discovery has succeeded once;
    after that it always returns a best-effort JarSnapshot.
    """

    def __init__(
        self,
        client: AlchemyClient,
        metadata_resolver: MetadataResolver,
        price_resolver: PriceResolver,
        jar_address: str,
        burn_token: str,
        burn_quantity: int,
        refresh_interval: float = 60.0,
        metadata_ttl: Optional[float] = None,
        price_ids: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Alchemy client used for balance discovery
            metadata_resolver: Resolver for symbol/decimals
            price_resolver: Resolver for USD prices
            jar_address: Address whose holdings are valued
            burn_token: Address of the token that is burned
            burn_quantity: Number of burn tokens required
            refresh_interval: Polling interval, also the balance/price TTL
            metadata_ttl: Metadata TTL (None keeps it for the session)
            price_ids: Map of token address -> price-service identifier
            clock: Monotonic time source
        """
        self.client = client
        self.metadata_resolver = metadata_resolver
        self.price_resolver = price_resolver
        self.jar_address = normalize_address(jar_address)
        self.burn_token = normalize_address(burn_token)
        self.burn_quantity = burn_quantity
        self.refresh_interval = refresh_interval
        self.price_ids = {
            normalize_address(address): normalize_address(identifier)
            for address, identifier in (price_ids or {}).items()
        }

        self.balances = StageSlot("balances", ResultCache(refresh_interval, clock))
        self.metadata = StageSlot("metadata", ResultCache(metadata_ttl, clock))
        self.prices = StageSlot("prices", ResultCache(refresh_interval, clock))

    @property
    def is_loading(self) -> bool:
        """True while any stage has no result for its current parameters."""
        return self.balances.is_pending or self.metadata.is_pending or self.prices.is_pending

    @property
    def is_current(self) -> bool:
        """True when every stage succeeded for its current parameters."""
        return all(isinstance(result, Succeeded) for result in self.stage_results.values())

    @property
    def stage_results(self) -> Dict[str, StageResult]:
        return {slot.name: slot.result for slot in (self.balances, self.metadata, self.prices)}

    def _price_identifier(self, address: str) -> str:
        return self.price_ids.get(address, address)

    def _run_stage(self, slot: StageSlot, key: Hashable, fetch: Callable[[], Any]) -> None:
        """Serve ``key`` from the slot's cache or fetch it, recording the outcome."""
        cached = slot.cache.get(key)
        slot.begin(key)
        if cached is not None:
            slot.complete(key, cached, from_cache=True)
            return

        try:
            value = fetch()
        except NetworkError as e:
            log(slot.name, f"ERROR: {e}. Will retry on next refresh.")
            slot.fail(key, e, fallback=getattr(e, "fallback", None))
            return

        if not slot.complete(key, value):
            log(slot.name, "Discarding stale result for superseded parameters")

    def refresh(self) -> Optional[JarSnapshot]:
        """
        Run one refresh cycle and return the resulting snapshot.

        Returns:
            The current JarSnapshot, or None if balances were never discovered
        """
        self._run_stage(
            self.balances,
            canonical_key("balances", [self.jar_address]),
            lambda: self.client.get_token_balances(self.jar_address),
        )

        records: Optional[List[TokenBalanceRecord]] = self.balances.value
        if records is None:
            return None

        addresses = [record.token_address for record in records]
        identifiers = [self._price_identifier(address) for address in addresses]
        identifiers.append(self._price_identifier(self.burn_token))

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [
                executor.submit(
                    self._run_stage,
                    self.metadata,
                    canonical_key("metadata", addresses),
                    lambda: self.metadata_resolver.resolve(addresses, strict=True),
                ),
                executor.submit(
                    self._run_stage,
                    self.prices,
                    canonical_key("prices", identifiers),
                    lambda: self.price_resolver.resolve(identifiers),
                ),
            ]
            for future in futures:
                future.result()

        return self.snapshot()

    def burn_price(self) -> float:
        prices = self.prices.value or {}
        try:
            return lookup_price(prices, self._price_identifier(self.burn_token))
        except MissingPriceError:
            return 0.0

    def snapshot(self) -> Optional[JarSnapshot]:
        """Value the jar from the latest data of each stage."""
        records = self.balances.value
        if records is None:
            return None

        return valuate(
            records,
            self.metadata.value or {},
            self.prices.value or {},
            burn_price=self.burn_price(),
            burn_quantity=self.burn_quantity,
            price_ids=self.price_ids,
        )

    def run(
        self,
        on_snapshot: Callable[[Optional[JarSnapshot]], None],
        max_ticks: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Refresh on a fixed interval and hand each snapshot to ``on_snapshot``.

        Args:
            on_snapshot: Called after every refresh (None while unavailable)
            max_ticks: Stop after this many refreshes (run forever if None)
            sleep: Sleep function between ticks
        """
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            snapshot = self.refresh()
            if snapshot is None:
                log("monitor", "Jar holdings unavailable; balance discovery has not succeeded yet")
            on_snapshot(snapshot)
            ticks += 1
            if max_ticks is None or ticks < max_ticks:
                sleep(self.refresh_interval)
