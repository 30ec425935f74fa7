"""
Unit tests for the jar monitor and its stage slots.

Tests follow the Given/When/Then pattern for clarity.
"""

import pytest
import responses

from scripts.lib.alchemy_client import AlchemyAPIError, AlchemyClient, CallResult
from scripts.lib.cache import ResultCache
from scripts.lib.metadata import MetadataResolver
from scripts.lib.models import Failed, Pending, Succeeded, TokenBalanceRecord, TokenMetadata
from scripts.lib.monitor import JarMonitor, StageSlot

from conftest import UNI, USDC, WETH, encoded_string, encoded_uint


JAR = "0xf38521f130fccf29db1961597bc5d2b60f995f85"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeBalanceClient:
    """Balance discoverer returning queued outcomes (lists or exceptions)."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def get_token_balances(self, address):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeMetadataResolver:
    def __init__(self, metadata):
        self.metadata = metadata
        self.calls = []

    def resolve(self, addresses, strict=False):
        self.calls.append(list(addresses))
        return {address: self.metadata[address] for address in addresses if address in self.metadata}


class FlakyReader:
    """Contract reader returning queued outcomes (result lists or exceptions)."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def call_many(self, calls):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakePriceResolver:
    def __init__(self, prices):
        self.prices = prices
        self.calls = []

    def resolve(self, identifiers):
        self.calls.append(list(identifiers))
        return {identifier: self.prices[identifier] for identifier in identifiers if identifier in self.prices}


BALANCES = [TokenBalanceRecord(USDC, 10_000), TokenBalanceRecord(WETH, 2 * 10**18)]
METADATA = {USDC: TokenMetadata(USDC, "USDC", 6), WETH: TokenMetadata(WETH, "WETH", 18)}
PRICES = {USDC: 1.0, WETH: 3000.0, UNI: 5.0}


def make_monitor(client, metadata=METADATA, prices=PRICES, clock=None):
    return JarMonitor(
        client,
        FakeMetadataResolver(metadata),
        FakePriceResolver(prices),
        jar_address=JAR,
        burn_token=UNI,
        burn_quantity=4000,
        refresh_interval=60,
        clock=clock or FakeClock(),
    )


class TestStageSlot:
    """Tests for StageSlot."""

    def test_starts_pending(self):
        # Given
        slot = StageSlot("prices", ResultCache(ttl=None))

        # Then
        assert slot.result == Pending()
        assert slot.is_pending
        assert slot.value is None

    def test_discards_stale_completion(self):
        """
        Given a request for key A superseded by a request for key B
        When A's response arrives after B was issued
        Then A's value should not be stored
        """
        # Given
        slot = StageSlot("prices", ResultCache(ttl=None))
        slot.begin("A")
        slot.begin("B")

        # When
        applied = slot.complete("A", {"0xa": 1.0})

        # Then
        assert applied is False
        assert slot.is_pending
        assert slot.value is None
        assert slot.cache.get("A") is None

    def test_failure_keeps_last_value_for_same_key(self):
        """
        Given a slot that succeeded for key A
        When a later fetch for key A fails
        Then the result should be Failed but the last value still available
        """
        # Given
        slot = StageSlot("balances", ResultCache(ttl=None))
        slot.begin("A")
        slot.complete("A", ["first"])

        # When
        slot.begin("A")
        slot.fail("A", AlchemyAPIError("down"))

        # Then
        assert isinstance(slot.result, Failed)
        assert slot.value == ["first"]

    def test_new_key_resets_to_pending(self):
        # Given
        slot = StageSlot("metadata", ResultCache(ttl=None))
        slot.begin("A")
        slot.complete("A", {"x": 1})

        # When
        slot.begin("B")

        # Then
        assert slot.result == Pending()
        assert slot.value is None


class TestJarMonitor:
    """Tests for JarMonitor."""

    def test_refresh_produces_snapshot(self):
        """
        Given all three stages succeed
        When refreshing
        Then the end-to-end valuation should be produced and nothing is loading
        """
        # Given
        monitor = make_monitor(FakeBalanceClient(BALANCES))

        # When
        snapshot = monitor.refresh()

        # Then
        assert snapshot is not None
        assert snapshot.total_value == pytest.approx(6000.01)
        assert snapshot.burn_price == 5.0
        assert snapshot.burn_cost == 20000.0
        assert snapshot.is_profitable is False
        assert monitor.is_loading is False
        assert monitor.stage_results["balances"] == Succeeded(BALANCES)

    def test_prices_requested_for_tokens_and_burn_token(self):
        # Given
        monitor = make_monitor(FakeBalanceClient(BALANCES))

        # When
        monitor.refresh()

        # Then
        assert monitor.price_resolver.calls == [[USDC, WETH, UNI]]
        assert monitor.metadata_resolver.calls == [[USDC, WETH]]

    def test_unavailable_until_discovery_succeeds(self):
        """
        Given balance discovery that has never succeeded
        When refreshing
        Then no snapshot should be fabricated
        """
        # Given
        monitor = make_monitor(FakeBalanceClient(AlchemyAPIError("down")))

        # When
        snapshot = monitor.refresh()

        # Then
        assert snapshot is None
        assert monitor.snapshot() is None
        assert isinstance(monitor.stage_results["balances"], Failed)
        assert monitor.metadata_resolver.calls == []

    def test_later_discovery_failure_keeps_last_snapshot(self):
        """
        Given discovery that succeeds and then fails after the TTL
        When refreshing again
        Then a best-effort snapshot from the last balances should be returned
        """
        # Given
        clock = FakeClock()
        client = FakeBalanceClient(BALANCES, AlchemyAPIError("down"))
        monitor = make_monitor(client, clock=clock)
        monitor.refresh()

        # When
        clock.now = 61
        snapshot = monitor.refresh()

        # Then
        assert client.calls == 2
        assert snapshot is not None
        assert snapshot.total_value == pytest.approx(6000.01)
        assert isinstance(monitor.stage_results["balances"], Failed)

    def test_cached_results_are_reused_within_ttl(self):
        """
        Given a completed refresh
        When refreshing again before the interval elapses
        Then no stage should fetch again
        """
        # Given
        clock = FakeClock()
        client = FakeBalanceClient(BALANCES)
        monitor = make_monitor(client, clock=clock)
        monitor.refresh()

        # When
        clock.now = 30
        monitor.refresh()

        # Then
        assert client.calls == 1
        assert len(monitor.price_resolver.calls) == 1
        assert len(monitor.metadata_resolver.calls) == 1

    def test_cache_hits_do_not_extend_ttl(self):
        # Given
        clock = FakeClock()
        client = FakeBalanceClient(BALANCES)
        monitor = make_monitor(client, clock=clock)
        monitor.refresh()
        clock.now = 30
        monitor.refresh()

        # When
        clock.now = 61
        monitor.refresh()

        # Then
        assert client.calls == 2

    def test_metadata_is_session_cached_while_prices_refresh(self):
        # Given
        clock = FakeClock()
        monitor = make_monitor(FakeBalanceClient(BALANCES), clock=clock)
        monitor.refresh()

        # When
        clock.now = 120
        monitor.refresh()

        # Then
        assert len(monitor.metadata_resolver.calls) == 1
        assert len(monitor.price_resolver.calls) == 2

    def test_new_token_list_refetches_metadata(self):
        """
        Given the jar gains a token between refreshes
        When refreshing after the TTL
        Then metadata should be fetched for the new address set
        """
        # Given
        clock = FakeClock()
        client = FakeBalanceClient(BALANCES[:1], BALANCES)
        monitor = make_monitor(client, clock=clock)
        monitor.refresh()

        # When
        clock.now = 61
        snapshot = monitor.refresh()

        # Then
        assert monitor.metadata_resolver.calls == [[USDC], [USDC, WETH]]
        assert {token.symbol for token in snapshot.tokens} == {"USDC", "WETH"}

    def test_missing_burn_price_counts_as_zero(self):
        # Given
        monitor = make_monitor(FakeBalanceClient(BALANCES), prices={WETH: 3000.0})

        # When
        snapshot = monitor.refresh()

        # Then
        assert snapshot.burn_price == 0.0
        assert snapshot.burn_cost == 0.0
        assert snapshot.is_profitable is True

    def test_is_loading_before_first_refresh(self):
        # Then
        assert make_monitor(FakeBalanceClient(BALANCES)).is_loading is True

    def test_run_polls_on_interval(self):
        """
        Given a monitor run for three ticks
        When running
        Then it should refresh three times and sleep twice for the interval
        """
        # Given
        monitor = make_monitor(FakeBalanceClient(BALANCES))
        snapshots = []
        sleeps = []

        # When
        monitor.run(snapshots.append, max_ticks=3, sleep=sleeps.append)

        # Then
        assert len(snapshots) == 3
        assert sleeps == [60, 60]

    def test_metadata_outage_is_retried_on_next_refresh(self):
        """
        Given contract reads that fail once with a 503 and then succeed
        When refreshing across two ticks
        Then the placeholder metadata should be used once and replaced by live values
        """
        # Given
        clock = FakeClock()
        reader = FlakyReader(
            AlchemyAPIError("Server error: 503", status_code=503),
            [
                CallResult(success=True, result=bytes.fromhex(encoded_string("USDC")[2:])),
                CallResult(success=True, result=bytes.fromhex(encoded_uint(6)[2:])),
            ],
        )
        monitor = JarMonitor(
            FakeBalanceClient(BALANCES[:1]),
            MetadataResolver(reader),
            FakePriceResolver(PRICES),
            jar_address=JAR,
            burn_token=UNI,
            burn_quantity=4000,
            refresh_interval=60,
            clock=clock,
        )

        # When
        degraded = monitor.refresh()
        clock.now = 61
        recovered = monitor.refresh()

        # Then
        assert degraded.tokens[0].symbol == "???"
        assert degraded.tokens[0].decimals == 18
        assert reader.calls == 2
        assert recovered.tokens[0].symbol == "USDC"
        assert recovered.tokens[0].decimals == 6
        assert recovered.total_value == pytest.approx(0.01)
        assert monitor.stage_results["metadata"] == Succeeded(
            {USDC: TokenMetadata(USDC, "USDC", 6)}
        )

    def test_degraded_metadata_marks_stage_failed(self):
        # Given
        reader = FlakyReader(AlchemyAPIError("down"))
        monitor = JarMonitor(
            FakeBalanceClient(BALANCES[:1]),
            MetadataResolver(reader),
            FakePriceResolver(PRICES),
            jar_address=JAR,
            burn_token=UNI,
            burn_quantity=4000,
            clock=FakeClock(),
        )

        # When
        snapshot = monitor.refresh()

        # Then
        assert snapshot is not None
        assert isinstance(monitor.stage_results["metadata"], Failed)
        assert monitor.is_loading is False
        assert monitor.is_current is False

    def test_is_current_after_clean_refresh(self):
        # Given
        monitor = make_monitor(FakeBalanceClient(BALANCES))
        assert monitor.is_current is False

        # When
        monitor.refresh()

        # Then
        assert monitor.is_current is True

    @responses.activate
    def test_malformed_balance_payload_does_not_crash_refresh(
        self, mock_alchemy_api_key, alchemy_url, sample_jar_address
    ):
        """
        Given an indexing service answering with a null result
        When refreshing
        Then the balances stage should fail and no snapshot be fabricated
        """
        # Given
        responses.add(responses.POST, alchemy_url, json={"jsonrpc": "2.0", "id": 1, "result": None})
        monitor = JarMonitor(
            AlchemyClient(mock_alchemy_api_key, max_retries=0),
            FakeMetadataResolver(METADATA),
            FakePriceResolver(PRICES),
            jar_address=sample_jar_address,
            burn_token=UNI,
            burn_quantity=4000,
            clock=FakeClock(),
        )

        # When
        snapshot = monitor.refresh()

        # Then
        assert snapshot is None
        assert isinstance(monitor.stage_results["balances"], Failed)
