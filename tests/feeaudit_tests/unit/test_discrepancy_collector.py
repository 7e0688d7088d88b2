"""
Unit tests for DiscrepancyCollector.

Coverage targets:
- Mismatches recorded as expected - cached, consistent nodes skipped
- Uninitialised nodes never produce a record or a numerator read
- Progress reporting at the configured interval
- Concurrent collection matches the sequential result
- Read failures abort the pass
"""

import asyncio

import pytest

from feeaudit.core.audit_exceptions import DecodeError, TransportError
from feeaudit.core.discrepancy_collector import (
    Discrepancy,
    DiscrepancyCollector,
    check_node,
    collect_discrepancies,
)

from ledger_fakes import NODE_A, NODE_B, NODE_C, PRELAUNCH, STAKING, FakeLedger, FakeNode, make_address


def _large_ledger(size: int) -> FakeLedger:
    nodes = []
    for i in range(size):
        # every third node over-counted, every fifth uninitialised
        nodes.append(
            FakeNode(
                make_address(1000 + i),
                initialised=i % 5 != 0,
                cached=i + (7 if i % 3 == 0 else 0),
                minipools=[(STAKING, i), (PRELAUNCH, 99)],
            )
        )
    return FakeLedger(nodes)


class TestCheckNode:
    """Single node comparison"""

    @pytest.mark.asyncio
    async def test_consistent_node_has_no_discrepancy(self, scenario_ledger):
        assert await check_node(scenario_ledger, NODE_B) is None

    @pytest.mark.asyncio
    async def test_mismatch_difference_is_expected_minus_cached(self, scenario_ledger):
        assert await check_node(scenario_ledger, NODE_C) == Discrepancy(NODE_C, 50)

    @pytest.mark.asyncio
    async def test_negative_difference(self):
        node = make_address(7)
        ledger = FakeLedger([FakeNode(node, cached=120, minipools=[(STAKING, 100)])])

        discrepancy = await check_node(ledger, node)
        assert discrepancy.difference == -20
        assert discrepancy.verified is False

    @pytest.mark.asyncio
    async def test_uninitialised_node_skipped_without_reads(self, scenario_ledger):
        assert await check_node(scenario_ledger, NODE_A) is None
        assert scenario_ledger.calls_to("get_node_fee_numerator") == []
        assert scenario_ledger.calls_to("get_node_minipool_count") == []

    @pytest.mark.asyncio
    async def test_numerator_failure_cancels_recomputation(self):
        ledger = _StalledStatusLedger([FakeNode(NODE_B, cached=100, minipools=[(STAKING, 100)])])
        ledger.fail("get_node_fee_numerator")

        with pytest.raises(TransportError):
            await check_node(ledger, NODE_B)
        assert ledger.cancelled_reads == 1
        assert ledger.calls_to("get_minipool_node_fee") == []


class _StalledStatusLedger(FakeLedger):
    """Minipool status reads block until cancelled."""

    def __init__(self, nodes):
        super().__init__(nodes)
        self.cancelled_reads = 0

    async def get_minipool_status(self, minipool: str) -> int:
        self._record("get_minipool_status", minipool)
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled_reads += 1
            raise
        return STAKING


class TestCollector:
    """Full registry pass"""

    @pytest.mark.asyncio
    async def test_scenario_three_nodes(self, scenario_ledger):
        discrepancies = await collect_discrepancies(scenario_ledger)
        assert discrepancies == [Discrepancy(NODE_C, 50)]

    @pytest.mark.asyncio
    async def test_empty_registry(self, fake_ledger):
        collector = DiscrepancyCollector(fake_ledger)
        assert await collector.collect() == []
        assert collector.node_count == 0

    @pytest.mark.asyncio
    async def test_one_record_per_mismatched_initialised_node(self):
        ledger = _large_ledger(30)
        discrepancies = await collect_discrepancies(ledger)

        expected = [
            Discrepancy(make_address(1000 + i), -7)
            for i in range(30)
            if i % 5 != 0 and i % 3 == 0
        ]
        assert discrepancies == expected
        assert all(d.difference != 0 for d in discrepancies)
        assert len({d.address for d in discrepancies}) == len(discrepancies)

    @pytest.mark.asyncio
    async def test_repeat_pass_is_identical(self):
        ledger = _large_ledger(25)
        first = await collect_discrepancies(ledger)
        second = await collect_discrepancies(ledger)
        assert first == second

    @pytest.mark.asyncio
    async def test_progress_reported_every_interval(self):
        ledger = _large_ledger(250)
        progress = []
        starts = []

        await collect_discrepancies(
            ledger,
            progress_interval=100,
            on_progress=lambda checked, total: progress.append((checked, total)),
            on_start=starts.append,
        )

        assert starts == [250]
        assert progress == [(100, 250), (200, 250)]

    @pytest.mark.asyncio
    async def test_invalid_parameters_rejected(self, fake_ledger):
        with pytest.raises(ValueError):
            DiscrepancyCollector(fake_ledger, progress_interval=0)
        with pytest.raises(ValueError):
            DiscrepancyCollector(fake_ledger, concurrency=0)

    @pytest.mark.asyncio
    async def test_read_failure_aborts_pass(self, scenario_ledger):
        scenario_ledger.fail("get_node_fee_numerator")
        with pytest.raises(TransportError):
            await collect_discrepancies(scenario_ledger)

    @pytest.mark.asyncio
    async def test_decode_failure_propagates_unchanged(self, scenario_ledger):
        error = DecodeError("bad payload")
        scenario_ledger.fail("get_node_at", error)
        with pytest.raises(DecodeError) as exc_info:
            await collect_discrepancies(scenario_ledger)
        assert exc_info.value is error


class TestConcurrentCollector:
    """Bounded concurrent pass"""

    @pytest.mark.asyncio
    async def test_concurrent_matches_sequential(self):
        ledger = _large_ledger(60)
        sequential = await collect_discrepancies(ledger)
        concurrent = await collect_discrepancies(ledger, concurrency=8)
        assert concurrent == sequential

    @pytest.mark.asyncio
    async def test_concurrent_progress(self):
        ledger = _large_ledger(40)
        progress = []
        await collect_discrepancies(
            ledger,
            progress_interval=10,
            concurrency=4,
            on_progress=lambda checked, total: progress.append(checked),
        )
        assert progress == [10, 20, 30, 40]

    @pytest.mark.asyncio
    async def test_concurrent_failure_aborts(self):
        ledger = _large_ledger(20)
        ledger.fail("get_minipool_node_fee")
        with pytest.raises(TransportError):
            await collect_discrepancies(ledger, concurrency=4)
