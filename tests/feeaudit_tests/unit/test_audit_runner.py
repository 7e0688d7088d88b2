"""
Unit tests for the end-to-end audit run.
"""

import pytest

from feeaudit.core.audit_exceptions import ResolutionError, TransportError
from feeaudit.core.audit_runner import run_audit
from feeaudit.core.hotfix_validator import FindingType

from ledger_fakes import NODE_C, FakeHotfix


@pytest.mark.asyncio
async def test_correct_hotfix_verifies(scenario_ledger):
    result = await run_audit(scenario_ledger, FakeHotfix([(NODE_C, 50)]), hotfix_address="0xhotfix")

    assert result.verified is True
    assert result.node_count == 3
    assert [(d.address, d.difference, d.verified) for d in result.discrepancies] == [
        (NODE_C, 50, True)
    ]
    assert result.report.hotfix_address == "0xhotfix"


@pytest.mark.asyncio
async def test_incorrect_hotfix_reports_findings(scenario_ledger):
    result = await run_audit(scenario_ledger, FakeHotfix([(NODE_C, 49)]))

    assert result.verified is False
    assert result.report.get_findings(FindingType.AMOUNT_MISMATCH)


@pytest.mark.asyncio
async def test_validation_runs_after_collection(scenario_ledger):
    source = FakeHotfix([(NODE_C, 50)])
    order = []

    def on_start(total):
        order.append(("start", total, list(source.reads)))

    await run_audit(scenario_ledger, source, on_start=on_start)
    # hotfix entries are read only after the whole registry pass
    assert order == [("start", 3, [])]
    assert source.reads == [0]


@pytest.mark.asyncio
async def test_collection_failure_skips_validation(scenario_ledger):
    scenario_ledger.fail("get_node_count", ResolutionError("no manager", contract_name="rocketNodeManager"))
    source = FakeHotfix([(NODE_C, 50)])

    with pytest.raises(ResolutionError):
        await run_audit(scenario_ledger, source)
    assert source.reads == []


@pytest.mark.asyncio
async def test_validation_failure_propagates(scenario_ledger):
    source = FakeHotfix([(NODE_C, 50)])
    source.fail("error_at")

    with pytest.raises(TransportError):
        await run_audit(scenario_ledger, source)


@pytest.mark.asyncio
async def test_to_dict(scenario_ledger):
    result = await run_audit(scenario_ledger, FakeHotfix([(NODE_C, 50)]), concurrency=2)
    data = result.to_dict()

    assert data["verified"] is True
    assert data["node_count"] == 3
    assert data["discrepancies"] == [{"address": NODE_C, "difference": "50", "verified": True}]
    assert data["report"]["matched"] == 1
