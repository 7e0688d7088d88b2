"""
Shared fixtures for feeaudit tests.
"""

import sys
from pathlib import Path

import pytest

# ledger_fakes is imported directly by test modules
sys.path.insert(0, str(Path(__file__).resolve().parent))

from ledger_fakes import (  # noqa: E402
    DISSOLVED,
    NODE_A,
    NODE_B,
    NODE_C,
    STAKING,
    FakeLedger,
    FakeNode,
)


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def scenario_ledger():
    """Three nodes: A uninitialised, B consistent, C under-counted by 50."""
    return FakeLedger(
        [
            FakeNode(NODE_A, initialised=False, cached=0, minipools=[(STAKING, 999)]),
            FakeNode(NODE_B, cached=100, minipools=[(STAKING, 60), (STAKING, 40)]),
            FakeNode(NODE_C, cached=100, minipools=[(STAKING, 100), (STAKING, 50), (DISSOLVED, 70)]),
        ]
    )
