"""
feeaudit - Ledger Protocol Interfaces

The audit core depends only on these structural interfaces. The web3.py
implementation lives in ``feeaudit.core.web3_ledger``; tests supply in-memory
fakes.

All methods are read-only coroutines against the current chain head.
Implementations raise ``TransportError`` on RPC failure and ``DecodeError`` on
malformed responses and never retry.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

# Minipool status tag that contributes to a node's fee numerator
MINIPOOL_STATUS_STAKING = 2


@runtime_checkable
class LedgerReader(Protocol):
    """Read access to the node registry, minipools and cached numerators."""

    async def get_node_count(self) -> int:
        """Number of nodes registered in the node manager."""
        ...

    async def get_node_at(self, index: int) -> str:
        """
        Address of the node at ``index`` in the registry.

        Indices are only stable within a single enumeration pass.
        """
        ...

    async def get_fee_distributor_initialised(self, node: str) -> bool:
        """Whether the node has initialised its fee distributor."""
        ...

    async def get_node_fee_numerator(self, node: str) -> int:
        """Cached average fee numerator stored under the node's storage key."""
        ...

    async def get_node_minipool_count(self, node: str) -> int:
        """Number of minipools owned by ``node``."""
        ...

    async def get_node_minipool_at(self, node: str, index: int) -> str:
        """Address of the node's minipool at ``index``."""
        ...

    async def get_minipool_status(self, minipool: str) -> int:
        """Status tag of a minipool (2 is staking)."""
        ...

    async def get_minipool_node_fee(self, minipool: str) -> int:
        """Node fee of a minipool."""
        ...


@runtime_checkable
class RemediationSource(Protocol):
    """Read access to a published list of numerator corrections."""

    async def error_count(self) -> int:
        """Number of correction entries."""
        ...

    async def error_at(self, index: int) -> tuple[str, int]:
        """Correction entry at ``index`` as (node address, signed amount)."""
        ...
