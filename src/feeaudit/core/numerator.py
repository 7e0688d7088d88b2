"""
Expected fee numerator recomputation.

A node's average fee numerator is the sum of the node fee of every minipool it
owns that is currently staking. Values are uint256 on chain, so the sum is kept
in a Python int.
"""

from __future__ import annotations

import logging

from feeaudit.core.protocols import MINIPOOL_STATUS_STAKING, LedgerReader

logger = logging.getLogger(__name__)


async def calculate_expected_numerator(reader: LedgerReader, node: str) -> int:
    """
    Recompute the fee numerator of ``node`` from its minipools.

    Minipools are visited in index order. A minipool's fee is only read when
    its status is staking. Read failures propagate unchanged.

    Args:
        reader: Ledger access
        node: Node address

    Returns:
        Sum of node fees over the node's staking minipools
    """
    count = await reader.get_node_minipool_count(node)

    numerator = 0
    staking = 0
    for index in range(count):
        minipool = await reader.get_node_minipool_at(node, index)
        status = await reader.get_minipool_status(minipool)

        if status == MINIPOOL_STATUS_STAKING:
            numerator += await reader.get_minipool_node_fee(minipool)
            staking += 1

    logger.debug(
        "Recomputed node fee numerator",
        extra={"node": node, "minipools": count, "staking": staking, "numerator": str(numerator)},
    )
    return numerator
