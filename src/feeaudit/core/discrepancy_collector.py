"""
feeaudit - Discrepancy Collection

Walks the node registry and compares each initialised node's cached fee
numerator against the value recomputed from its minipools. Every mismatch
becomes a Discrepancy carrying ``expected - cached``.

A read failure for any node aborts the whole pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from feeaudit.core.numerator import calculate_expected_numerator
from feeaudit.core.protocols import LedgerReader

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class Discrepancy:
    """A node whose cached numerator differs from the recomputed one."""

    address: str
    difference: int  # expected - cached, never zero
    verified: bool = False

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "difference": str(self.difference),
            "verified": self.verified,
        }


async def check_node(reader: LedgerReader, node: str) -> Optional[Discrepancy]:
    """
    Compare one node's cached and recomputed numerators.

    Returns:
        A Discrepancy, or None when the node is uninitialised or consistent
    """
    if not await reader.get_fee_distributor_initialised(node):
        return None

    tasks = [
        asyncio.ensure_future(reader.get_node_fee_numerator(node)),
        asyncio.ensure_future(calculate_expected_numerator(reader, node)),
    ]
    try:
        cached, expected = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if cached == expected:
        return None

    discrepancy = Discrepancy(address=node, difference=expected - cached)
    logger.debug(
        "Numerator mismatch",
        extra={"node": node, "cached": str(cached), "expected": str(expected)},
    )
    return discrepancy


class DiscrepancyCollector:
    """
    Collects discrepancies across the full node registry.

    Nodes are checked one at a time by default. With ``concurrency`` above one,
    up to that many nodes are checked at once and results are still returned in
    registry order.
    """

    def __init__(
        self,
        reader: LedgerReader,
        progress_interval: int = 100,
        on_progress: Optional[ProgressCallback] = None,
        concurrency: int = 1,
        on_start: Optional[Callable[[int], None]] = None,
    ):
        """
        Initialize the collector

        Args:
            reader: Ledger access
            progress_interval: Report progress after every this many nodes
            on_progress: Called with (checked, total) at each interval
            concurrency: Maximum number of nodes checked at once
            on_start: Called with the registry size before the first node
        """
        if progress_interval < 1:
            raise ValueError("progress_interval must be positive")
        if concurrency < 1:
            raise ValueError("concurrency must be positive")
        self.reader = reader
        self.progress_interval = progress_interval
        self.on_progress = on_progress
        self.concurrency = concurrency
        self.on_start = on_start
        self.node_count = 0

    def _progress(self, checked: int) -> None:
        if checked % self.progress_interval != 0:
            return
        logger.info(
            "Checked %d of %d nodes", checked, self.node_count,
            extra={"checked": checked, "total": self.node_count},
        )
        if self.on_progress is not None:
            self.on_progress(checked, self.node_count)

    async def collect(self) -> list[Discrepancy]:
        """
        Run one full pass over the registry.

        Returns:
            Discrepancies in registry order, at most one per node
        """
        self.node_count = await self.reader.get_node_count()
        logger.info("Checking nodes", extra={"node_count": self.node_count})
        if self.on_start is not None:
            self.on_start(self.node_count)

        if self.concurrency == 1:
            results = await self._collect_sequential()
        else:
            results = await self._collect_concurrent()

        discrepancies = [result for result in results if result is not None]
        logger.info(
            "Found %d errors", len(discrepancies),
            extra={"discrepancies": len(discrepancies), "node_count": self.node_count},
        )
        return discrepancies

    async def _collect_sequential(self) -> list[Optional[Discrepancy]]:
        results: list[Optional[Discrepancy]] = []
        for index in range(self.node_count):
            node = await self.reader.get_node_at(index)
            results.append(await check_node(self.reader, node))
            self._progress(index + 1)
        return results

    async def _collect_concurrent(self) -> list[Optional[Discrepancy]]:
        results: list[Optional[Discrepancy]] = [None] * self.node_count
        semaphore = asyncio.Semaphore(self.concurrency)
        checked = 0

        async def run(index: int) -> None:
            nonlocal checked
            async with semaphore:
                node = await self.reader.get_node_at(index)
                results[index] = await check_node(self.reader, node)
            checked += 1
            self._progress(checked)

        tasks = [asyncio.ensure_future(run(index)) for index in range(self.node_count)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return results


async def collect_discrepancies(
    reader: LedgerReader,
    progress_interval: int = 100,
    on_progress: Optional[ProgressCallback] = None,
    concurrency: int = 1,
    on_start: Optional[Callable[[int], None]] = None,
) -> list[Discrepancy]:
    """Convenience wrapper around DiscrepancyCollector.collect()."""
    collector = DiscrepancyCollector(
        reader,
        progress_interval=progress_interval,
        on_progress=on_progress,
        concurrency=concurrency,
        on_start=on_start,
    )
    return await collector.collect()
