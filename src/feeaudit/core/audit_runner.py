"""
Runs a complete audit: discrepancy collection, then hotfix cross-validation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from feeaudit.core.discrepancy_collector import (
    Discrepancy,
    DiscrepancyCollector,
    ProgressCallback,
)
from feeaudit.core.hotfix_validator import HotfixReport, HotfixValidator
from feeaudit.core.protocols import LedgerReader, RemediationSource

logger = logging.getLogger(__name__)


@dataclass
class AuditResult:
    node_count: int
    report: HotfixReport
    discrepancies: list[Discrepancy] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def verified(self) -> bool:
        return self.report.verified

    def to_dict(self) -> dict:
        return {
            "verified": self.verified,
            "node_count": self.node_count,
            "elapsed": self.elapsed,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "report": self.report.to_dict(),
        }


async def run_audit(
    reader: LedgerReader,
    source: RemediationSource,
    hotfix_address: Optional[str] = None,
    progress_interval: int = 100,
    on_progress: Optional[ProgressCallback] = None,
    concurrency: int = 1,
    on_start: Optional[Callable[[int], None]] = None,
) -> AuditResult:
    """
    Collect discrepancies, then validate the hotfix against them.

    The second phase starts only after the first has completed. Ledger errors
    from either phase propagate and no result is produced.
    """
    start_time = time.time()

    collector = DiscrepancyCollector(
        reader,
        progress_interval=progress_interval,
        on_progress=on_progress,
        concurrency=concurrency,
        on_start=on_start,
    )
    discrepancies = await collector.collect()

    report = await HotfixValidator(source, hotfix_address).validate(discrepancies)

    result = AuditResult(
        node_count=collector.node_count,
        report=report,
        discrepancies=discrepancies,
        elapsed=time.time() - start_time,
    )
    logger.info(
        "Audit finished",
        extra={
            "verified": result.verified,
            "node_count": result.node_count,
            "discrepancies": len(discrepancies),
            "elapsed": round(result.elapsed, 3),
        },
    )
    return result
