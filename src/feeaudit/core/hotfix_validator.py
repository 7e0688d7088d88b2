from __future__ import annotations

"""
feeaudit - Hotfix Cross-Validation

Checks a published hotfix contract against the discrepancies recomputed from
chain state. The hotfix is correct only when both lists hold exactly the same
(node address, amount) pairs:

1. Entry count equals discrepancy count
2. Every hotfix entry names a known node
3. Every hotfix entry carries that node's exact difference
4. Every discrepancy is covered by a hotfix entry

Findings are collected exhaustively; none of them abort the run.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from feeaudit.core.discrepancy_collector import Discrepancy
from feeaudit.core.protocols import RemediationSource

logger = logging.getLogger(__name__)


class FindingType(Enum):
    COUNT_MISMATCH = "count_mismatch"
    UNKNOWN_CORRECTION = "unknown_correction"
    AMOUNT_MISMATCH = "amount_mismatch"
    MISSING_CORRECTION = "missing_correction"


@dataclass
class Finding:
    """A single way in which the hotfix disagrees with the recomputed discrepancies"""

    kind: FindingType
    description: str
    address: str | None = None
    amount: int | None = None  # value published in the hotfix
    expected: int | None = None  # value recomputed from chain state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "description": self.description,
            "address": self.address,
            "amount": None if self.amount is None else str(self.amount),
            "expected": None if self.expected is None else str(self.expected),
        }


@dataclass
class HotfixReport:
    """Complete cross-validation report"""

    hotfix_address: str | None
    expected_count: int
    reported_count: int = 0
    matched: int = 0
    validation_time: float = 0.0
    findings: list[Finding] = field(default_factory=list)

    @property
    def count_matches(self) -> bool:
        return self.reported_count == self.expected_count

    @property
    def verified(self) -> bool:
        return not self.findings

    def add_finding(
        self,
        kind: FindingType,
        description: str,
        address: str | None = None,
        amount: int | None = None,
        expected: int | None = None,
    ) -> Finding:
        """Record a finding and log it"""
        finding = Finding(
            kind=kind,
            description=description,
            address=address,
            amount=amount,
            expected=expected,
        )
        self.findings.append(finding)
        logger.warning(
            description,
            extra={"finding": kind.value, "node": address},
        )
        return finding

    def get_findings(self, kind: FindingType) -> list[Finding]:
        """Get all findings of one kind"""
        return [f for f in self.findings if f.kind == kind]

    def to_dict(self) -> dict:
        """Convert report to dictionary"""
        return {
            "hotfix_address": self.hotfix_address,
            "verified": self.verified,
            "expected_count": self.expected_count,
            "reported_count": self.reported_count,
            "matched": self.matched,
            "validation_time": self.validation_time,
            "findings": {
                kind.value: len(self.get_findings(kind)) for kind in FindingType
            },
            "finding_details": [f.to_dict() for f in self.findings],
        }


class HotfixValidator:
    """
    Cross-validates a remediation source against recomputed discrepancies.

    Discrepancy records are matched by address; the first record with the
    entry's address is the one compared. A matched record has its
    ``verified`` flag set. Records still unflagged after every entry has been
    read are reported as missing.
    """

    def __init__(self, source: RemediationSource, hotfix_address: Optional[str] = None):
        """
        Initialize hotfix validator

        Args:
            source: Published corrections
            hotfix_address: Address of the hotfix contract, used in reports
        """
        self.source = source
        self.hotfix_address = hotfix_address or getattr(source, "address", None)
        self.report: HotfixReport | None = None

    async def validate(self, discrepancies: list[Discrepancy]) -> HotfixReport:
        """
        Validate the hotfix against ``discrepancies``.

        Only the ``verified`` flags of the records are modified.

        Raises:
            LedgerError: A read from the remediation source failed
        """
        start_time = time.time()
        for discrepancy in discrepancies:
            discrepancy.verified = False

        self.report = HotfixReport(
            hotfix_address=self.hotfix_address,
            expected_count=len(discrepancies),
        )
        logger.info(
            "Verifying hotfix errors",
            extra={"hotfix_address": self.hotfix_address, "expected_count": len(discrepancies)},
        )

        count = await self.source.error_count()
        self.report.reported_count = count

        if count != len(discrepancies):
            self.report.add_finding(
                FindingType.COUNT_MISMATCH,
                f"Incorrect number of errors: {count}. Should be {len(discrepancies)}.",
                amount=count,
                expected=len(discrepancies),
            )

        for index in range(count):
            address, amount = await self.source.error_at(index)
            self._check_entry(discrepancies, address, amount)

        for discrepancy in discrepancies:
            if not discrepancy.verified:
                self.report.add_finding(
                    FindingType.MISSING_CORRECTION,
                    f"Error not found in hotfix. {discrepancy.address} = {discrepancy.difference}",
                    address=discrepancy.address,
                    expected=discrepancy.difference,
                )

        self.report.validation_time = time.time() - start_time
        logger.info(
            "Hotfix verification complete",
            extra={
                "hotfix_address": self.hotfix_address,
                "verified": self.report.verified,
                "finding_count": len(self.report.findings),
                "matched": self.report.matched,
            },
        )
        return self.report

    def _check_entry(self, discrepancies: list[Discrepancy], address: str, amount: int) -> None:
        match = next((d for d in discrepancies if d.address == address), None)

        if match is None:
            self.report.add_finding(
                FindingType.UNKNOWN_CORRECTION,
                f"Unknown error in hotfix. {address} = {amount}",
                address=address,
                amount=amount,
            )
        elif match.difference != amount:
            self.report.add_finding(
                FindingType.AMOUNT_MISMATCH,
                f"Invalid error amount found. {address} = {amount}, should be {match.difference}",
                address=address,
                amount=amount,
                expected=match.difference,
            )
        else:
            match.verified = True
            self.report.matched += 1


async def validate_hotfix(
    source: RemediationSource,
    discrepancies: list[Discrepancy],
    hotfix_address: Optional[str] = None,
) -> HotfixReport:
    """Convenience wrapper around HotfixValidator.validate()."""
    return await HotfixValidator(source, hotfix_address).validate(discrepancies)
