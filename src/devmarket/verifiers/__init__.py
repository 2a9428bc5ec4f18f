"""Automated verification checks and the level-0 suite.

The Level0Suite runs every registered check against a product snapshot and
folds the results into a single pass/fail verdict plus a weighted score. The
VerificationService stores the suite report on the level-0 verification record.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from devmarket.domain.verifier_protocol import (
    AutomatedCheck,
    CheckResult,
    ProductFile,
    ProductSnapshot,
)
from devmarket.verifiers.level0 import (
    DescriptionCheck,
    FileFormatCheck,
    FileSizeCheck,
    MetadataCheck,
    SuspiciousContentCheck,
)


@dataclass(frozen=True)
class SuiteReport:
    """Aggregated outcome of an automated check suite."""

    passed: bool
    score: int
    results: list[CheckResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "level": 0,
            "passed": self.passed,
            "score": self.score,
            "checks": {r.name: r.to_dict() for r in self.results},
        }


class Level0Suite:
    """Runs the level-0 checks.

    Usage:
        report = Level0Suite().run(snapshot)
        report.passed, report.score
    """

    def __init__(self, checks: list[AutomatedCheck] | None = None) -> None:
        self._checks: list[AutomatedCheck] = checks if checks is not None else [
            FileFormatCheck(),
            FileSizeCheck(),
            SuspiciousContentCheck(),
            MetadataCheck(),
            DescriptionCheck(),
        ]

    def run(self, product: ProductSnapshot) -> SuiteReport:
        results = [check.run(product) for check in self._checks]
        score = sum(
            getattr(check, "weight", 0)
            for check, result in zip(self._checks, results, strict=True)
            if result.passed
        )
        return SuiteReport(
            passed=all(r.passed for r in results),
            score=min(score, 100),
            results=results,
        )

    @property
    def check_names(self) -> list[str]:
        """Return the names of the registered checks, in run order."""
        return [check.name for check in self._checks]


__all__ = [
    "DescriptionCheck",
    "FileFormatCheck",
    "FileSizeCheck",
    "Level0Suite",
    "MetadataCheck",
    "ProductFile",
    "ProductSnapshot",
    "SuiteReport",
    "SuspiciousContentCheck",
]
