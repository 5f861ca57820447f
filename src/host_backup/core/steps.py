"""Outcome of optional, best-effort steps.

Enrichment steps (package listings, config copies, email) must never abort a
run. They report a StepResult instead of raising, and the pipeline collects
those results for the final report.
"""

from dataclasses import dataclass
from enum import Enum


class StepStatus(Enum):
    """How a best-effort step ended."""

    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepResult:
    """Result of a single best-effort step."""

    name: str
    status: StepStatus = StepStatus.OK
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.OK

    def __str__(self) -> str:
        if self.reason:
            return f"{self.name}: {self.status.value} ({self.reason})"
        return f"{self.name}: {self.status.value}"


def ok(name: str) -> StepResult:
    return StepResult(name)


def skipped(name: str, reason: str) -> StepResult:
    return StepResult(name, StepStatus.SKIPPED, reason)


def failed(name: str, reason: str) -> StepResult:
    return StepResult(name, StepStatus.FAILED, reason)


def problems(results: list[StepResult]) -> list[StepResult]:
    """Results that were skipped or failed."""
    return [r for r in results if not r.ok]
