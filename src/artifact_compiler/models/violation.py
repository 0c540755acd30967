"""Violation and validation report models.

Violations are produced fresh on every validation pass. They are never stored
as part of the artifact, only attached to compilation reports.
"""

from __future__ import annotations

import enum
import json
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, enum.Enum):
    """Violation severity. Only ERROR blocks publication."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def prefix(self) -> str:
        """Letter every rule id of this severity starts with."""
        return self.value[0].upper()


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}


class Violation(BaseModel):
    """A single finding with a stable, severity-prefixed rule id."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    severity: Severity
    message: str
    location: str = ""
    fix: Optional[str] = None

    def sort_key(self) -> tuple[int, str, str]:
        return (self.severity.rank, self.rule_id, self.location)

    def __str__(self) -> str:
        where = f" [{self.location}]" if self.location else ""
        return f"{self.rule_id}: {self.message}{where}"


class ReportSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    errors: int = 0
    warnings: int = 0
    info: int = 0


class ValidationReport(BaseModel):
    """Ordered violations plus the overall pass/fail verdict."""

    model_config = ConfigDict(frozen=True)

    valid: bool = True
    summary: ReportSummary = Field(default_factory=ReportSummary)
    violations: tuple[Violation, ...] = ()

    @classmethod
    def from_violations(cls, violations: Iterable[Violation]) -> ValidationReport:
        ordered = tuple(sorted(violations, key=Violation.sort_key))
        summary = ReportSummary(
            errors=sum(1 for v in ordered if v.severity == Severity.ERROR),
            warnings=sum(1 for v in ordered if v.severity == Severity.WARNING),
            info=sum(1 for v in ordered if v.severity == Severity.INFO),
        )
        return cls(valid=summary.errors == 0, summary=summary, violations=ordered)

    def by_severity(self, severity: Severity) -> list[Violation]:
        return [v for v in self.violations if v.severity == severity]

    @property
    def errors(self) -> list[Violation]:
        return self.by_severity(Severity.ERROR)

    def rule_ids(self) -> list[str]:
        return [v.rule_id for v in self.violations]

    def to_json(self, artifact_name: str | None = None) -> str:
        """Deterministic, pretty-printed JSON form of the report."""
        data = {"artifact": artifact_name or "artifact", **self.model_dump(mode="json")}
        return json.dumps(data, indent=2, ensure_ascii=False)

    def pprint(self, *, name: str | None = None) -> None:
        """Pretty-print this report grouped by severity using rich."""
        from artifact_compiler.formatting import pprint_report

        pprint_report(self, name=name)
