"""Rule ABC -- base class for all linter rules.

Built-in rules are FunctionRule instances created with the ``@rule``
decorator. Users can subclass Rule directly for stateful checks.

Example::

    class NoTodoClaims(Rule):
        rule_id = "WZ-001"
        sections = frozenset({Section.HYPOTHESIS_SLATE})
        summary = "Hypothesis claims must not contain TODO"

        def check(self, ctx: LintContext) -> Iterable[Violation]:
            for item in ctx.active(Section.HYPOTHESIS_SLATE):
                if "TODO" in item.text("claim"):
                    yield self.violation(f"{item.id} has a TODO claim", ctx.location(item))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, Optional

from artifact_compiler.models.sections import Section
from artifact_compiler.models.violation import Severity, Violation

if TYPE_CHECKING:
    from artifact_compiler.lint.linter import LintContext

_PREFIX_TO_SEVERITY = {s.prefix: s for s in Severity}


def severity_for_rule_id(rule_id: str) -> Severity | None:
    """Severity implied by a rule id's leading letter (E/W/I)."""
    return _PREFIX_TO_SEVERITY.get(rule_id[:1])


class Rule(ABC):
    """Abstract base class for all linter rules.

    Attributes:
        rule_id: Stable, severity-prefixed identifier (``EH-001``).
        sections: Sections the rule reads. Empty means the whole document;
            such rules never run in incremental mode.
        per_item: True when the rule checks each item of its sections
            independently and can therefore be narrowed to the sections a
            candidate delta touches.
        summary: One-line description for rule listings.
        fix: Default remediation hint attached to violations.
    """

    rule_id: str = ""
    sections: frozenset[Section] = frozenset()
    per_item: bool = False
    summary: str = ""
    fix: Optional[str] = None

    @property
    def severity(self) -> Severity:
        severity = severity_for_rule_id(self.rule_id)
        if severity is None:
            raise ValueError(f"Rule id {self.rule_id!r} has no severity prefix")
        return severity

    @abstractmethod
    def check(self, ctx: LintContext) -> Iterable[Violation]:
        """Yield violations found in ``ctx.artifact``. Must not mutate it."""
        ...

    def violation(self, message: str, location: str = "", fix: str | None = None) -> Violation:
        return Violation(
            rule_id=self.rule_id,
            severity=self.severity,
            message=message,
            location=location,
            fix=fix if fix is not None else self.fix,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.rule_id}>"
