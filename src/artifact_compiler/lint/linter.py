"""Linter: runs the rule registry over a merged artifact.

Full mode evaluates every enabled rule and is what compile and publish use.
Incremental mode (``lint_delta``) applies one candidate operation to a copy
of the artifact and evaluates only the rules whose scope lies within the
sections that operation touches. It is a fast pre-check, never a substitute
for the full pass before publish.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from artifact_compiler.engine.ids import IdAllocator, ItemIndex, parse_id
from artifact_compiler.lint.registry import RuleRegistry, default_registry
from artifact_compiler.models.config import CompilerConfig
from artifact_compiler.models.operation import Operation, OperationKind
from artifact_compiler.models.sections import Section
from artifact_compiler.models.violation import ValidationReport, Violation

if TYPE_CHECKING:
    from artifact_compiler.lint.protocols import Rule
    from artifact_compiler.models.artifact import Artifact, Item

logger = logging.getLogger(__name__)

# (session, item) -> whether the remote item exists.
ReferenceResolver = Callable[[str, str], bool]

# Fields whose dict keys or list entries name other items.
REFERENCE_FIELDS: dict[Section, tuple[str, ...]] = {
    Section.PREDICTIONS_TABLE: ("predictions",),
    Section.DISCRIMINATIVE_TESTS: ("expected_outcomes",),
    Section.ANOMALY_REGISTER: ("conflicts_with",),
}


def referenced_ids(section: Section, fields: dict) -> list[str]:
    """Item IDs named by an item's reference fields, in order of appearance."""
    found: list[str] = []
    for name in REFERENCE_FIELDS.get(section, ()):
        value = fields.get(name)
        if isinstance(value, dict):
            candidates: Iterable = value.keys()
        elif isinstance(value, list):
            candidates = value
        else:
            continue
        for candidate in candidates:
            if isinstance(candidate, str) and parse_id(candidate.strip()) is not None:
                found.append(candidate.strip())
    return found


@dataclass
class LintContext:
    """Read-only view handed to every rule.

    ``focus`` is set in incremental mode; per-item rules restrict themselves
    to those sections through ``in_scope``.
    """

    artifact: Artifact
    config: CompilerConfig
    resolver: Optional[ReferenceResolver] = None
    focus: Optional[frozenset[Section]] = None
    index: ItemIndex = field(init=False)

    def __post_init__(self) -> None:
        self.index = ItemIndex(self.artifact)

    def active(self, section: Section) -> list[Item]:
        return self.artifact.active_items(section)

    def counted(self, section: Section) -> list[Item]:
        """Items that count toward min/max rules under the configured policy."""
        if self.config.count_killed_items:
            return list(self.artifact.items(section))
        return self.active(section)

    def in_scope(self, sections: Iterable[Section]) -> list[Section]:
        return [s for s in sections if self.focus is None or s in self.focus]

    @staticmethod
    def location(item: Item, field_name: str | None = None) -> str:
        base = f"{item.section.value}/{item.id}"
        return f"{base}.{field_name}" if field_name else base


class Linter:
    """Evaluates a rule registry against artifacts."""

    def __init__(
        self,
        config: CompilerConfig | None = None,
        registry: RuleRegistry | None = None,
        resolver: ReferenceResolver | None = None,
    ) -> None:
        self._config = config or CompilerConfig()
        self._registry = registry if registry is not None else default_registry()
        self._resolver = resolver

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def rules(self) -> list[Rule]:
        """Enabled rules, in registration order."""
        disabled = self._config.disabled_rules
        return [r for r in self._registry if r.rule_id not in disabled]

    def lint(
        self, artifact: Artifact, *, extra_violations: Iterable[Violation] = ()
    ) -> ValidationReport:
        """Full validation pass.

        ``extra_violations`` carries parse and merge rejections recorded
        upstream so that the report covers the whole compilation.
        """
        ctx = LintContext(artifact, self._config, self._resolver)
        violations = self._run(self.rules, ctx)
        violations.extend(extra_violations)
        return self._report(violations)

    def lint_delta(
        self,
        artifact: Artifact,
        operation: Operation,
        *,
        allocator: IdAllocator | None = None,
    ) -> ValidationReport:
        """Check one candidate operation against a copy of ``artifact``."""
        from artifact_compiler.engine.merge import MergeEngine

        candidate = artifact.model_copy(deep=True)
        allocator = allocator.copy() if allocator is not None else IdAllocator.for_artifact(candidate)
        merge_violations: list[Violation] = []
        outcome = MergeEngine(self._config).apply(candidate, allocator, operation, merge_violations)

        affected = {operation.section}
        item = candidate.find_item(outcome.item_id) if outcome.item_id else None
        if item is not None and operation.kind != OperationKind.KILL:
            for ref in referenced_ids(item.section, item.fields):
                parsed = parse_id(ref)
                if parsed is not None:
                    affected.add(parsed[0])
        focus = frozenset(affected)

        selected = [r for r in self.rules if self._in_incremental_scope(r, focus)]
        logger.debug("Incremental lint of %r: %d of %d rules in scope",
                     operation, len(selected), len(self.rules))
        ctx = LintContext(candidate, self._config, self._resolver, focus=focus)
        violations = self._run(selected, ctx)
        violations.extend(merge_violations)
        return self._report(violations)

    @staticmethod
    def _in_incremental_scope(rule_obj: Rule, focus: frozenset[Section]) -> bool:
        if not rule_obj.sections:
            return False
        if rule_obj.per_item:
            return bool(rule_obj.sections & focus)
        return rule_obj.sections <= focus

    def _run(self, rules: Iterable[Rule], ctx: LintContext) -> list[Violation]:
        violations: list[Violation] = []
        for rule_obj in rules:
            try:
                found = list(rule_obj.check(ctx))
            except Exception as exc:
                # Failing rules are logged and skipped.
                logger.error("Rule %s failed: %s", rule_obj.rule_id, exc, exc_info=True)
                continue
            violations.extend(found)
        return violations

    def _report(self, violations: Iterable[Violation]) -> ValidationReport:
        disabled = self._config.disabled_rules
        return ValidationReport.from_violations(v for v in violations if v.rule_id not in disabled)


def lint(artifact: Artifact, config: CompilerConfig | None = None) -> ValidationReport:
    """Lint with the built-in catalog."""
    return Linter(config).lint(artifact)
