"""Rule registry and the ``@rule`` decorator.

The rule catalog is data: a registry of independent rule objects that can be
added, removed or disabled without touching the linter's control flow.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable, Iterator, Optional, Union

from artifact_compiler.exceptions import RuleConfigError
from artifact_compiler.lint.protocols import Rule, severity_for_rule_id
from artifact_compiler.models.sections import Section
from artifact_compiler.models.violation import Severity, Violation

if TYPE_CHECKING:
    from artifact_compiler.lint.linter import LintContext

# A check function yields ready Violations or (location, message[, fix]) tuples.
Finding = Union[Violation, tuple]
CheckFunction = Callable[["LintContext"], Iterable[Finding]]


def _first_line(doc: str | None) -> str:
    lines = (doc or "").strip().splitlines()
    return lines[0] if lines else ""


class FunctionRule(Rule):
    """Rule backed by a plain check function."""

    def __init__(
        self,
        rule_id: str,
        func: CheckFunction,
        *,
        sections: Iterable[Section] = (),
        per_item: bool = False,
        severity: Severity | None = None,
        summary: str = "",
        fix: str | None = None,
    ) -> None:
        self.rule_id = rule_id
        self.func = func
        self.sections = frozenset(sections)
        self.per_item = per_item
        self.summary = summary or _first_line(func.__doc__)
        self.fix = fix
        self._severity = severity

    @property
    def severity(self) -> Severity:
        if self._severity is not None:
            return self._severity
        return super().severity

    def check(self, ctx: LintContext) -> Iterator[Violation]:
        for finding in self.func(ctx):
            if isinstance(finding, Violation):
                yield finding
            else:
                location, message, *rest = finding
                yield self.violation(message, location, *rest)


def rule(
    rule_id: str,
    *,
    sections: Iterable[Section] = (),
    per_item: bool = False,
    severity: Severity | None = None,
    summary: str = "",
    fix: str | None = None,
) -> Callable[[CheckFunction], FunctionRule]:
    """Decorator turning a check function into a FunctionRule.

    Example::

        @rule("WZ-001", sections=[Section.HYPOTHESIS_SLATE], fix="Drop the TODO")
        def no_todo(ctx):
            for item in ctx.active(Section.HYPOTHESIS_SLATE):
                if "TODO" in item.text("claim"):
                    yield ctx.location(item), f"{item.id} has a TODO claim"
    """

    def decorator(func: CheckFunction) -> FunctionRule:
        return FunctionRule(
            rule_id, func, sections=sections, per_item=per_item,
            severity=severity, summary=summary, fix=fix,
        )

    return decorator


class RuleRegistry:
    """Ordered collection of rules keyed by rule id."""

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for r in rules:
            self.register(r)

    def register(self, rule_obj: Rule) -> Rule:
        """Add a rule.

        Raises:
            RuleConfigError: If the id lacks an E/W/I prefix, the prefix
                disagrees with the rule's severity, or the id is taken.
        """
        implied = severity_for_rule_id(rule_obj.rule_id)
        if implied is None:
            raise RuleConfigError(
                f"Rule id {rule_obj.rule_id!r} must start with E, W or I"
            )
        if rule_obj.severity != implied:
            raise RuleConfigError(
                f"Rule {rule_obj.rule_id} is declared {rule_obj.severity.value} "
                f"but its prefix implies {implied.value}"
            )
        if rule_obj.rule_id in self._rules:
            raise RuleConfigError(
                f"Rule {rule_obj.rule_id} is already registered. "
                f"Unregister it first to re-register."
            )
        self._rules[rule_obj.rule_id] = rule_obj
        return rule_obj

    def rule(self, rule_id: str, **kwargs) -> Callable[[CheckFunction], FunctionRule]:
        """Decorator form of ``register``; accepts the same options as ``rule``."""

        def decorator(func: CheckFunction) -> FunctionRule:
            return self.register(rule(rule_id, **kwargs)(func))  # type: ignore[return-value]

        return decorator

    def extend(self, rules: Iterable[Rule]) -> None:
        for r in rules:
            self.register(r)

    def unregister(self, rule_id: str) -> None:
        self._rules.pop(rule_id, None)

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rule_ids(self) -> list[str]:
        return sorted(self._rules)


def default_registry() -> RuleRegistry:
    """A fresh registry holding the built-in rule catalog."""
    from artifact_compiler.lint.builtin import BUILTIN_RULES

    return RuleRegistry(BUILTIN_RULES)
