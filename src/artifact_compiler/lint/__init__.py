"""Validator / linter package.

Provides the Rule ABC, the rule registry with the built-in catalog, and the
Linter that evaluates it in full or incremental mode.
"""

from artifact_compiler.lint.anchors import AnchorKind, classify_anchor, extract_section_refs
from artifact_compiler.lint.linter import LintContext, Linter, lint
from artifact_compiler.lint.protocols import Rule
from artifact_compiler.lint.registry import FunctionRule, RuleRegistry, default_registry, rule

__all__ = [
    "AnchorKind",
    "FunctionRule",
    "LintContext",
    "Linter",
    "Rule",
    "RuleRegistry",
    "classify_anchor",
    "default_registry",
    "extract_section_refs",
    "lint",
    "rule",
]
