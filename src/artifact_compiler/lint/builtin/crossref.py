"""Cross-section rules: ID conformance and references between items.

Internal references are the ID-shaped keys of ``predictions`` /
``expected_outcomes`` and the ID-shaped entries of ``conflicts_with``. Free
text in those fields is not an ID and is ignored.

Cross-session references are never dereferenced by the merge engine. When a
resolver is configured, WX-004 asks it lazily; a resolver failure is logged
and treated as "unknown", never as a lint failure.
"""

from __future__ import annotations

import logging
from collections import Counter

from artifact_compiler.engine.ids import id_sort_key, parse_id
from artifact_compiler.lint.linter import REFERENCE_FIELDS, referenced_ids
from artifact_compiler.lint.registry import RuleRegistry
from artifact_compiler.models.operation import Relation
from artifact_compiler.models.sections import SECTION_ORDER

logger = logging.getLogger(__name__)

rules = RuleRegistry()

_RELATIONS = frozenset(r.value for r in Relation)
_REFERENCING = tuple(REFERENCE_FIELDS)


@rules.rule("EX-001", fix="Item IDs are assigned by the merge engine; do not hand-craft them")
def id_format(ctx):
    """Every item ID is well formed and carries its section's prefix."""
    for item in ctx.artifact.iter_items():
        parsed = parse_id(item.id)
        if parsed is None or parsed[0] != item.section:
            yield (ctx.location(item),
                   f"{item.id!r} does not match the {item.section.prefix}<n> format of {item.section.value}")


@rules.rule("EX-002", fix="Item IDs are assigned by the merge engine; do not hand-craft them")
def id_unique(ctx):
    """No item ID appears twice in the artifact."""
    counts = Counter(item.id for item in ctx.artifact.iter_items())
    for item_id in sorted((i for i, n in counts.items() if n > 1), key=id_sort_key):
        yield "artifact", f"Item ID {item_id} appears {counts[item_id]} times"


@rules.rule("WX-001", fix="Gaps come from rejected ADDs that once held an ID; no action needed unless unexpected")
def id_gaps(ctx):
    """Item numbers in each section run 1..n without gaps."""
    for section in SECTION_ORDER:
        numbers = set()
        for item in ctx.artifact.items(section):
            parsed = parse_id(item.id)
            if parsed is not None and parsed[0] == section:
                numbers.add(parsed[1])
        if not numbers:
            continue
        missing = [n for n in range(1, max(numbers) + 1) if n not in numbers]
        if missing:
            ids = ", ".join(f"{section.prefix}{n}" for n in missing)
            yield section.value, f"{section.value} has ID gaps: {ids}"


@rules.rule("WX-002", sections=_REFERENCING, per_item=True,
            fix="Reference an existing item ID")
def dangling_reference(ctx):
    """Internal references point at items that exist."""
    for section in ctx.in_scope(_REFERENCING):
        for item in ctx.active(section):
            for ref in referenced_ids(section, item.fields):
                if ref not in ctx.index:
                    yield ctx.location(item), f"{item.id} references unknown item {ref}"


@rules.rule("IX-001", sections=_REFERENCING, per_item=True,
            fix="Point the reference at an active item, or keep it deliberately")
def killed_reference(ctx):
    """Internal references point at killed items."""
    for section in ctx.in_scope(_REFERENCING):
        for item in ctx.active(section):
            for ref in referenced_ids(section, item.fields):
                if ctx.index.is_killed(ref):
                    yield ctx.location(item), f"{item.id} references killed item {ref}"


@rules.rule("WX-003", sections=SECTION_ORDER, per_item=True,
            fix="Use relation one of: " + ", ".join(r.value for r in Relation))
def malformed_cross_reference(ctx):
    """Cross-session references use a known relation and name a valid item."""
    for section in ctx.in_scope(SECTION_ORDER):
        for item in ctx.active(section):
            for ref in item.references:
                if ref.relation not in _RELATIONS:
                    yield (ctx.location(item, "references"),
                           f"{item.id} uses unknown relation {ref.relation!r} for {ref.session}:{ref.item}")
                elif parse_id(ref.item) is None:
                    yield (ctx.location(item, "references"),
                           f"{item.id} references malformed item id {ref.item!r} in {ref.session}")


@rules.rule("WX-004", sections=SECTION_ORDER, per_item=True,
            fix="Check that the referenced session and item exist")
def unresolved_cross_reference(ctx):
    """Cross-session references resolve (only when a resolver is configured)."""
    if ctx.resolver is None:
        return
    for section in ctx.in_scope(SECTION_ORDER):
        for item in ctx.active(section):
            for ref in item.references:
                try:
                    found = ctx.resolver(ref.session, ref.item)
                except Exception as exc:
                    logger.warning("Resolver failed for %s:%s: %s", ref.session, ref.item, exc)
                    continue
                if not found:
                    yield (ctx.location(item, "references"),
                           f"{item.id} references {ref.session}:{ref.item} which could not be resolved")
