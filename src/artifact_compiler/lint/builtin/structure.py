"""Per-section structural rules.

Count rules read the configured minimum / maximum for their section and count
items through ``ctx.counted`` (active items only unless ``count_killed_items``
is set). Field rules check each active item; killed items are frozen and are
not re-linted for content.
"""

from __future__ import annotations

import re

from artifact_compiler.engine.ids import id_sort_key
from artifact_compiler.lint.registry import RuleRegistry
from artifact_compiler.models.sections import Section

rules = RuleRegistry()

RT = Section.RESEARCH_THREAD
H = Section.HYPOTHESIS_SLATE
P = Section.PREDICTIONS_TABLE
T = Section.DISCRIMINATIVE_TESTS
A = Section.ASSUMPTION_LEDGER
C = Section.ADVERSARIAL_CRITIQUE

_THIRD_ALTERNATIVE_RE = re.compile(r"third\s+alternative", re.IGNORECASE)


def _minimum(ctx, section: Section, noun: str):
    minimum = ctx.config.minimum_counts.get(section)
    if minimum is None:
        return
    count = len(ctx.counted(section))
    if count < minimum:
        qualifier = "" if ctx.config.count_killed_items else "active "
        yield section.value, f"{noun} has {count} {qualifier}items (minimum {minimum})"


def _missing_text(ctx, section: Section, field_name: str, label: str):
    for item in ctx.active(section):
        if not item.text(field_name):
            yield ctx.location(item, field_name), f"{item.id} is missing {label}"


# ----------------------------------------------------------------------
# Research thread
# ----------------------------------------------------------------------


def _thread(ctx):
    items = ctx.active(RT)
    return items[0] if items else None


@rules.rule("ER-001", sections=[RT],
            fix="ADD or EDIT the research_thread with a non-empty statement")
def thread_statement(ctx):
    """Research thread has a statement."""
    item = _thread(ctx)
    if item is None or not item.text("statement"):
        yield "research_thread", "Research thread statement is empty"


@rules.rule("ER-002", sections=[RT],
            fix="ADD or EDIT the research_thread with a non-empty context")
def thread_context(ctx):
    """Research thread has a context."""
    item = _thread(ctx)
    if item is None or not item.text("context"):
        yield "research_thread", "Research thread context is empty"


@rules.rule("WR-001", sections=[RT],
            fix="Add at least one transcript anchor (e.g., §42) or 'inference'")
def thread_anchors(ctx):
    """Research thread cites at least one anchor."""
    item = _thread(ctx)
    if item is not None and not item.anchors:
        yield ctx.location(item, "anchors"), "Research thread has no anchors"


@rules.rule("IR-001", sections=[RT])
def thread_edited(ctx):
    """Research thread was edited after creation."""
    for item in ctx.artifact.items(RT):
        if item.revision > 0:
            yield ctx.location(item), f"Research thread {item.id} edited {item.revision} time(s) after creation"


# ----------------------------------------------------------------------
# Hypothesis slate
# ----------------------------------------------------------------------


@rules.rule("EH-001", sections=[H],
            fix="Add hypotheses (including a third alternative) via ADD deltas")
def hypotheses_minimum(ctx):
    """Hypothesis slate meets its minimum size."""
    yield from _minimum(ctx, H, "Hypothesis slate")


@rules.rule("EH-002", sections=[H], fix="KILL or consolidate hypotheses")
def hypotheses_maximum(ctx):
    """Hypothesis slate does not exceed its maximum size."""
    maximum = ctx.config.maximum_counts.get(H)
    count = len(ctx.counted(H))
    if maximum is not None and count > maximum:
        yield H.value, f"Hypothesis slate has {count} items (maximum {maximum})"


def is_third_alternative(item) -> bool:
    return item.fields.get("third_alternative") is True or bool(_THIRD_ALTERNATIVE_RE.search(item.name))


@rules.rule("EH-003", sections=[H],
            fix="Ensure at least one hypothesis is explicitly labeled as the third alternative")
def third_alternative(ctx):
    """An active hypothesis is labeled as the third alternative."""
    if not any(is_third_alternative(item) for item in ctx.active(H)):
        yield H.value, "No third alternative hypothesis is present"


@rules.rule("EH-004", sections=[H], per_item=True, fix="Add a non-empty claim field")
def hypothesis_claim(ctx):
    """Every active hypothesis has a claim."""
    yield from _missing_text(ctx, H, "claim", "claim")


@rules.rule("WH-001", sections=[H], per_item=True,
            fix="Add transcript anchors (e.g., §42) or 'inference'")
def hypothesis_anchors(ctx):
    """Every active hypothesis cites anchors."""
    for item in ctx.active(H):
        if not item.anchors:
            yield ctx.location(item, "anchors"), f"{item.id} is missing anchors"


# ----------------------------------------------------------------------
# Predictions table
# ----------------------------------------------------------------------


@rules.rule("EP-001", sections=[P], fix="Add predictions via ADD deltas")
def predictions_minimum(ctx):
    """Predictions table meets its minimum size."""
    yield from _minimum(ctx, P, "Predictions table")


@rules.rule("WP-001", sections=[P, H],
            fix="Adjust the prediction so at least two hypotheses differ in expected outcome")
def prediction_discriminates(ctx):
    """Each prediction row separates at least two hypotheses."""
    hypothesis_ids = sorted((h.id for h in ctx.active(H)), key=id_sort_key)
    if len(hypothesis_ids) < 2:
        return
    for item in ctx.active(P):
        predictions = item.fields.get("predictions")
        if not isinstance(predictions, dict):
            predictions = {}
        values = [str(predictions.get(hid) or "").strip() for hid in hypothesis_ids]
        present = [v for v in values if v]
        if present and len(set(present)) <= 1:
            yield (ctx.location(item, "predictions"),
                   f"{item.id} does not discriminate (all hypothesis outcomes identical or missing)")


# ----------------------------------------------------------------------
# Discriminative tests
# ----------------------------------------------------------------------


@rules.rule("ET-001", sections=[T], fix="Add discriminative tests via ADD deltas")
def tests_minimum(ctx):
    """Discriminative tests meet their minimum count."""
    yield from _minimum(ctx, T, "Discriminative tests")


@rules.rule("ET-002", sections=[T], per_item=True, fix="Add a non-empty procedure field")
def discriminative_procedure(ctx):
    """Every active test has a procedure."""
    yield from _missing_text(ctx, T, "procedure", "procedure")


@rules.rule("ET-003", sections=[T], per_item=True,
            fix="Add an expected_outcomes mapping (e.g., {'H1': '...', 'H2': '...'})")
def discriminative_outcomes(ctx):
    """Every active test maps hypotheses to expected outcomes."""
    for item in ctx.active(T):
        outcomes = item.fields.get("expected_outcomes")
        if not isinstance(outcomes, dict) or not outcomes:
            yield ctx.location(item, "expected_outcomes"), f"{item.id} is missing expected outcomes"


@rules.rule("WT-001", sections=[T], per_item=True,
            fix="Add a potency_check that separates a true negative from a failed assay")
def discriminative_potency(ctx):
    """Every active test has a potency check."""
    yield from _missing_text(ctx, T, "potency_check", "potency check")


@rules.rule("WT-003", sections=[T], per_item=True,
            fix="Add score: {likelihood_ratio, cost, speed, ambiguity} with 0-3 values")
def discriminative_score(ctx):
    """Every active test carries a score breakdown."""
    for item in ctx.active(T):
        if not isinstance(item.fields.get("score"), dict):
            yield ctx.location(item, "score"), f"{item.id} is missing score breakdown"


# ----------------------------------------------------------------------
# Assumption ledger
# ----------------------------------------------------------------------


@rules.rule("EA-001", sections=[A], fix="Add assumptions via ADD deltas")
def assumptions_minimum(ctx):
    """Assumption ledger meets its minimum size."""
    yield from _minimum(ctx, A, "Assumption ledger")


@rules.rule("EA-002", sections=[A], fix="Add an assumption with scale_check: true and a calculation")
def scale_check_present(ctx):
    """An active assumption is a scale / physics check."""
    if not any(item.fields.get("scale_check") is True for item in ctx.active(A)):
        yield A.value, "No scale/physics check assumption found"


@rules.rule("EA-003", sections=[A], per_item=True, fix="Add a non-empty statement field")
def assumption_statement(ctx):
    """Every active assumption has a statement."""
    yield from _missing_text(ctx, A, "statement", "statement")


@rules.rule("WA-003", sections=[A], per_item=True,
            fix="Add a calculation field with explicit numbers and units")
def scale_check_calculation(ctx):
    """Scale-check assumptions show their calculation."""
    for item in ctx.active(A):
        if item.fields.get("scale_check") is True and not item.text("calculation"):
            yield (ctx.location(item, "calculation"),
                   f"{item.id} is a scale check but missing calculation")


# ----------------------------------------------------------------------
# Adversarial critique
# ----------------------------------------------------------------------


@rules.rule("EC-001", sections=[C], fix="Add critiques via ADD deltas")
def critiques_minimum(ctx):
    """Adversarial critique meets its minimum size."""
    yield from _minimum(ctx, C, "Adversarial critique")


@rules.rule("EC-002", sections=[C], per_item=True,
            fix="Add an attack field describing how the framing could be wrong")
def critique_attack(ctx):
    """Every active critique states its attack."""
    yield from _missing_text(ctx, C, "attack", "attack")


@rules.rule("WC-001", sections=[C], fix="Mark at least one critique with real_third_alternative: true")
def critique_third_alternative(ctx):
    """An active critique is marked as a real third alternative."""
    if not any(item.fields.get("real_third_alternative") is True for item in ctx.active(C)):
        yield C.value, "No critique marked as a real third alternative"


@rules.rule("WC-002", sections=[C], per_item=True,
            fix="Add evidence describing what would confirm the critique")
def critique_evidence(ctx):
    """Every active critique names confirming evidence."""
    yield from _missing_text(ctx, C, "evidence", "evidence")


@rules.rule("IC-001", sections=[C], per_item=True,
            fix="Add current_status describing how seriously to take this critique")
def critique_status(ctx):
    """Every active critique records its current status."""
    yield from _missing_text(ctx, C, "current_status", "current status")
