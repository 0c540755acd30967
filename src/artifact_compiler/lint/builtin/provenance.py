"""Provenance and citation rules (EP-P / WP-P / IP-P).

Every non-axiomatic claim should carry a recognized citation form, every
``§n`` anchor must fall inside the corpus range, and a claim resting on
inference alone must say so in its own text.
"""

from __future__ import annotations

import re

from artifact_compiler.lint.anchors import (
    AnchorKind,
    classify_anchor,
    evidence_id,
    extract_section_refs,
    is_bare_inference,
)
from artifact_compiler.lint.registry import RuleRegistry
from artifact_compiler.models.sections import SECTION_ORDER, Section

rules = RuleRegistry()

_INFERENCE_LABEL_RE = re.compile(r"infer", re.IGNORECASE)
_CHASTITY_ANCHOR_RE = re.compile(r"§\s?50(?!\d)")


def _anchored_items(ctx):
    for section in ctx.in_scope(SECTION_ORDER):
        for item in ctx.active(section):
            yield item


@rules.rule("EP-P01", sections=SECTION_ORDER, per_item=True)
def anchor_in_range(ctx):
    """Every §n anchor falls inside the corpus section range."""
    low, high = ctx.config.corpus_min_section, ctx.config.corpus_max_section
    fix = f"Update the anchor to reference a valid corpus section ({low}-{high})"
    for item in _anchored_items(ctx):
        for start, end in extract_section_refs(item.anchors):
            bad = [n for n in dict.fromkeys((start, end)) if n < low or n > high]
            for n in bad:
                yield (ctx.location(item, "anchors"),
                       f"{item.id} references §{n} which is out of range (valid: {low}-{high})", fix)


@rules.rule("WP-P02", sections=SECTION_ORDER, per_item=True,
            fix="Use '[inference] from §n' to cite what the inference is based on")
def bare_inference(ctx):
    """Inference anchors name their source."""
    for item in _anchored_items(ctx):
        if any(is_bare_inference(a) for a in item.anchors):
            yield ctx.location(item, "anchors"), f"{item.id} uses [inference] without source context"


@rules.rule("WP-P03", sections=SECTION_ORDER, per_item=True,
            fix="Use §n, [inference] from §n, [synthesis], EV-nnn, [external: ...] or [axiomatic]")
def unrecognized_anchor(ctx):
    """Every anchor uses a recognized citation form."""
    for item in _anchored_items(ctx):
        for anchor in item.anchors:
            if classify_anchor(anchor) == AnchorKind.UNKNOWN:
                yield ctx.location(item, "anchors"), f"{item.id} has unrecognized citation {anchor!r}"


@rules.rule("WP-P04", sections=SECTION_ORDER, per_item=True,
            fix="Label the claim as an inference in its text, or add a quote anchor")
def inference_unlabeled(ctx):
    """A claim backed only by inference says so in its text."""
    for item in _anchored_items(ctx):
        anchors = item.anchors
        if not anchors or any(classify_anchor(a) != AnchorKind.INFERENCE for a in anchors):
            continue
        claim_field = item.section.schema.claim_field
        text = item.text(claim_field) if claim_field else ""
        if not _INFERENCE_LABEL_RE.search(text):
            yield (ctx.location(item, claim_field),
                   f"{item.id} rests on inference only but its {claim_field} is not labeled as inference")


@rules.rule("WP-P05", sections=SECTION_ORDER, per_item=True,
            fix="Cite an evidence record that exists in the session's evidence pack")
def unknown_evidence(ctx):
    """Cited evidence records exist (only when evidence ids are configured)."""
    known = ctx.config.evidence_ids
    if known is None:
        return
    for item in _anchored_items(ctx):
        cited = [a.strip() for a in item.anchors if evidence_id(a) is not None] + list(item.evidence_refs)
        for ref in dict.fromkeys(cited):
            if ref not in known and (evidence_id(ref) or ref) not in known:
                yield ctx.location(item), f"{item.id} cites unknown evidence record {ref}"


@rules.rule("IP-P02", sections=[Section.DISCRIMINATIVE_TESTS], per_item=True,
            fix="Consider citing §50 for the canonical statement of the potency principle")
def potency_cites_principle(ctx):
    """Potency checks cite §50."""
    for item in ctx.active(Section.DISCRIMINATIVE_TESTS):
        text = item.text("potency_check")
        if text and not _CHASTITY_ANCHOR_RE.search(text):
            yield ctx.location(item, "potency_check"), f"{item.id} potency check doesn't cite §50"
