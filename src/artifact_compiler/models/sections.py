"""Section definitions for research artifacts.

Sections are structural constants: seven fixed slots, each with its own item
ID prefix and field schema. They are never created or destroyed at runtime.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Section(str, enum.Enum):
    """The seven fixed artifact sections, valued by their wire names."""

    RESEARCH_THREAD = "research_thread"
    HYPOTHESIS_SLATE = "hypothesis_slate"
    PREDICTIONS_TABLE = "predictions_table"
    DISCRIMINATIVE_TESTS = "discriminative_tests"
    ASSUMPTION_LEDGER = "assumption_ledger"
    ANOMALY_REGISTER = "anomaly_register"
    ADVERSARIAL_CRITIQUE = "adversarial_critique"

    def __repr__(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value

    @property
    def schema(self) -> SectionSchema:
        return SECTION_SCHEMAS[self]

    @property
    def prefix(self) -> str:
        return SECTION_SCHEMAS[self].prefix


@dataclass(frozen=True)
class SectionSchema:
    """Field schema for one section.

    Attributes:
        section: The section this schema describes.
        title: Human-readable heading used when rendering.
        prefix: Item ID prefix (``H`` for hypotheses, ``RT`` for the thread, ...).
        required: Payload fields an ADD must carry.
        optional: Known optional fields (stored verbatim like any other key).
        array_fields: List-valued fields that EDIT merges by union unless the
            sibling ``<field>_replace`` flag is set.
        claim_field: Field holding the item's primary claim text, used by
            provenance rules.
    """

    section: Section
    title: str
    prefix: str
    required: tuple[str, ...]
    optional: tuple[str, ...] = ()
    array_fields: tuple[str, ...] = ("anchors",)
    claim_field: str | None = None


SECTION_SCHEMAS: dict[Section, SectionSchema] = {
    Section.RESEARCH_THREAD: SectionSchema(
        section=Section.RESEARCH_THREAD,
        title="Research Thread",
        prefix="RT",
        required=("statement", "context"),
        optional=("why_it_matters", "anchors"),
        claim_field="statement",
    ),
    Section.HYPOTHESIS_SLATE: SectionSchema(
        section=Section.HYPOTHESIS_SLATE,
        title="Hypothesis Slate",
        prefix="H",
        required=("name", "claim", "mechanism"),
        optional=("anchors", "third_alternative"),
        claim_field="claim",
    ),
    Section.PREDICTIONS_TABLE: SectionSchema(
        section=Section.PREDICTIONS_TABLE,
        title="Predictions Table",
        prefix="P",
        required=("condition", "predictions"),
        optional=("anchors",),
        claim_field="condition",
    ),
    Section.DISCRIMINATIVE_TESTS: SectionSchema(
        section=Section.DISCRIMINATIVE_TESTS,
        title="Discriminative Tests",
        prefix="T",
        required=("name", "procedure", "discriminates", "expected_outcomes", "potency_check"),
        optional=("feasibility", "score", "anchors"),
        claim_field="procedure",
    ),
    Section.ASSUMPTION_LEDGER: SectionSchema(
        section=Section.ASSUMPTION_LEDGER,
        title="Assumption Ledger",
        prefix="A",
        required=("name", "statement", "load", "test"),
        optional=("status", "scale_check", "calculation", "implication", "anchors"),
        claim_field="statement",
    ),
    Section.ANOMALY_REGISTER: SectionSchema(
        section=Section.ANOMALY_REGISTER,
        title="Anomaly Register",
        prefix="X",
        required=("name", "observation", "conflicts_with"),
        optional=("status", "resolution_plan", "anchors"),
        array_fields=("anchors", "conflicts_with"),
        claim_field="observation",
    ),
    Section.ADVERSARIAL_CRITIQUE: SectionSchema(
        section=Section.ADVERSARIAL_CRITIQUE,
        title="Adversarial Critique",
        prefix="C",
        required=("name", "attack", "evidence", "current_status"),
        optional=("real_third_alternative", "anchors"),
        claim_field="attack",
    ),
}

# Render / report order. Matches the declaration order of Section.
SECTION_ORDER: tuple[Section, ...] = tuple(Section)

_PREFIX_TO_SECTION: dict[str, Section] = {s.prefix: sec for sec, s in SECTION_SCHEMAS.items()}


def section_for_prefix(prefix: str) -> Section | None:
    """Return the section owning an item ID prefix, or None."""
    return _PREFIX_TO_SECTION.get(prefix)


def parse_section(value: object) -> Section | None:
    """Coerce a wire value to a Section. Returns None for unrecognized values."""
    if isinstance(value, Section):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Section(value)
    except ValueError:
        return None
