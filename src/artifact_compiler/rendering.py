"""Canonical text renderings of artifacts and reports.

``render_markdown`` produces the outbound artifact document: YAML-style front
matter, then the seven sections in fixed order with items sorted by numeric
ID (discriminative tests rank by total score, highest first). Killed items
stay in place, struck through, with a kill block.

``format_report_text`` produces the human-readable validation report grouped
by severity.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Iterable

from artifact_compiler.engine.ids import id_sort_key
from artifact_compiler.models.sections import SECTION_ORDER, Section
from artifact_compiler.models.violation import Severity

if TYPE_CHECKING:
    from artifact_compiler.models.artifact import Artifact, ArtifactMetadata, Item
    from artifact_compiler.models.snapshot import CompiledSnapshot
    from artifact_compiler.models.violation import ValidationReport

SCORE_KEYS = ("likelihood_ratio", "cost", "speed", "ambiguity")
MAX_SCORE = 12

# Labelled scalar fields rendered under each item heading, in order.
_ITEM_FIELDS: dict[Section, tuple[tuple[str, str], ...]] = {
    Section.HYPOTHESIS_SLATE: (("claim", "Claim"), ("mechanism", "Mechanism")),
    Section.DISCRIMINATIVE_TESTS: (("procedure", "Procedure"), ("discriminates", "Discriminates")),
    Section.ASSUMPTION_LEDGER: (
        ("statement", "Statement"), ("load", "Load"), ("test", "Test"),
        ("status", "Status"), ("calculation", "Calculation"), ("implication", "Implication"),
    ),
    Section.ANOMALY_REGISTER: (
        ("observation", "Observation"), ("status", "Quarantine status"),
        ("resolution_plan", "Resolution plan"),
    ),
    Section.ADVERSARIAL_CRITIQUE: (
        ("attack", "Attack"), ("evidence", "Evidence"), ("current_status", "Current status"),
    ),
}

_OPTIONAL_FIELDS = frozenset({"status", "calculation", "implication", "resolution_plan"})


def total_score(score: Any) -> int:
    """Sum of the four 0-3 score components; missing parts count as 0."""
    if not isinstance(score, dict):
        return 0
    total = 0
    for key in SCORE_KEYS:
        value = score.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            total += int(value)
    return total


def _inline(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _cell(value: Any) -> str:
    return _inline(value).replace("|", "\\|").replace("\n", "<br/>")


def _string_list(values: Any, empty: str = "inference") -> str:
    if not isinstance(values, list):
        return empty
    strings = [v.strip() for v in values if isinstance(v, str) and v.strip()]
    return ", ".join(strings) if strings else empty


def _yaml(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _iso(dt) -> str:
    return dt.isoformat() if dt is not None else ""


def _sorted(items: Iterable[Item]) -> list[Item]:
    return sorted(items, key=lambda i: id_sort_key(i.id))


def _ranked(items: Iterable[Item]) -> list[Item]:
    """Tests by total score, highest first; ties keep ID order."""
    return sorted(items, key=lambda i: (-total_score(i.fields.get("score")), id_sort_key(i.id)))


def _heading(item: Item, title: str) -> str:
    text = f"{item.id}: {title}"
    return f"### ~~{text}~~" if item.is_killed else f"### {text}"


def _kill_block(item: Item) -> list[str]:
    if not item.is_killed:
        return []
    lines = ["", "**Killed**: true"]
    if item.killed_by:
        lines.append(f"**Killed by**: {item.killed_by}")
    if item.killed_at:
        lines.append(f"**Killed at**: {_iso(item.killed_at)}")
    if item.kill_reason:
        lines.append(f"**Kill reason**: {item.kill_reason}")
    return lines


def render_front_matter(metadata: ArtifactMetadata) -> list[str]:
    lines = [
        "---",
        f"session_id: {_yaml(metadata.session_id)}",
        f"created_at: {_yaml(_iso(metadata.created_at))}",
        f"updated_at: {_yaml(_iso(metadata.updated_at))}",
        f"version: {metadata.version}",
        "contributors:",
    ]
    if not metadata.contributors:
        lines.append("  []")
    for contributor in metadata.contributors:
        lines.append(f"  - agent: {_yaml(contributor.agent)}")
        if contributor.contributed_at:
            lines.append(f"    contributed_at: {_yaml(_iso(contributor.contributed_at))}")
    status = getattr(metadata.status, "value", metadata.status)
    lines += [f"status: {_yaml(status)}", "---"]
    return lines


def _render_thread(items: list[Item]) -> list[str]:
    lines = ["## 1. Research Thread", ""]
    thread = items[0] if items else None
    fields = thread.fields if thread is not None else {}
    lines += [
        f"**{thread.id if thread else 'RT'}**: {_inline(fields.get('statement'))}",
        "",
        f"**Context**: {_inline(fields.get('context'))}",
        "",
        f"**Why it matters**: {_inline(fields.get('why_it_matters'))}",
        "",
        f"**Anchors**: {_string_list(fields.get('anchors'))}",
    ]
    if thread is not None:
        lines += _kill_block(thread)
    return lines + [""]


def _render_fields(item: Item) -> list[str]:
    lines = []
    for key, label in _ITEM_FIELDS.get(item.section, ()):
        value = _inline(item.fields.get(key))
        if value or key not in _OPTIONAL_FIELDS:
            lines.append(f"**{label}**: {value}")
    return lines


def _render_hypotheses(items: list[Item]) -> list[str]:
    lines = ["## 2. Hypothesis Slate", ""]
    for item in _sorted(items):
        third = item.fields.get("third_alternative") is True
        title = _inline(item.name)
        if third and "third alternative" not in title.lower():
            title = f"{title} (Third Alternative)"
        lines.append(_heading(item, title))
        lines += _render_fields(item)
        lines.append(f"**Anchors**: {_string_list(item.fields.get('anchors'))}")
        if third:
            lines.append("**Third alternative**: true")
        lines += _kill_block(item) + [""]
    return lines


def _render_predictions(items: list[Item], hypothesis_ids: list[str]) -> list[str]:
    header = ["ID", "Observation/Condition", *hypothesis_ids]
    lines = [
        "## 3. Predictions Table",
        "",
        "| " + " | ".join(header) + " |",
        "| " + " | ".join("---" for _ in header) + " |",
    ]
    for item in _sorted(items):
        predictions = item.fields.get("predictions")
        if not isinstance(predictions, dict):
            predictions = {}
        row = [f"~~{item.id}~~" if item.is_killed else item.id, _cell(item.fields.get("condition"))]
        for hid in hypothesis_ids:
            value = predictions.get(hid, predictions.get(hid.lower()))
            row.append(_cell(value) if value is not None else "—")
        lines.append("| " + " | ".join(row) + " |")
    return lines + [""]


def _render_tests(items: list[Item]) -> list[str]:
    lines = ["## 4. Discriminative Tests", ""]
    for item in _ranked(items):
        score = item.fields.get("score")
        lines.append(_heading(item, f"{_inline(item.name)} (Score: {total_score(score)}/{MAX_SCORE})"))
        lines += _render_fields(item)
        lines.append("**Expected outcomes**:")
        outcomes = item.fields.get("expected_outcomes")
        if isinstance(outcomes, dict):
            for key, value in outcomes.items():
                lines.append(f"- {key}: {_inline(value)}")
        lines.append(f"**Potency check**: {_inline(item.fields.get('potency_check'))}")
        if _inline(item.fields.get("feasibility")):
            lines.append(f"**Feasibility**: {_inline(item.fields.get('feasibility'))}")
        if isinstance(score, dict):
            parts = ", ".join(f"{key}={score.get(key, 0)}" for key in SCORE_KEYS)
            lines.append(f"**Evidence-per-week score**: {parts}")
        lines += _kill_block(item) + [""]
    return lines


def _render_assumptions(items: list[Item]) -> list[str]:
    lines = ["## 5. Assumption Ledger", ""]
    for item in _sorted(items):
        lines.append(_heading(item, _inline(item.name)))
        fields = _render_fields(item)
        if item.fields.get("scale_check") is True:
            # Scale-check marker sits after the status line, before the calculation.
            at = next((i for i, line in enumerate(fields) if line.startswith("**Calculation**")), len(fields))
            fields.insert(at, "**Scale check**: true")
        lines += fields + _kill_block(item) + [""]
    return lines


def _render_anomalies(items: list[Item]) -> list[str]:
    lines = ["## 6. Anomaly Register", ""]
    if not any(item.is_active for item in items):
        return lines + ["None registered.", ""]
    for item in _sorted(items):
        lines.append(_heading(item, _inline(item.name)))
        fields = _render_fields(item)
        fields.insert(1, f"**Conflicts with**: {_string_list(item.fields.get('conflicts_with'), '—')}")
        lines += fields + _kill_block(item) + [""]
    return lines


def _render_critiques(items: list[Item]) -> list[str]:
    lines = ["## 7. Adversarial Critique", ""]
    for item in _sorted(items):
        lines.append(_heading(item, _inline(item.name)))
        lines += _render_fields(item)
        if item.fields.get("real_third_alternative") is True:
            lines.append("**Real third alternative**: true")
        lines += _kill_block(item) + [""]
    return lines


def render_markdown(artifact: Artifact) -> str:
    """Render an artifact as canonical markdown. Output ends with one newline."""
    get = artifact.items
    hypothesis_ids = [item.id for item in _sorted(get(Section.HYPOTHESIS_SLATE))]

    lines = render_front_matter(artifact.metadata)
    lines += ["", f"# Research Artifact: {artifact.metadata.session_id}", ""]
    lines += _render_thread(get(Section.RESEARCH_THREAD))
    lines += _render_hypotheses(get(Section.HYPOTHESIS_SLATE))
    lines += _render_predictions(get(Section.PREDICTIONS_TABLE), hypothesis_ids)
    lines += _render_tests(get(Section.DISCRIMINATIVE_TESTS))
    lines += _render_assumptions(get(Section.ASSUMPTION_LEDGER))
    lines += _render_anomalies(get(Section.ANOMALY_REGISTER))
    lines += _render_critiques(get(Section.ADVERSARIAL_CRITIQUE))
    return "\n".join(lines).rstrip() + "\n"


def render_json(artifact: Artifact) -> str:
    """Deterministic JSON rendering of an artifact (sections in fixed order)."""
    return json.dumps(artifact.to_canonical_dict(), indent=2, ensure_ascii=False)


_GROUPS = (
    (Severity.ERROR, "Errors (must fix):", True),
    (Severity.WARNING, "Warnings (should fix):", True),
    (Severity.INFO, "Info:", False),
)


def format_report_text(report: ValidationReport, artifact_name: str | None = None) -> str:
    """Human-readable report grouped by severity, with fix hints."""
    summary = report.summary
    lines = [
        "Artifact Linter Report",
        "======================",
        f"Artifact: {artifact_name or 'artifact'}",
        f"Status: {'VALID' if report.valid else 'INVALID'} "
        f"({summary.errors} errors, {summary.warnings} warnings, {summary.info} info)",
        "",
    ]
    for severity, title, show_fix in _GROUPS:
        group = report.by_severity(severity)
        if not group:
            continue
        lines.append(title)
        for v in group:
            where = f" [{v.location}]" if v.location else ""
            lines.append(f"  {v.rule_id}: {v.message}{where}")
            if show_fix and v.fix:
                lines.append(f"    → {v.fix}")
        lines.append("")
    return "\n".join(lines)


def format_snapshot_summary(snapshot: CompiledSnapshot) -> str:
    """One-paragraph text summary of a snapshot (version, counts, diff)."""
    counts = ", ".join(
        f"{section.value}={snapshot.statistics[section].active}/{snapshot.statistics[section].total}"
        for section in SECTION_ORDER
        if section in snapshot.statistics
    )
    state = "published" if snapshot.published else ("publishable" if snapshot.publishable else "not publishable")
    return (
        f"{snapshot.session_id} v{snapshot.version} ({state})\n"
        f"active/total: {counts}\n"
        f"changes: {snapshot.diff.describe()}"
    )
