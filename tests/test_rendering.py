"""Tests for markdown / JSON rendering and the text report."""

from __future__ import annotations

import json

from artifact_compiler.engine.log import OperationLog
from artifact_compiler.engine.merge import MergeEngine
from artifact_compiler.engine.versioner import Versioner
from artifact_compiler.lint import Linter
from artifact_compiler.models.artifact import Artifact
from artifact_compiler.models.sections import SECTION_ORDER
from artifact_compiler.models.violation import ValidationReport
from artifact_compiler.rendering import format_report_text, format_snapshot_summary, render_json, render_markdown, total_score

from tests.conftest import BASE_TIME, SESSION_ID, delta, make_message, valid_messages


def _merge(*extra):
    log = OperationLog(SESSION_ID)
    log.extend(valid_messages())
    log.extend(extra)
    return MergeEngine().merge(log.operations(), session_id=SESSION_ID)


def _lines(artifact) -> list[str]:
    return render_markdown(artifact).splitlines()


class TestTotalScore:
    def test_sums_components(self) -> None:
        assert total_score({"likelihood_ratio": 3, "cost": 2, "speed": 2, "ambiguity": 1}) == 8

    def test_missing_and_bad_values(self) -> None:
        assert total_score({"cost": 2, "speed": "fast", "ambiguity": True}) == 2
        assert total_score(None) == 0


class TestMarkdown:
    """Tests for render_markdown."""

    def test_front_matter(self) -> None:
        lines = _lines(_merge().artifact)
        end = lines.index("---", 1)
        front = lines[: end + 1]
        assert front[0] == "---"
        assert f'session_id: "{SESSION_ID}"' in front
        assert "version: 1" in front
        assert 'status: "active"' in front
        assert front.index('  - agent: "agent-a"') < front.index('  - agent: "agent-b"')
        assert lines[end + 2] == f"# Research Artifact: {SESSION_ID}"

    def test_sections_in_order(self) -> None:
        lines = _lines(_merge().artifact)
        headings = [line for line in lines if line.startswith("## ")]
        assert headings == [
            "## 1. Research Thread",
            "## 2. Hypothesis Slate",
            "## 3. Predictions Table",
            "## 4. Discriminative Tests",
            "## 5. Assumption Ledger",
            "## 6. Anomaly Register",
            "## 7. Adversarial Critique",
        ]

    def test_hypotheses(self) -> None:
        lines = _lines(_merge().artifact)
        assert "### H1: Chaperone saturation" in lines
        assert "**Claim**: Chaperone saturation explains the observed signal" in lines
        assert "### H3: Third alternative: both wrong, membrane effect" in lines
        assert "**Third alternative**: true" in lines

    def test_third_alternative_suffix(self) -> None:
        extra = make_message(delta("ADD", "hypothesis_slate", {
            "name": "Osmotic stress", "claim": "c", "mechanism": "m", "third_alternative": True,
        }), n=40)
        lines = _lines(_merge(extra).artifact)
        assert "### H4: Osmotic stress (Third Alternative)" in lines

    def test_predictions_table(self) -> None:
        lines = _lines(_merge().artifact)
        assert "| ID | Observation/Condition | H1 | H2 | H3 |" in lines
        assert "| --- | --- | --- | --- | --- |" in lines
        assert "| P1 | Heat pulse at G1 | stall 1 | no stall | partial |" in lines

    def test_missing_prediction_cell(self) -> None:
        extra = make_message(delta("ADD", "predictions_table", {
            "condition": "Cold | shock", "predictions": {"H1": "stall"},
        }), n=40)
        lines = _lines(_merge(extra).artifact)
        assert "| P4 | Cold \\| shock | stall | — | — |" in lines

    def test_tests_and_score(self) -> None:
        lines = _lines(_merge().artifact)
        assert "### T1: Chaperone titration (Score: 8/12)" in lines
        assert "- H1: rescue" in lines
        assert "**Evidence-per-week score**: likelihood_ratio=3, cost=2, speed=2, ambiguity=1" in lines

    def test_tests_ranked_by_score(self) -> None:
        extra = make_message(
            delta("ADD", "discriminative_tests", {
                "name": "Membrane dye", "procedure": "p", "discriminates": "H3 vs rest",
                "expected_outcomes": {"H3": "dye uptake"}, "potency_check": "c",
                "score": {"likelihood_ratio": 3, "cost": 3, "speed": 3, "ambiguity": 2},
            }),
            delta("ADD", "discriminative_tests", {
                "name": "Unscored", "procedure": "p", "discriminates": "H1 vs H2",
                "expected_outcomes": {"H1": "x"}, "potency_check": "c",
            }),
            n=40,
        )
        headings = [line for line in _lines(_merge(extra).artifact) if line.startswith("### T")]
        assert headings == [
            "### T3: Membrane dye (Score: 11/12)",
            "### T1: Chaperone titration (Score: 8/12)",
            "### T2: Checkpoint knockout (Score: 8/12)",
            "### T4: Unscored (Score: 0/12)",
        ]

    def test_scale_check_before_calculation(self) -> None:
        lines = _lines(_merge().artifact)
        at = lines.index("### A1: Heat dose")
        assert lines[at + 1:at + 6] == [
            "**Statement**: The heat pulse reaches the nucleus within a minute",
            "**Load**: All three hypotheses rely on it",
            "**Test**: Thermal probe",
            "**Scale check**: true",
            "**Calculation**: Diffusion time ~ (10 um)^2 / (1e-7 m^2/s) = 1 ms",
        ]

    def test_empty_anomaly_register(self) -> None:
        lines = _lines(_merge().artifact)
        at = lines.index("## 6. Anomaly Register")
        assert lines[at + 2] == "None registered."

    def test_anomaly(self) -> None:
        extra = make_message(delta("ADD", "anomaly_register", {
            "name": "Cold stall", "observation": "Stall also at 4C", "conflicts_with": ["H1", "H2"],
        }), n=40)
        lines = _lines(_merge(extra).artifact)
        at = lines.index("### X1: Cold stall")
        assert lines[at + 1:at + 3] == ["**Observation**: Stall also at 4C", "**Conflicts with**: H1, H2"]
        assert "None registered." not in lines

    def test_killed_item(self) -> None:
        extra = make_message(
            delta("KILL", "hypothesis_slate", {"reason": "superseded"}, target_id="H2"),
            n=40, sender="agent-c",
        )
        lines = _lines(_merge(extra).artifact)
        assert "### ~~H2: Checkpoint signalling~~" in lines
        assert "**Killed**: true" in lines
        assert "**Killed by**: agent-c" in lines
        assert "**Kill reason**: superseded" in lines
        # Killed hypotheses keep their prediction column.
        assert "| ID | Observation/Condition | H1 | H2 | H3 |" in lines

    def test_critique_marker(self) -> None:
        lines = _lines(_merge().artifact)
        assert "**Real third alternative**: true" in lines

    def test_empty_artifact(self) -> None:
        text = render_markdown(Artifact.empty("RS-empty"))
        assert "**RT**: " in text.splitlines()
        assert "contributors:\n  []" in text
        assert text.endswith("None registered.\n\n## 7. Adversarial Critique\n")

    def test_deterministic(self) -> None:
        assert render_markdown(_merge().artifact) == render_markdown(_merge().artifact)
        assert render_markdown(_merge().artifact).endswith("\n")
        assert not render_markdown(_merge().artifact).endswith("\n\n")


class TestJson:
    def test_section_order(self) -> None:
        data = json.loads(render_json(_merge().artifact))
        assert list(data["sections"]) == [s.value for s in SECTION_ORDER]
        assert data["sections"]["hypothesis_slate"][0]["id"] == "H1"
        assert data["metadata"]["session_id"] == SESSION_ID


class TestReportText:
    """Tests for format_report_text."""

    def test_valid(self) -> None:
        text = format_report_text(ValidationReport(), "draft.md")
        assert text.splitlines()[:4] == [
            "Artifact Linter Report",
            "======================",
            "Artifact: draft.md",
            "Status: VALID (0 errors, 0 warnings, 0 info)",
        ]
        assert "Errors (must fix):" not in text

    def test_grouped_with_fixes(self) -> None:
        extra = make_message(delta("KILL", "hypothesis_slate", {"reason": "x"}, target_id="H2"), n=40)
        report = Linter().lint(_merge(extra).artifact)
        lines = format_report_text(report).splitlines()
        assert lines[2] == "Artifact: artifact"
        assert lines[3].startswith("Status: INVALID (1 errors, ")
        at = lines.index("Errors (must fix):")
        assert lines[at + 1] == "  EH-001: Hypothesis slate has 2 active items (minimum 3) [hypothesis_slate]"
        assert lines[at + 2] == "    → Add hypotheses (including a third alternative) via ADD deltas"


class TestSnapshotSummary:
    def test_summary(self) -> None:
        snap = Versioner().build(_merge(), ValidationReport(), previous=None, cursor=14, created_at=BASE_TIME)
        lines = format_snapshot_summary(snap).splitlines()
        assert lines[0] == f"{SESSION_ID} v1 (publishable)"
        assert "hypothesis_slate=3/3" in lines[1]
        assert lines[2].startswith("changes: research_thread: +RT1; hypothesis_slate: +H1,H2,H3")
