"""Configuration models for the artifact compiler.

CompilerConfig holds per-workspace settings: section limits for the merge
engine, counting policy for the linter, corpus range for provenance rules,
and storage / cache knobs.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from artifact_compiler.exceptions import ConfigError
from artifact_compiler.models.sections import Section


def _default_limits() -> dict[Section, int]:
    return {Section.HYPOTHESIS_SLATE: 6, Section.RESEARCH_THREAD: 1}


def _default_minimums() -> dict[Section, int]:
    return {
        Section.HYPOTHESIS_SLATE: 3,
        Section.PREDICTIONS_TABLE: 3,
        Section.DISCRIMINATIVE_TESTS: 2,
        Section.ASSUMPTION_LEDGER: 3,
        Section.ADVERSARIAL_CRITIQUE: 2,
    }


def _default_maximums() -> dict[Section, int]:
    return {Section.HYPOTHESIS_SLATE: 6}


class CompilerConfig(BaseModel):
    """Per-workspace compiler configuration."""

    db_path: str = ":memory:"
    # Merge-time hard caps on active items; an ADD beyond the cap is rejected.
    section_limits: dict[Section, int] = Field(default_factory=_default_limits)
    # Lint-time bounds on active items per section.
    minimum_counts: dict[Section, int] = Field(default_factory=_default_minimums)
    maximum_counts: dict[Section, int] = Field(default_factory=_default_maximums)
    count_killed_items: bool = False
    corpus_min_section: int = 1
    corpus_max_section: int = 236
    evidence_ids: Optional[frozenset[str]] = None  # None = evidence rule disabled
    disabled_rules: frozenset[str] = frozenset()
    delta_subjects: Optional[frozenset[str]] = None  # None = parse every message
    merge_cache_maxsize: int = 16

    @field_validator("corpus_max_section")
    @classmethod
    def _check_range(cls, v: int, info) -> int:
        low = info.data.get("corpus_min_section", 1)
        if v < low:
            raise ValueError(f"corpus_max_section ({v}) is below corpus_min_section ({low})")
        return v

    @classmethod
    def from_file(cls, path: str | Path) -> CompilerConfig:
        """Load a config from a JSON file.

        Raises:
            ConfigError: If the file cannot be read or fails validation.
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Cannot read config {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {path} must contain a JSON object")
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid config {path}: {exc}") from exc

    def limit_for(self, section: Section) -> int | None:
        return self.section_limits.get(section)
