"""Citation anchor grammar.

An anchor is one entry of an item's ``anchors`` list. Recognized forms:

* quote anchor:    ``§42``, ``§42-45``, ``§42, §57``
* inference:       ``inference``, ``[inference]``, ``[inference] from §42``
* synthesis:       ``[synthesis]`` (optionally followed by text)
* external source: ``EV-001``, ``EV-001#E2``, ``[external: Smith 2019]``
* axiomatic:       ``[axiomatic]``
"""

from __future__ import annotations

import enum
import re
from typing import Iterable


class AnchorKind(str, enum.Enum):
    QUOTE = "quote"
    INFERENCE = "inference"
    SYNTHESIS = "synthesis"
    EXTERNAL = "external"
    AXIOMATIC = "axiomatic"
    UNKNOWN = "unknown"


_SECTION_REF = r"§\s?\d+(?:\s?-\s?\d+)?"
_QUOTE_RE = re.compile(rf"^{_SECTION_REF}(?:\s*,\s*{_SECTION_REF})*$")
_SECTION_SPAN_RE = re.compile(r"§\s?(\d+)(?:\s?-\s?(\d+))?")
_INFERENCE_RE = re.compile(r"^(?:inference|\[inference\](?:\s+from\s+\S.*)?)$", re.IGNORECASE)
_SYNTHESIS_RE = re.compile(r"^\[synthesis\](?:\s+\S.*)?$", re.IGNORECASE)
_EVIDENCE_RE = re.compile(r"^EV-\d{3,}(?:#E\d+)?$")
_EXTERNAL_RE = re.compile(r"^\[external:\s*\S[^\]]*\]$", re.IGNORECASE)
_AXIOMATIC_RE = re.compile(r"^\[axiomatic\]$", re.IGNORECASE)


def classify_anchor(anchor: str) -> AnchorKind:
    text = anchor.strip()
    if _QUOTE_RE.match(text):
        return AnchorKind.QUOTE
    if _INFERENCE_RE.match(text):
        return AnchorKind.INFERENCE
    if _SYNTHESIS_RE.match(text):
        return AnchorKind.SYNTHESIS
    if _EVIDENCE_RE.match(text) or _EXTERNAL_RE.match(text):
        return AnchorKind.EXTERNAL
    if _AXIOMATIC_RE.match(text):
        return AnchorKind.AXIOMATIC
    return AnchorKind.UNKNOWN


def extract_section_refs(anchors: Iterable[str]) -> list[tuple[int, int]]:
    """All ``§n`` / ``§n-m`` spans mentioned in the anchors, as (start, end)."""
    spans = []
    for anchor in anchors:
        for match in _SECTION_SPAN_RE.finditer(anchor):
            start = int(match.group(1))
            end = int(match.group(2)) if match.group(2) else start
            spans.append((start, end))
    return spans


def is_bare_inference(anchor: str) -> bool:
    """True for an inference marker that does not say what it is inferred from."""
    lower = anchor.strip().lower()
    return lower in ("inference", "[inference]") or ("[inference]" in lower and "from" not in lower)


def evidence_id(anchor: str) -> str | None:
    """The ``EV-nnn`` record id an anchor cites, without any ``#En`` suffix."""
    text = anchor.strip()
    if not _EVIDENCE_RE.match(text):
        return None
    return text.split("#", 1)[0]
