"""Deterministic hashing utilities.

Provides canonical JSON serialization and SHA-256 hashing for artifacts.
Same input always produces the same output regardless of dict key order.

Pydantic models must be converted with model_dump(mode="json") before being
passed here; these functions operate on plain dicts and primitives only.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> bytes:
    """Serialize data to canonical JSON bytes (sorted keys, compact, UTF-8)."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def canonical_key(value: Any) -> str:
    """Stable string identity for a JSON value, used for set-style dedupe."""
    if isinstance(value, str):
        return "s:" + value
    return "j:" + canonical_json(value).decode("utf-8")


def content_hash(payload: dict) -> str:
    """SHA-256 hex digest of a JSON-ready dict."""
    return hashlib.sha256(canonical_json(payload)).hexdigest()
