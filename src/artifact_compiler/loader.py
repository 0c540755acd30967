"""Reading inbound message files.

A message file is either a JSON array of message objects, a single JSON
object, or JSON lines (one object per line). Message objects use the
transport's field names: ``message_id``, ``thread_id`` (or ``session_id``),
``sender``, ``timestamp``, ``subject``, ``body``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from artifact_compiler.exceptions import InputFormatError
from artifact_compiler.models.message import InboundMessage


def _records(text: str, source: str) -> list[Any]:
    stripped = text.strip()
    if not stripped:
        return []
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        data = None
    else:
        return data if isinstance(data, list) else [data]

    records = []
    for lineno, line in enumerate(stripped.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise InputFormatError(f"{source}:{lineno}: invalid JSON ({exc.msg})") from exc
    return records


def parse_messages(text: str, *, default_session: str | None = None, source: str = "<input>") -> list[InboundMessage]:
    """Decode message records from text.

    Raises:
        InputFormatError: If the text is not JSON / JSON lines, or a record
            is not a valid message.
    """
    messages = []
    for n, record in enumerate(_records(text, source), start=1):
        if not isinstance(record, dict):
            raise InputFormatError(f"{source}: record {n} is not a JSON object")
        if default_session and "thread_id" not in record and "session_id" not in record:
            record = {**record, "thread_id": default_session}
        record = {k: v for k, v in record.items() if k != "sequence"}
        try:
            messages.append(InboundMessage.model_validate(record))
        except ValidationError as exc:
            raise InputFormatError(f"{source}: record {n} is not a valid message: {exc}") from exc
    return messages


def load_messages(path: str | Path, *, default_session: str | None = None) -> list[InboundMessage]:
    """Read and decode a message file.

    Raises:
        InputFormatError: If the file cannot be read or decoded.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InputFormatError(f"Cannot read {path}: {exc}") from exc
    return parse_messages(text, default_session=default_session, source=str(path))
