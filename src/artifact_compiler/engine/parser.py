"""Delta parser: extracts ADD / EDIT / KILL operations from message bodies.

Only fenced blocks explicitly tagged ``delta`` are considered::

    ```delta
    {"operation": "ADD", "section": "hypothesis_slate", ...}
    ```

    :::delta
    {...}
    :::

Anything outside such a block is prose and is ignored, even when it looks
like JSON. Each block is validated on its own; a bad block is rejected with a
single violation and never affects its siblings.

The parser never assigns IDs and never checks that targets exist. Both are
merge-time concerns.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from artifact_compiler.models.operation import CrossReference, Operation, OperationKind
from artifact_compiler.models.sections import Section, parse_section
from artifact_compiler.models.violation import Severity, Violation

if TYPE_CHECKING:
    from artifact_compiler.models.config import CompilerConfig
    from artifact_compiler.models.message import InboundMessage

logger = logging.getLogger(__name__)

# Closing fence must repeat the opening fence exactly (backreference), which
# lets a 4-backtick delta block contain 3-backtick code.
DELTA_BLOCK_RE = re.compile(
    r"(`{3,})delta(?:[ \t][^\n]*)?\r?\n(.*?)\1"
    r"|(:{3,})delta(?:[ \t][^\n]*)?\r?\n(.*?)\3",
    re.DOTALL,
)

_COMMENT_RE = re.compile(r'("(?:[^"\\]|\\.)*")|(//[^\n]*)|(/\*.*?\*/)', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")

# (message, fix) per rejection rule. Messages are formatted with a detail string.
PARSE_RULES: dict[str, tuple[str, str]] = {
    "WD-001": ("Invalid delta syntax: {detail}", "Emit strict JSON inside the delta fence."),
    "WD-002": ("Delta is not an object: {detail}", "Wrap the delta in a single JSON object."),
    "WD-003": (
        "Invalid operation: {detail}. Must be one of: ADD, EDIT, KILL",
        "Set 'operation' to ADD, EDIT or KILL.",
    ),
    "WD-004": ("Delta is missing 'section'", "Add a 'section' key."),
    "WD-005": ("Unrecognized section: {detail}", "Use one of the seven section names."),
    "WD-006": ("{detail} operation requires a payload object", "Add a 'payload' object."),
    "WD-007": ("ADD operation must have target_id null (got {detail})", "Set target_id to null; IDs are assigned on merge."),
    "WD-008": ("{detail} operation requires target_id as a string", "Set target_id to the ID of an existing item."),
    "WD-009": ("Payload is missing required fields: {detail}", "Include every required field for the section."),
    "WD-010": ("Malformed {detail}", "Use a list of strings for evidence_refs and {session, item, relation} objects for references."),
    "WD-011": ("Malformed array field {detail}", "Array fields must be lists of strings; replace flags must be booleans."),
}


def extract_delta_blocks(body: str) -> list[str]:
    """Return the stripped contents of every delta fence, in order.

    Empty blocks are skipped.
    """
    blocks = []
    for match in DELTA_BLOCK_RE.finditer(body or ""):
        content = (match.group(2) if match.group(1) else match.group(4)) or ""
        content = content.strip()
        if content:
            blocks.append(content)
    return blocks


def sanitize_json(text: str) -> str:
    """Strip ``//`` and ``/* */`` comments and trailing commas, leaving strings intact."""

    def _keep_strings(match: re.Match) -> str:
        return match.group(1) if match.group(1) is not None else ""

    cleaned = _COMMENT_RE.sub(_keep_strings, text)
    return _TRAILING_COMMA_RE.sub(r"\1", cleaned)


def load_block(text: str) -> Any:
    """Parse a delta block as JSON, retrying once leniently.

    Raises:
        json.JSONDecodeError: With the error from the strict attempt when both fail.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as strict_error:
        try:
            return json.loads(sanitize_json(text))
        except json.JSONDecodeError:
            raise strict_error from None


class BlockRejected(Exception):
    """Internal signal: the current block fails validation under ``rule_id``."""

    def __init__(self, rule_id: str, detail: str = "") -> None:
        self.rule_id = rule_id
        self.detail = detail
        super().__init__(f"{rule_id}: {detail}")


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one message.

    Attributes:
        operations: Valid operations in block order.
        violations: One violation per rejected block.
        total_blocks: Number of non-empty delta blocks found.
    """

    operations: tuple[Operation, ...] = ()
    violations: tuple[Violation, ...] = ()
    total_blocks: int = 0

    @property
    def valid_count(self) -> int:
        return len(self.operations)

    @property
    def invalid_count(self) -> int:
        return self.total_blocks - len(self.operations)


class DeltaParser:
    """Pure parser from message bodies to operations."""

    def __init__(self, config: CompilerConfig | None = None) -> None:
        self._subjects = config.delta_subjects if config is not None else None

    def accepts(self, message: InboundMessage) -> bool:
        """True if the message's routing subject is one the parser reads."""
        return self._subjects is None or message.subject in self._subjects

    def parse(self, message: InboundMessage) -> ParseResult:
        if not self.accepts(message):
            logger.debug("Skipping message %s: subject %r not routed to deltas",
                         message.message_id, message.subject)
            return ParseResult()

        blocks = extract_delta_blocks(message.body)
        operations: list[Operation] = []
        violations: list[Violation] = []
        for index, raw in enumerate(blocks):
            location = f"message:{message.message_id}#delta{index + 1}"
            try:
                operations.append(self._build(message, index, raw))
            except BlockRejected as rejected:
                template, fix = PARSE_RULES[rejected.rule_id]
                violations.append(Violation(
                    rule_id=rejected.rule_id,
                    severity=Severity.WARNING,
                    message=template.format(detail=rejected.detail),
                    location=location,
                    fix=fix,
                ))
                logger.warning("Rejected delta %s: %s", location, rejected)

        if blocks:
            logger.debug("Parsed message %s: %d block(s), %d valid",
                         message.message_id, len(blocks), len(operations))
        return ParseResult(tuple(operations), tuple(violations), len(blocks))

    # ------------------------------------------------------------------
    # Block validation
    # ------------------------------------------------------------------

    def _build(self, message: InboundMessage, index: int, raw: str) -> Operation:
        try:
            data = load_block(raw)
        except json.JSONDecodeError as exc:
            raise BlockRejected("WD-001", str(exc)) from None
        if not isinstance(data, dict):
            raise BlockRejected("WD-002", type(data).__name__)

        kind = _parse_kind(data.get("operation"))
        if "section" not in data or data["section"] is None:
            raise BlockRejected("WD-004")
        section = parse_section(data["section"])
        if section is None:
            raise BlockRejected("WD-005", json.dumps(data["section"]))

        payload = data.get("payload")
        if not isinstance(payload, dict):
            raise BlockRejected("WD-006", kind.value)
        payload = dict(payload)

        target_id = data.get("target_id")
        if kind == OperationKind.ADD:
            if target_id is not None:
                raise BlockRejected("WD-007", json.dumps(target_id))
        elif not isinstance(target_id, str) or not target_id.strip():
            raise BlockRejected("WD-008", kind.value)
        else:
            target_id = target_id.strip()

        references = _parse_references(data.get("references"))
        if "references" in payload:
            references += _parse_references(payload.pop("references"))
        evidence_refs = _parse_evidence_refs(data.get("evidence_refs"))

        if kind == OperationKind.KILL:
            reason = payload.get("reason")
            if not isinstance(reason, str) or not reason.strip():
                raise BlockRejected("WD-009", "reason")
            payload = {"reason": reason.strip()}
        else:
            if kind == OperationKind.ADD:
                missing = [f for f in section.schema.required if payload.get(f) is None]
                if missing:
                    raise BlockRejected("WD-009", ", ".join(missing))
            _check_array_fields(section, payload)

        rationale = data.get("rationale")
        return Operation(
            kind=kind,
            section=section,
            target_id=target_id,
            payload=payload,
            rationale=rationale if isinstance(rationale, str) else "",
            evidence_refs=tuple(evidence_refs),
            references=tuple(references),
            message_id=message.message_id,
            sender=message.sender,
            timestamp=message.timestamp,
            sequence=message.sequence or 0,
            index=index,
            raw=raw,
        )


def _parse_kind(value: Any) -> OperationKind:
    if not isinstance(value, str):
        raise BlockRejected("WD-003", json.dumps(value))
    try:
        return OperationKind(value)
    except ValueError:
        raise BlockRejected("WD-003", json.dumps(value)) from None


def _parse_references(value: Any) -> list[CrossReference]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise BlockRejected("WD-010", "references: expected a list")
    refs = []
    for entry in value:
        if not isinstance(entry, dict):
            raise BlockRejected("WD-010", "references: entries must be objects")
        parts = [entry.get(k) for k in ("session", "item", "relation")]
        if not all(isinstance(p, str) and p for p in parts):
            raise BlockRejected("WD-010", "references: need string session, item and relation")
        refs.append(CrossReference(session=parts[0], item=parts[1], relation=parts[2]))
    return refs


def _parse_evidence_refs(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise BlockRejected("WD-010", "evidence_refs: expected a list of strings")
    return list(value)


def _check_array_fields(section: Section, payload: dict[str, Any]) -> None:
    for name in section.schema.array_fields:
        if name in payload:
            value = payload[name]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise BlockRejected("WD-011", f"'{name}': expected a list of strings")
        flag = f"{name}_replace"
        if flag in payload and not isinstance(payload[flag], bool):
            raise BlockRejected("WD-011", f"'{flag}': expected a boolean")
