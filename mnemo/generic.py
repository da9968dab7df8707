"""Parser for custom agents that write newline-delimited JSON transcripts.

Also holds the small transcript-reading helpers shared by the built-in
providers: line scanning, tolerant JSON field lookup and session/event
construction.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from .models import (
    PREFIX_SESSION_EVENT,
    Ingestion,
    Session,
    SessionEvent,
    SessionEventType,
    SessionStatus,
    new_id,
)

_MAX_LINE = 8 * 1024 * 1024
_GENERIC_KINDS = ("jsonl-openai", "jsonl-anthropic", "jsonl")
_MISSING = object()

_TIMESTAMP_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:[.,](\d+))?"
    r"(Z|[+-]\d{2}:\d{2})?\Z"
)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _loads(text: str) -> Any:
    """Decode strict JSON (no NaN or Infinity)."""
    return json.loads(text, parse_constant=_reject_constant)


def _field(obj: dict[str, Any], name: str) -> Any:
    """Look a key up exactly, then case-insensitively."""
    if name in obj:
        return obj[name]
    folded = name.lower()
    for key, value in obj.items():
        if key.lower() == folded:
            return value
    return _MISSING


def _scan_lines(path: str) -> Iterator[str]:
    """Yield the lines of a file without their line endings."""
    with open(path, "rb") as fh:
        for raw in fh:
            line = raw.rstrip(b"\n")
            if line.endswith(b"\r"):
                line = line[:-1]
            if len(line) > _MAX_LINE:
                raise ValueError(f"{path}: line longer than {_MAX_LINE} bytes")
            yield line.decode("utf-8", "replace")


def _ingested_session(source_path: str, kind: str, external_id: str, now: datetime) -> Session:
    """A freshly ingested session whose timestamps all read ``now``."""
    return Session(
        source_path=source_path,
        kind=kind,
        external_id=external_id,
        status=SessionStatus.INGESTED,
        started_at=now,
        ingested_at=now,
        created_at=now,
        updated_at=now,
    )


def _transcript_event(
    sequence: int, event_type: SessionEventType, content: str, now: datetime
) -> SessionEvent:
    """A new event stamped with ``now``."""
    return SessionEvent(
        id=new_id(PREFIX_SESSION_EVENT),
        sequence=sequence,
        type=event_type,
        content=content,
        timestamp=now,
        created_at=now,
    )


def role_to_event_type(role: str) -> SessionEventType:
    """Map a free-form role name to a canonical event type."""
    normalized = role.strip().lower()
    if normalized in ("user", "human"):
        return SessionEventType.USER_MESSAGE
    if normalized in ("assistant", "ai", "model"):
        return SessionEventType.ASSISTANT_MESSAGE
    if normalized in ("tool", "tool_result", "function"):
        return SessionEventType.TOOL_RESULT
    return SessionEventType.SYSTEM


def _part_texts(value: Any) -> list[str] | None:
    """Texts of an OpenAI/Anthropic parts array, or None if it is not one."""
    if not isinstance(value, list):
        return None
    texts = []
    for part in value:
        if part is None:
            continue
        if not isinstance(part, dict):
            return None
        for name in ("type", "text"):
            item = _field(part, name)
            if item is not _MISSING and item is not None and not isinstance(item, str):
                return None
        text = _field(part, "text")
        if isinstance(text, str) and text:
            texts.append(text)
    return texts


def normalize_content(raw: Any) -> str:
    """Flatten a decoded JSON content value into plain text.

    A string is returned as is, a parts array is joined from its texts, and
    anything else comes back as its compact JSON text.
    """
    if raw is None or raw is _MISSING:
        return ""
    if isinstance(raw, str):
        return raw
    texts = _part_texts(raw)
    if texts:
        return "".join(texts)
    return json.dumps(raw, ensure_ascii=False, separators=(",", ":"))


def parse_timestamp(value: str) -> datetime | None:
    """Parse an RFC 3339 or zone-less ISO timestamp into UTC; None if invalid."""
    match = _TIMESTAMP_RE.match(value.strip())
    if match is None:
        return None
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int(fraction[:6].ljust(6, "0")) if fraction else 0
    try:
        if zone is None or zone == "Z":
            tz = timezone.utc
        else:
            sign = -1 if zone[0] == "-" else 1
            offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
            tz = timezone(sign * offset)
        parsed = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro, tzinfo=tz,
        )
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def _decode_line(line: str) -> tuple[str, Any, str] | None:
    """Decode one transcript line into (role, content, timestamp)."""
    try:
        obj = _loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None
    strings = {}
    for name in ("role", "timestamp"):
        value = _field(obj, name)
        if value is _MISSING or value is None:
            strings[name] = ""
        elif isinstance(value, str):
            strings[name] = value
        else:
            return None
    return strings["role"], _field(obj, "content"), strings["timestamp"]


@dataclass(frozen=True)
class JsonlParser:
    """Reads role/content JSON objects, one per line."""

    kind: str

    def ingest(self, source_path: str) -> Ingestion:
        """Parse a JSONL transcript, tolerating lines that do not conform."""
        events: list[SessionEvent] = []
        started: datetime | None = None
        ended: datetime | None = None
        for raw_line in _scan_lines(source_path):
            line = raw_line.strip()
            if not line:
                continue
            decoded = _decode_line(line)
            if decoded is None:
                continue
            role, raw_content, raw_ts = decoded
            content = normalize_content(raw_content)
            if not content.strip():
                continue
            ts = parse_timestamp(raw_ts)
            if started is None or (ts is not None and ts < started):
                started = ts
            if ts is not None:
                ended = ts
            events.append(
                SessionEvent(
                    type=role_to_event_type(role),
                    sequence=len(events),
                    content=content,
                    timestamp=ts,
                )
            )
        if started is None:
            started = datetime.now(timezone.utc)
        session = Session(
            kind=self.kind,
            source_path=source_path,
            started_at=started,
            ended_at=ended,
            status=SessionStatus.INGESTED,
        )
        return Ingestion(session=session, events=events)


def generic_parser(kind: str) -> JsonlParser:
    """Return the parser for a custom agent's declared parser kind."""
    if kind in _GENERIC_KINDS:
        return JsonlParser(kind=kind)
    raise ValueError(
        f"unknown custom parser {kind!r} (supported: jsonl, jsonl-openai, jsonl-anthropic)"
    )