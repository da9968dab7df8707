"""Tolerant discovery and extraction for tools without a stable transcript schema."""

from __future__ import annotations

import json
import os
import stat
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

from .generic import parse_timestamp, role_to_event_type
from .models import (
    Discovery,
    Ingestion,
    Session,
    SessionEvent,
    SessionEventType,
    SessionStatus,
)

MAX_FILE_SIZE = 8 * 1024 * 1024
MAX_FILES = 400

_CANDIDATE_EXTS = frozenset({".json", ".jsonl", ".md", ".txt", ".log"})
_PREFIXED_ROLES = frozenset(
    {"user", "human", "assistant", "agent", "copilot", "cursor", "windsurf", "devin", "tool", "system"}
)
_PROMPT_KEYS = ("prompt", "input", "question", "query", "userPrompt", "user_prompt")
_RESPONSE_KEYS = ("response", "answer", "output", "result", "assistantResponse", "assistant_response")
_ROLE_KEYS = ("role", "speaker", "sender", "author", "source", "type")
_CONTENT_KEYS = ("content", "text", "message", "body", "data", "value")
_NESTED_TEXT_KEYS = ("text", "content", "message", "value")
_TIMESTAMP_KEYS = ("timestamp", "time", "createdAt", "created_at", "date")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MISSING = object()


class _Number(str):
    """A JSON number kept as its literal text."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


_DECODER = json.JSONDecoder(
    parse_float=_Number, parse_int=_Number, parse_constant=_reject_constant
)


def _decode_first(text: str) -> Any:
    """Decode the first JSON value in ``text``, ignoring what follows it."""
    value, _ = _DECODER.raw_decode(text.lstrip(" \t\r\n"))
    return value


def _base(path: str) -> str:
    return os.path.basename(os.path.normpath(path))


def _stem(name: str) -> str:
    dot = name.rfind(".")
    return name[:dot] if dot >= 0 else name


def _ext(path: str) -> str:
    name = _base(path)
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _is_candidate(path: str) -> bool:
    return _ext(path).lower() in _CANDIDATE_EXTS


def _scan_lines(path: str) -> Iterator[str]:
    """Yield lines of ``path``; stops quietly at an over-long line."""
    with open(path, "rb") as fh:
        for raw in fh:
            line = raw.rstrip(b"\n")
            if line.endswith(b"\r"):
                line = line[:-1]
            if len(line) > MAX_FILE_SIZE:
                return
            yield line.decode("utf-8", "replace")


def _walk(directory: str, files: list[str]) -> None:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        if len(files) >= MAX_FILES:
            return
        path = os.path.join(directory, entry.name)
        if entry.is_dir(follow_symlinks=False):
            _walk(path, files)
        elif _is_candidate(path):
            files.append(path)


def _structured_files(path: str) -> list[str]:
    info = os.stat(path)
    if not stat.S_ISDIR(info.st_mode):
        return [path] if _is_candidate(path) else []
    files: list[str] = []
    _walk(path, files)
    return sorted(files)


def _path_mentions(path: str, repo_root: str) -> bool:
    needles = [os.fsencode(n) for n in dict.fromkeys([repo_root, repo_root.replace(os.sep, "/")]) if n]
    try:
        files = _structured_files(path)
    except OSError:
        return False
    for file in files:
        try:
            if os.stat(file).st_size > MAX_FILE_SIZE:
                continue
            with open(file, "rb") as fh:
                body = fh.read()
        except OSError:
            continue
        if any(needle in body for needle in needles):
            return True
    return False


def discover_structured(root: str, repo_root: str, kind: str) -> list[Discovery]:
    """Return candidate transcripts directly under ``root`` that mention ``repo_root``."""
    try:
        info = os.stat(root)
    except FileNotFoundError:
        return []
    abs_repo = os.path.abspath(repo_root)
    if not stat.S_ISDIR(info.st_mode):
        if _path_mentions(root, abs_repo):
            return [Discovery(kind=kind, source_path=root, external_id=_stem(_base(root)))]
        return []

    with os.scandir(root) as it:
        entries = sorted(it, key=lambda e: e.name)
    found = []
    for entry in entries:
        path = os.path.join(root, entry.name)
        if not entry.is_dir(follow_symlinks=False) and not _is_candidate(path):
            continue
        if _path_mentions(path, abs_repo):
            found.append(Discovery(kind=kind, source_path=path, external_id=_stem(entry.name)))
    return found


def _lookup_fold(mapping: dict[str, Any], want: str) -> Any:
    if want in mapping:
        return mapping[want]
    folded = want.lower()
    for key, value in mapping.items():
        if key.lower() == folded:
            return value
    return _MISSING


def _text_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in _NESTED_TEXT_KEYS:
            item = _lookup_fold(value, key)
            if item is not _MISSING:
                text = _text_value(item)
                if text:
                    return text
        return ""
    if isinstance(value, list):
        parts = [text for text in map(_text_value, value) if text]
        return "\n".join(parts).strip()
    return ""


def _text_from_map(mapping: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = _lookup_fold(mapping, key)
        if value is not _MISSING:
            text = _text_value(value)
            if text:
                return text
    return ""


def _int64(literal: str) -> int | None:
    try:
        number = int(literal)
    except ValueError:
        return None
    if -(2**63) <= number < 2**63:
        return number
    return None


def _unix_time(value: int) -> datetime | None:
    try:
        if value > 1_000_000_000_000:
            return _EPOCH + timedelta(milliseconds=value)
        if value > 0:
            return _EPOCH + timedelta(seconds=value)
    except OverflowError:
        return None
    return None


def _timestamp_from_map(mapping: dict[str, Any]) -> datetime | None:
    for key in _TIMESTAMP_KEYS:
        value = _lookup_fold(mapping, key)
        if isinstance(value, _Number):
            number = _int64(value)
            if number is not None:
                return _unix_time(number)
        elif isinstance(value, str):
            ts = parse_timestamp(value)
            if ts is not None:
                return ts
    return None


def _append_prompt_response(mapping: dict[str, Any], events: list[SessionEvent]) -> bool:
    prompt = _text_from_map(mapping, _PROMPT_KEYS)
    response = _text_from_map(mapping, _RESPONSE_KEYS)
    if not prompt or not response:
        return False
    ts = _timestamp_from_map(mapping)
    events.append(SessionEvent(type=SessionEventType.USER_MESSAGE, content=prompt, timestamp=ts))
    events.append(SessionEvent(type=SessionEventType.ASSISTANT_MESSAGE, content=response, timestamp=ts))
    return True


def _append_role_content(mapping: dict[str, Any], events: list[SessionEvent]) -> bool:
    role = _text_from_map(mapping, _ROLE_KEYS)
    content = _text_from_map(mapping, _CONTENT_KEYS)
    if not role or not content:
        return False
    events.append(
        SessionEvent(
            type=role_to_event_type(role),
            content=content,
            timestamp=_timestamp_from_map(mapping),
        )
    )
    return True


def _walk_json(value: Any, events: list[SessionEvent]) -> None:
    if isinstance(value, list):
        for item in value:
            _walk_json(item, events)
    elif isinstance(value, dict):
        if _append_prompt_response(value, events) or _append_role_content(value, events):
            return
        for item in value.values():
            _walk_json(item, events)


def _extract_json_file(path: str) -> list[SessionEvent]:
    try:
        with open(path, "rb") as fh:
            text = fh.read().decode("utf-8", "replace")
        value = _decode_first(text)
    except (OSError, ValueError, RecursionError):
        return []
    events: list[SessionEvent] = []
    _walk_json(value, events)
    return events


def _extract_jsonl_file(path: str) -> list[SessionEvent]:
    events: list[SessionEvent] = []
    try:
        for raw_line in _scan_lines(path):
            line = raw_line.strip()
            if not line:
                continue
            try:
                value = _decode_first(line)
            except (ValueError, RecursionError):
                continue
            _walk_json(value, events)
    except OSError:
        pass
    return events


def _prefixed_role(line: str) -> tuple[str, str] | None:
    head, sep, rest = line.partition(":")
    if not sep:
        return None
    role = head.strip().lower()
    if role not in _PREFIXED_ROLES:
        return None
    return role, rest.strip()


def _extract_prefixed_text_file(path: str) -> list[SessionEvent]:
    events: list[SessionEvent] = []
    current: str | None = None
    lines: list[str] = []

    def flush() -> None:
        text = "\n".join(lines).strip()
        if current and text:
            events.append(SessionEvent(type=current, content=text))
        lines.clear()

    try:
        for line in _scan_lines(path):
            prefixed = _prefixed_role(line)
            if prefixed is not None:
                flush()
                current = role_to_event_type(prefixed[0])
                lines.append(prefixed[1])
            elif current:
                lines.append(line)
    except OSError:
        return events
    flush()
    return events


def _extract_file(path: str) -> list[SessionEvent]:
    try:
        if os.stat(path).st_size > MAX_FILE_SIZE:
            return []
    except OSError:
        return []
    ext = _ext(path).lower()
    if ext == ".json":
        return _extract_json_file(path)
    if ext in (".jsonl", ".log"):
        events = _extract_jsonl_file(path)
        if events:
            return events
    return _extract_prefixed_text_file(path)


def ingest_structured(source_path: str, kind: str) -> Ingestion:
    """Parse a candidate transcript file or directory with the tolerant extractor."""
    now = datetime.now(timezone.utc)
    session = Session(
        source_path=source_path,
        kind=kind,
        external_id=_stem(_base(source_path)),
        status=SessionStatus.INGESTED,
        started_at=now,
        ingested_at=now,
        created_at=now,
        updated_at=now,
    )
    events: list[SessionEvent] = []
    for file in _structured_files(source_path):
        for event in _extract_file(file):
            event.sequence = len(events)
            if event.timestamp is None:
                event.timestamp = now
            event.created_at = now
            events.append(event)
            if session.started_at == now or event.timestamp < session.started_at:
                session.started_at = event.timestamp
            if session.ended_at is None or event.timestamp > session.ended_at:
                session.ended_at = event.timestamp
    return Ingestion(session=session, events=events)