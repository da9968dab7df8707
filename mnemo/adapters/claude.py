"""Provider for Claude Code's per-project JSONL session logs.

Claude keeps one JSONL file per session under
``~/.claude/projects/<encoded-cwd>/<session-uuid>.jsonl``, where the encoded
cwd is the repository path with every ``/`` replaced by ``-``.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar

from ..generic import parse_timestamp
from ..models import (
    PREFIX_SESSION_EVENT,
    Discovery,
    Ingestion,
    Session,
    SessionEvent,
    SessionEventType,
    SessionKind,
    SessionStatus,
    new_id,
)

_MAX_LINE = 8 * 1024 * 1024
_ZONE_RE = re.compile(r"(Z|[+-]\d{2}:\d{2})\Z")
_MISSING = object()

_EVENT_TYPES = {
    "user": SessionEventType.USER_MESSAGE,
    "assistant": SessionEventType.ASSISTANT_MESSAGE,
    "system": SessionEventType.SYSTEM,
    "tool_use": SessionEventType.TOOL_CALL,
    "tool_result": SessionEventType.TOOL_RESULT,
    "thinking": SessionEventType.THINKING,
}
_MESSAGE_TYPES = (SessionEventType.USER_MESSAGE, SessionEventType.ASSISTANT_MESSAGE)
_STRING_FIELDS = ("type", "subtype", "sessionId", "timestamp", "cwd", "gitBranch", "version", "uuid")
_BOOL_FIELDS = ("isMeta", "isSidechain")
_BLOCK_FIELDS = ("type", "text", "name", "id")


def encode_repo_root(repo_root: str) -> str:
    """Claude's projects directory name for an absolute repository path."""
    return repo_root.replace("/", "-")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _field(obj: dict[str, Any], name: str) -> Any:
    """Look a key up exactly, then case-insensitively."""
    if name in obj:
        return obj[name]
    folded = name.lower()
    for key, value in obj.items():
        if key.lower() == folded:
            return value
    return _MISSING


def _optional_str(obj: dict[str, Any], name: str) -> str:
    value = _field(obj, name)
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    raise ValueError(f"field {name!r} is not a string")


def _trim_suffix(text: str, suffix: str) -> str:
    return text[: -len(suffix)] if suffix and text.endswith(suffix) else text


def _read_lines(path: str) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        for raw in fh:
            line = raw.rstrip(b"\n")
            if line.endswith(b"\r"):
                line = line[:-1]
            if len(line) > _MAX_LINE:
                raise ValueError(f"{path}: line longer than {_MAX_LINE} bytes")
            yield line


@dataclass(frozen=True)
class _Line:
    type: str
    subtype: str
    session_id: str
    timestamp: str
    git_branch: str
    uuid: str
    is_meta: bool
    is_sidechain: bool
    content: Any
    message: Any


def _decode_line(raw: bytes) -> _Line | None:
    try:
        obj = json.loads(raw.decode("utf-8", "replace"), parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None
    try:
        strings = {name: _optional_str(obj, name) for name in _STRING_FIELDS}
    except ValueError:
        return None
    flags = {}
    for name in _BOOL_FIELDS:
        value = _field(obj, name)
        if value is _MISSING or value is None:
            flags[name] = False
        elif isinstance(value, bool):
            flags[name] = value
        else:
            return None
    return _Line(
        type=strings["type"],
        subtype=strings["subtype"],
        session_id=strings["sessionId"],
        timestamp=strings["timestamp"],
        git_branch=strings["gitBranch"],
        uuid=strings["uuid"],
        is_meta=flags["isMeta"],
        is_sidechain=flags["isSidechain"],
        content=_field(obj, "content"),
        message=_field(obj, "message"),
    )


def _block_texts(blocks: list[Any]) -> str:
    parts = []
    for block in blocks:
        if block is None:
            continue
        if not isinstance(block, dict):
            return ""
        try:
            values = {name: _optional_str(block, name) for name in _BLOCK_FIELDS}
        except ValueError:
            return ""
        if values["type"] == "text" and values["text"]:
            parts.append(values["text"])
    return "\n".join(parts)


def _extract_content(line: _Line) -> str:
    # System-style lines carry a top-level "content" string.
    if line.content is not _MISSING:
        if line.content is None:
            return ""
        if isinstance(line.content, str):
            return line.content
    message = line.message
    if message is _MISSING or message is None or not isinstance(message, dict):
        return ""
    try:
        _optional_str(message, "role")
    except ValueError:
        return ""
    content = _field(message, "content")
    if content is _MISSING or content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return _block_texts(content)
    return ""


def _parse_time(value: str) -> datetime | None:
    if not value or not _ZONE_RE.search(value):
        return None
    return parse_timestamp(value)


@dataclass
class ClaudeAdapter:
    """Reads Claude Code session logs; ``home_dir`` defaults to ``~/.claude``."""

    home_dir: str = ""
    kind: ClassVar[SessionKind] = SessionKind.CLAUDE

    def _home(self) -> str:
        if self.home_dir:
            return self.home_dir
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("cannot determine the home directory")
        return os.path.join(home, ".claude")

    def _project_dir(self, repo_root: str) -> str:
        return os.path.join(self._home(), "projects", encode_repo_root(os.path.abspath(repo_root)))

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return the repository's session files, ordered by path."""
        if not repo_root:
            raise ValueError("claude: repo root is required")
        directory = self._project_dir(repo_root)
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except FileNotFoundError:
            return []
        found = [
            Discovery(
                kind=SessionKind.CLAUDE,
                source_path=os.path.join(directory, entry.name),
                external_id=_trim_suffix(entry.name, ".jsonl"),
            )
            for entry in entries
            if not entry.is_dir(follow_symlinks=False) and entry.name.endswith(".jsonl")
        ]
        found.sort(key=lambda discovery: discovery.source_path)
        return found

    def ingest(self, source_path: str) -> Ingestion:
        """Parse one session log; lines of unknown type are skipped."""
        now = datetime.now(timezone.utc)
        session = Session(
            source_path=source_path,
            kind=SessionKind.CLAUDE,
            external_id=_trim_suffix(os.path.basename(source_path), ".jsonl"),
            status=SessionStatus.INGESTED,
            ingested_at=now,
            created_at=now,
            updated_at=now,
        )
        events: list[SessionEvent] = []
        first: datetime | None = None
        last: datetime | None = None
        messages = 0

        for raw in _read_lines(source_path):
            if not raw:
                continue
            line = _decode_line(raw)
            if line is None:
                continue
            ts = _parse_time(line.timestamp)
            if ts is not None:
                if first is None or ts < first:
                    first = ts
                if last is None or ts > last:
                    last = ts
            if line.session_id and not session.external_id:
                session.external_id = line.session_id
            if line.git_branch and not session.branch:
                session.branch = line.git_branch

            event_type = _EVENT_TYPES.get(line.type)
            if event_type is None:
                continue
            content = _extract_content(line)
            if event_type in _MESSAGE_TYPES:
                messages += 1

            structured: dict[str, Any] = {}
            if line.subtype:
                structured["subtype"] = line.subtype
            if line.is_meta:
                structured["is_meta"] = True
            if line.is_sidechain:
                structured["is_sidechain"] = True
            if line.uuid:
                structured["claude_uuid"] = line.uuid

            events.append(
                SessionEvent(
                    id=new_id(PREFIX_SESSION_EVENT),
                    sequence=len(events) + 1,
                    type=event_type,
                    content=content,
                    timestamp=ts,
                    structured_value=structured,
                    created_at=now,
                )
            )

        session.started_at = first if first is not None else now
        session.ended_at = last
        session.message_count = messages
        return Ingestion(session=session, events=events)

    def watch_dirs(self, repo_root: str) -> list[str]:
        """The projects directory for the repository (it may not exist yet)."""
        return [self._project_dir(repo_root)]