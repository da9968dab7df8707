"""Provider for the Codex CLI's date-partitioned rollout files.

Codex writes ``~/.codex/sessions/YYYY/MM/DD/rollout-<ts>-<id>.jsonl``. The
first line is a ``session_meta`` record carrying the cwd and git details;
later lines are ``turn_context``, ``event_msg`` and ``response_item`` records.
Rollouts are partitioned by date rather than by repository, so discovery
peeks at each file's ``session_meta`` to match the repository.
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
_MAX_META_LINE = 4 * 1024 * 1024
_ZONE_RE = re.compile(r"(Z|[+-]\d{2}:\d{2})\Z")
_MISSING = object()
_MESSAGE_TYPES = (SessionEventType.USER_MESSAGE, SessionEventType.ASSISTANT_MESSAGE)
_ITEM_TYPES = {
    "reasoning": SessionEventType.THINKING,
    "function_call": SessionEventType.TOOL_CALL,
    "custom_tool_call": SessionEventType.TOOL_CALL,
    "function_call_output": SessionEventType.TOOL_RESULT,
    "custom_tool_call_output": SessionEventType.TOOL_RESULT,
}


def normalize_remote(url: str) -> str:
    """Reduce scp-style and URL-style git remotes to a comparable host/path form."""
    url = url.strip()
    if url.endswith(".git"):
        url = url[: -len(".git")]
    if url.startswith("git+"):
        url = url[len("git+"):]
    scheme = url.find("://")
    if scheme >= 0:
        url = url[scheme + 3:]
    at = url.rfind("@")
    if at >= 0:
        url = url[at + 1:]
    url = url.replace(":", "/")
    return url.lower().strip("/")


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


def _string(obj: dict[str, Any], name: str) -> str:
    value = _field(obj, name)
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    raise ValueError(f"field {name!r} is not a string")


def _object(value: Any) -> dict[str, Any]:
    if value is _MISSING or value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise ValueError("expected a JSON object")


def _parse_time(value: str) -> datetime | None:
    if not value or not _ZONE_RE.search(value):
        return None
    return parse_timestamp(value)


def _split_line(raw: bytes) -> bytes:
    line = raw.rstrip(b"\n")
    return line[:-1] if line.endswith(b"\r") else line


def _read_lines(path: str) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        for raw in fh:
            line = _split_line(raw)
            if len(line) > _MAX_LINE:
                raise ValueError(f"{path}: line longer than {_MAX_LINE} bytes")
            yield line


@dataclass(frozen=True)
class _Line:
    type: str
    timestamp: str
    payload: Any


@dataclass(frozen=True)
class _Meta:
    id: str
    timestamp: str
    cwd: str
    branch: str
    commit_hash: str
    repository_url: str


@dataclass(frozen=True)
class _Item:
    type: str
    role: str
    text: str
    name: str
    content: Any
    summary: Any


def _decode_line(raw: bytes) -> _Line | None:
    try:
        obj = json.loads(raw.decode("utf-8", "replace"), parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None
    try:
        return _Line(
            type=_string(obj, "type"),
            timestamp=_string(obj, "timestamp"),
            payload=_field(obj, "payload"),
        )
    except ValueError:
        return None


def _meta_from(payload: Any) -> _Meta | None:
    if payload is _MISSING:
        return None
    try:
        obj = _object(payload)
        git = _object(_field(obj, "git"))
        _string(obj, "instructions")
        return _Meta(
            id=_string(obj, "id"),
            timestamp=_string(obj, "timestamp"),
            cwd=_string(obj, "cwd"),
            branch=_string(git, "branch"),
            commit_hash=_string(git, "commit_hash"),
            repository_url=_string(git, "repository_url"),
        )
    except ValueError:
        return None


def _item_from(payload: Any) -> _Item | None:
    if payload is _MISSING:
        return None
    try:
        obj = _object(payload)
        return _Item(
            type=_string(obj, "type"),
            role=_string(obj, "role"),
            text=_string(obj, "text"),
            name=_string(obj, "name"),
            content=_field(obj, "content"),
            summary=_field(obj, "summary"),
        )
    except ValueError:
        return None


def _peek_meta(path: str) -> _Meta | None:
    """The ``session_meta`` payload on the file's first line, if there is one."""
    try:
        with open(path, "rb") as fh:
            raw = fh.readline(_MAX_META_LINE + 2)
    except OSError:
        return None
    if not raw:
        return None
    first = _split_line(raw)
    if len(first) > _MAX_META_LINE:
        return None
    line = _decode_line(first)
    if line is None or line.type != "session_meta":
        return None
    return _meta_from(line.payload)


def _same_repo(meta: _Meta, repo_abs: str) -> bool:
    """Match by cwd, then weakly by the remote's last path segment."""
    if meta.cwd and os.path.abspath(meta.cwd) == repo_abs:
        return True
    if meta.repository_url:
        remote = normalize_remote(meta.repository_url)
        if remote and remote.endswith("/" + os.path.basename(repo_abs).lower()):
            return True
    return False


def _map_item_type(item: _Item) -> SessionEventType | None:
    if item.type == "message":
        if item.role == "user":
            return SessionEventType.USER_MESSAGE
        if item.role == "assistant":
            return SessionEventType.ASSISTANT_MESSAGE
        return SessionEventType.SYSTEM
    return _ITEM_TYPES.get(item.type)


def _from_raw(raw: Any) -> str:
    """Text of a content field that is a string or a list of ``{text}`` blocks."""
    if isinstance(raw, str) and raw:
        return raw
    if not isinstance(raw, list):
        return ""
    parts = []
    for block in raw:
        if block is None:
            continue
        if not isinstance(block, dict):
            return ""
        try:
            _string(block, "type")
            text = _string(block, "text")
        except ValueError:
            return ""
        if text:
            parts.append(text)
    return "\n".join(parts)


def _extract_text(item: _Item) -> str:
    if item.text:
        return item.text
    # Reasoning items keep their text under "summary".
    return _from_raw(item.content) or _from_raw(item.summary)


def _walk_rollouts(directory: str) -> Iterator[str]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)
    for entry in entries:
        path = os.path.join(directory, entry.name)
        if entry.is_dir(follow_symlinks=False):
            yield from _walk_rollouts(path)
        elif entry.name.startswith("rollout-") and entry.name.endswith(".jsonl"):
            yield path


def _trim_suffix(text: str, suffix: str) -> str:
    return text[: -len(suffix)] if text.endswith(suffix) else text


@dataclass
class CodexAdapter:
    """Reads Codex rollouts; ``home_dir`` defaults to ``~/.codex``."""

    home_dir: str = ""
    kind: ClassVar[SessionKind] = SessionKind.CODEX

    def _home(self) -> str:
        if self.home_dir:
            return self.home_dir
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("cannot determine the home directory")
        return os.path.join(home, ".codex")

    def _sessions_dir(self) -> str:
        return os.path.join(self._home(), "sessions")

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return rollouts whose session metadata points at ``repo_root``."""
        if not repo_root:
            raise ValueError("codex: repo root is required")
        abs_repo = os.path.abspath(repo_root)
        found: list[Discovery] = []
        try:
            for path in _walk_rollouts(self._sessions_dir()):
                meta = _peek_meta(path)
                if meta is None or not _same_repo(meta, abs_repo):
                    continue
                external_id = meta.id or _trim_suffix(os.path.basename(path), ".jsonl")
                found.append(
                    Discovery(kind=SessionKind.CODEX, source_path=path, external_id=external_id)
                )
        except FileNotFoundError:
            pass
        found.sort(key=lambda discovery: discovery.source_path)
        return found

    def ingest(self, source_path: str) -> Ingestion:
        """Parse one rollout; unknown record and payload types are skipped."""
        now = datetime.now(timezone.utc)
        session = Session(
            source_path=source_path,
            kind=SessionKind.CODEX,
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

            if line.type == "session_meta":
                meta = _meta_from(line.payload)
                if meta is not None:
                    if meta.id:
                        session.external_id = meta.id
                    session.branch = meta.branch
                    session.commit_hash = meta.commit_hash
                    meta_ts = _parse_time(meta.timestamp)
                    if meta_ts is not None:
                        first = meta_ts
                continue
            if line.type != "response_item":
                continue

            item = _item_from(line.payload)
            if item is None:
                continue
            event_type = _map_item_type(item)
            if event_type is None:
                continue
            if event_type in _MESSAGE_TYPES:
                messages += 1
            structured: dict[str, Any] = {"codex_item_type": item.type}
            if item.name:
                structured["tool_name"] = item.name
            events.append(
                SessionEvent(
                    id=new_id(PREFIX_SESSION_EVENT),
                    sequence=len(events) + 1,
                    type=event_type,
                    content=_extract_text(item),
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
        """The Codex sessions root."""
        return [self._sessions_dir()]