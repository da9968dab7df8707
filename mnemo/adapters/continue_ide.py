"""Provider for Continue's per-session JSON files.

Continue stores sessions under ``~/.continue/sessions/*.json``. The schema has
shifted between versions, so both ``history[].message`` and a flat
``messages[]`` list are accepted. A session is attributed to a repository only
when its recorded workspace directory matches it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from ..generic import _MISSING, _field, _ingested_session, _loads, _transcript_event
from ..models import Discovery, Ingestion, SessionEvent, SessionEventType, SessionKind

_ROLE_TYPES = {
    "user": SessionEventType.USER_MESSAGE,
    "assistant": SessionEventType.ASSISTANT_MESSAGE,
}


def _typed(obj: dict[str, Any], name: str, expected: type, empty: Any) -> Any:
    value = _field(obj, name)
    if value is _MISSING or value is None:
        return empty
    if isinstance(value, expected):
        return value
    raise ValueError(f"field {name!r} has the wrong JSON type")


def _string(obj: dict[str, Any], name: str) -> str:
    return _typed(obj, name, str, "")


def _array(obj: dict[str, Any], name: str) -> list[Any]:
    return _typed(obj, name, list, [])


def _object(value: Any) -> dict[str, Any]:
    if value is _MISSING or value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise ValueError("expected a JSON object")


def _trim_suffix(text: str, suffix: str) -> str:
    return text[: -len(suffix)] if text.endswith(suffix) else text


@dataclass
class _Message:
    role: str = ""
    content: Any = _MISSING


@dataclass
class _RawSession:
    session_id: str = ""
    workspace: str = ""
    workspace_alt: str = ""
    history: list[_Message] = field(default_factory=list)
    messages: list[_Message] = field(default_factory=list)

    @property
    def workspace_dir(self) -> str:
        return self.workspace or self.workspace_alt

    def turns(self) -> list[_Message]:
        return self.messages if self.messages else self.history


def _message(value: Any) -> _Message:
    obj = _object(value)
    return _Message(role=_string(obj, "role"), content=_field(obj, "content"))


def _session_from(data: Any) -> _RawSession:
    obj = _object(data)
    _string(obj, "title")
    return _RawSession(
        session_id=_string(obj, "sessionId"),
        workspace=_string(obj, "workspaceDirectory"),
        workspace_alt=_string(obj, "workspace"),
        history=[_message(_field(_object(item), "message")) for item in _array(obj, "history")],
        messages=[_message(item) for item in _array(obj, "messages")],
    )


def _parse_file(path: str) -> _RawSession | None:
    try:
        with open(path, "rb") as fh:
            text = fh.read().decode("utf-8", "replace")
        return _session_from(_loads(text))
    except (OSError, ValueError, RecursionError):
        return None


def _extract_content(raw: Any) -> str:
    if raw is _MISSING or raw is None:
        return ""
    if isinstance(raw, str):
        return raw.strip()
    if not isinstance(raw, list):
        return ""
    parts = []
    for block in raw:
        if block is None:
            continue
        if not isinstance(block, dict):
            return ""
        try:
            text = _string(block, "text")
        except ValueError:
            return ""
        if text:
            parts.append(text)
    return "\n".join(parts).strip()


@dataclass
class ContinueAdapter:
    """Reads Continue sessions; ``home_dir`` defaults to ``~/.continue``."""

    home_dir: str = ""
    kind: ClassVar[SessionKind] = SessionKind.CONTINUE

    def _dir(self) -> str:
        if self.home_dir:
            return os.path.join(self.home_dir, "sessions")
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("cannot determine the home directory")
        return os.path.join(home, ".continue", "sessions")

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return sessions whose recorded workspace is ``repo_root``."""
        abs_repo = os.path.abspath(repo_root)
        directory = self._dir()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except FileNotFoundError:
            return []
        found = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False) or not entry.name.endswith(".json"):
                continue
            path = os.path.join(directory, entry.name)
            raw = _parse_file(path)
            if raw is None or not raw.workspace_dir:
                continue
            if os.path.abspath(raw.workspace_dir) != abs_repo:
                continue
            external_id = raw.session_id or _trim_suffix(entry.name, ".json")
            found.append(
                Discovery(kind=SessionKind.CONTINUE, source_path=path, external_id=external_id)
            )
        return found

    def ingest(self, source_path: str) -> Ingestion:
        """Parse one session file; an unreadable file yields a session with no events."""
        now = datetime.now(timezone.utc)
        external_id = _trim_suffix(os.path.basename(source_path), ".json")
        session = _ingested_session(source_path, SessionKind.CONTINUE, external_id, now)
        raw = _parse_file(source_path)
        if raw is None:
            return Ingestion(session=session)
        if raw.session_id:
            session.external_id = raw.session_id

        events: list[SessionEvent] = []
        for turn in raw.turns():
            content = _extract_content(turn.content)
            if not content:
                continue
            event_type = _ROLE_TYPES.get(turn.role, SessionEventType.SYSTEM)
            events.append(_transcript_event(len(events) + 1, event_type, content, now))
        session.message_count = sum(
            event.type != SessionEventType.SYSTEM for event in events
        )
        return Ingestion(session=session, events=events)

    def watch_dirs(self, repo_root: str) -> list[str]:
        """Continue's sessions directory (it may not exist yet)."""
        return [self._dir()]