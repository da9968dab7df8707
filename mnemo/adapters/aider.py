"""Provider for Aider's per-repository markdown chat log."""

from __future__ import annotations

import os
from datetime import datetime, timezone

from ..generic import _ingested_session, _scan_lines, _transcript_event
from ..models import Discovery, Ingestion, SessionEvent, SessionEventType, SessionKind

HISTORY_FILE = ".aider.chat.history.md"
_USER_PREFIX = "#### "
_MESSAGE_TYPES = (SessionEventType.USER_MESSAGE, SessionEventType.ASSISTANT_MESSAGE)


class AiderAdapter:
    """Reads ``<repo>/.aider.chat.history.md``.

    User turns are lines starting with ``#### ``; assistant prose follows until
    the next user turn or a ``# `` session banner.
    """

    kind = SessionKind.AIDER

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return the repository's chat history file, if it exists."""
        path = os.path.join(os.path.abspath(repo_root), HISTORY_FILE)
        try:
            os.stat(path)
        except FileNotFoundError:
            return []
        return [Discovery(kind=SessionKind.AIDER, source_path=path, external_id="aider")]

    def ingest(self, source_path: str) -> Ingestion:
        """Parse the chat history into user and assistant turns."""
        now = datetime.now(timezone.utc)
        session = _ingested_session(source_path, SessionKind.AIDER, "aider", now)
        events: list[SessionEvent] = []
        role: SessionEventType | None = None
        buffer: list[str] = []

        def flush() -> None:
            text = "\n".join(buffer).strip()
            buffer.clear()
            if role is not None and text:
                events.append(_transcript_event(len(events) + 1, role, text, now))

        for line in _scan_lines(source_path):
            if line.startswith(_USER_PREFIX):
                # Consecutive "#### " lines form one user turn.
                if role != SessionEventType.USER_MESSAGE:
                    flush()
                    role = SessionEventType.USER_MESSAGE
                buffer.append(line[len(_USER_PREFIX):])
            elif line.startswith("# "):
                flush()
                role = None
            else:
                # "> " is a status banner between turns but content inside a reply.
                if line.startswith("> ") and role is None:
                    continue
                if role == SessionEventType.USER_MESSAGE:
                    flush()
                    role = SessionEventType.ASSISTANT_MESSAGE
                elif role is None and line.strip():
                    role = SessionEventType.ASSISTANT_MESSAGE
                if role is not None:
                    buffer.append(line)
        flush()
        session.message_count = sum(event.type in _MESSAGE_TYPES for event in events)
        return Ingestion(session=session, events=events)

    def watch_dirs(self, repo_root: str) -> list[str]:
        """The repository root, where Aider writes its history file."""
        return [os.path.abspath(repo_root)]