"""Core session data types and the contracts that transcript providers meet."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

PREFIX_SESSION_EVENT = "sev"


class _StrEnum(str, Enum):
    """String enum whose str() and format() give the bare value."""

    def __str__(self) -> str:
        return str(self.value)

    def __format__(self, spec: str) -> str:
        return format(str(self.value), spec)


class SessionKind(_StrEnum):
    """Built-in coding tools with a known transcript layout."""

    CLAUDE = "claude"
    CODEX = "codex"
    AIDER = "aider"
    CONTINUE = "continue"
    COPILOT = "copilot"
    CURSOR = "cursor"
    WINDSURF = "windsurf"


class SessionEventType(_StrEnum):
    """Canonical type of one event in a transcript."""

    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    SYSTEM = "system"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    THINKING = "thinking"


class SessionStatus(_StrEnum):
    """Lifecycle status of a stored session."""

    INGESTED = "ingested"


class Capability(_StrEnum):
    """Declarative tag describing what an agent supports."""

    RESUME_CLI = "resume.cli"
    RESUME_STDIN = "resume.stdin"
    RESUME_FILE = "resume.file"
    READS_FILES = "reads.files"
    RUNS_COMMANDS = "runs.commands"


def new_id(prefix: str) -> str:
    """Return a fresh random identifier of the form ``<prefix>_<hex>``."""
    return f"{prefix}_{uuid.uuid4().hex}"


@dataclass
class Session:
    """Metadata of one ingested transcript."""

    id: str = ""
    repo_id: str = ""
    agent: str = ""
    kind: str = ""
    source_path: str = ""
    external_id: str = ""
    started_at: datetime | None = None
    ended_at: datetime | None = None
    branch: str = ""
    commit_hash: str = ""
    message_count: int = 0
    status: str = ""
    ingested_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    source_fingerprint: str = ""


@dataclass
class SessionEvent:
    """One event (message, tool call, ...) inside a session."""

    id: str = ""
    session_id: str = ""
    sequence: int = 0
    type: str = ""
    content: str = ""
    timestamp: datetime | None = None
    structured_value: dict[str, Any] | None = None
    created_at: datetime | None = None


@dataclass
class Discovery:
    """One transcript file found for an agent."""

    kind: str = ""
    source_path: str = ""
    external_id: str = ""
    agent: str = ""


@dataclass
class Ingestion:
    """The parsed representation of a single transcript."""

    session: Session
    events: list[SessionEvent] = field(default_factory=list)


@runtime_checkable
class Parser(Protocol):
    """Turns one transcript file into a session and its events."""

    kind: str

    def ingest(self, source_path: str) -> Ingestion:
        """Parse the transcript at ``source_path``."""


@runtime_checkable
class Provider(Protocol):
    """Built-in contract for a known kind: parse and discover."""

    kind: str

    def ingest(self, source_path: str) -> Ingestion:
        """Parse the transcript at ``source_path``."""

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return the transcripts that belong to ``repo_root``."""


@runtime_checkable
class DirWatcher(Protocol):
    """Optional capability: directories worth watching for new transcripts."""

    def watch_dirs(self, repo_root: str) -> list[str]:
        """Return directories to watch for ``repo_root``."""