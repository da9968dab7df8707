"""Provider for Cursor's local agent state.

Cursor does not document a stable local transcript schema, so a bounded
agent-state directory is scanned with the tolerant structured extractor and
only candidates that mention the repository are accepted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar

from ..models import Discovery, Ingestion, SessionKind
from ..structured import discover_structured, ingest_structured


@dataclass
class CursorAdapter:
    """Reads Cursor agent state; ``home_dir`` defaults to ``~/.cursor/agent``."""

    home_dir: str = ""
    kind: ClassVar[SessionKind] = SessionKind.CURSOR

    def _dir(self) -> str:
        if self.home_dir:
            return self.home_dir
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("cannot determine the home directory")
        return os.path.join(home, ".cursor", "agent")

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return agent-state entries that mention ``repo_root``."""
        return discover_structured(self._dir(), repo_root, SessionKind.CURSOR)

    def ingest(self, source_path: str) -> Ingestion:
        """Extract events from an agent-state file or directory."""
        return ingest_structured(source_path, SessionKind.CURSOR)

    def watch_dirs(self, repo_root: str) -> list[str]:
        """The agent-state directory."""
        return [self._dir()]