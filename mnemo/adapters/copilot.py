"""Provider for GitHub Copilot CLI's local session state.

Copilot CLI keeps session state under ``~/.copilot/session-state`` without a
documented event schema, so the tolerant structured extractor is used and
only candidates that mention the repository are discovered.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar

from ..models import Discovery, Ingestion, SessionKind
from ..structured import discover_structured, ingest_structured


@dataclass
class CopilotAdapter:
    """Reads Copilot CLI session state; ``home_dir`` defaults to ``~/.copilot``."""

    home_dir: str = ""
    kind: ClassVar[SessionKind] = SessionKind.COPILOT

    def _dir(self) -> str:
        if self.home_dir:
            return os.path.join(self.home_dir, "session-state")
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("cannot determine the home directory")
        return os.path.join(home, ".copilot", "session-state")

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return session-state entries that mention ``repo_root``."""
        return discover_structured(self._dir(), repo_root, SessionKind.COPILOT)

    def ingest(self, source_path: str) -> Ingestion:
        """Extract events from a session-state file or directory."""
        return ingest_structured(source_path, SessionKind.COPILOT)

    def watch_dirs(self, repo_root: str) -> list[str]:
        """The session-state directory."""
        return [self._dir()]