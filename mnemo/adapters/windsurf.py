"""Provider for Windsurf's Devin-based terminal sessions.

These sessions have no documented stable local event schema, so discovery is
bounded and repository-scoped, and parsing uses the tolerant structured
extractor.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar

from ..models import Discovery, Ingestion, SessionKind
from ..structured import discover_structured, ingest_structured


@dataclass
class WindsurfAdapter:
    """Reads Devin session state; ``home_dir`` defaults to ``~/.devin`` and ``~/.config/devin``."""

    home_dir: str = ""
    kind: ClassVar[SessionKind] = SessionKind.WINDSURF

    def _dirs(self) -> list[str]:
        if self.home_dir:
            return [self.home_dir]
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("cannot determine the home directory")
        return [os.path.join(home, ".devin"), os.path.join(home, ".config", "devin")]

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return session entries across all state directories that mention ``repo_root``."""
        found: list[Discovery] = []
        for directory in self._dirs():
            found.extend(discover_structured(directory, repo_root, SessionKind.WINDSURF))
        return found

    def ingest(self, source_path: str) -> Ingestion:
        """Extract events from a session file or directory."""
        return ingest_structured(source_path, SessionKind.WINDSURF)

    def watch_dirs(self, repo_root: str) -> list[str]:
        """The state directories."""
        return self._dirs()