"""Privacy rules for sessions and events that leave the local store.

A shared metadata backend must never receive raw transcript content or
absolute paths. These helpers return copies holding only the shareable
shape; the originals are left untouched.
"""

from __future__ import annotations

import os
from dataclasses import replace

from .models import Session, SessionEvent

_SEPARATORS = "/" + (os.sep if os.sep != "/" else "")


def _base_name(path: str) -> str:
    """Last element of ``path``, ignoring trailing separators."""
    trimmed = path.rstrip(_SEPARATORS)
    if not trimmed:
        return os.sep
    cut = max(trimmed.rfind(sep) for sep in _SEPARATORS)
    return trimmed[cut + 1:]


def sanitize_session(session: Session) -> Session:
    """Return a copy whose source path is reduced to its base name.

    Tool, branch, commit, counts, timestamps and status are kept.
    """
    if not session.source_path:
        return replace(session)
    return replace(session, source_path=_base_name(session.source_path))


def sanitize_event(event: SessionEvent) -> SessionEvent:
    """Return a copy without content or structured payload.

    Identity, session, sequence, type and timestamps are kept.
    """
    return replace(event, content="", structured_value=None)