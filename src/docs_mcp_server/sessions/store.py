"""
Session Store

File-backed conversation history for agent sessions.

Each session is one JSON file holding an ordered list of ChatMessage records,
so conversations survive server restarts.

Design choices
--------------
- Session identifiers are reduced to a safe file name (basename, then
  anything outside ``[A-Za-z0-9_-]`` becomes ``_``). An identifier that
  reduces to nothing is rejected with InvalidSessionIdError.
- Reads fail soft: a missing or unreadable file is an empty history, and a
  file whose content is not a list is deleted.
- Writes are atomic (temp file + rename) and truncate to the most recent
  ``max_messages_per_session`` messages.
- ``clear_all`` is a best-effort sweep that logs per-file failures.
- Thread-safe access using a re-entrant lock.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path, PurePath
from threading import RLock
from typing import List, Optional

from pydantic import ValidationError

from ..api.models import ChatMessage
from ..indexing.files import atomic_write_text

logger = logging.getLogger("docs.sessions")

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


class InvalidSessionIdError(ValueError):
    """Raised when a session identifier cannot be mapped to a file name."""


def sanitize_session_id(session_id: str) -> str:
    safe = _UNSAFE.sub("_", PurePath(session_id or "").name)
    if not safe:
        raise InvalidSessionIdError(f"Invalid session id: {session_id!r}")
    return safe


class SessionStore:
    """
    Map session IDs to ordered lists of ChatMessage objects on disk.
    """

    def __init__(
        self,
        sessions_dir: Path,
        max_messages_per_session: Optional[int] = None,
    ) -> None:
        """
        Initialize a new SessionStore.

        Parameters
        ----------
        sessions_dir : Path
            Directory holding one ``<session>.json`` file per session.

        max_messages_per_session : Optional[int]
            If provided, each session's history is truncated to the most
            recent N messages on save. If None, history is unbounded.
        """
        self._dir = Path(sessions_dir)
        self._lock = RLock()
        self._max_messages_per_session = max_messages_per_session

    def path_for(self, session_id: str) -> Path:
        return self._dir / f"{sanitize_session_id(session_id)}.json"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get_history(self, session_id: str) -> List[ChatMessage]:
        """
        Return the message history for a given session ID.

        Returns
        -------
        List[ChatMessage]
            Messages in order. Empty list if unknown or unreadable.

        Raises
        ------
        InvalidSessionIdError
            If the identifier is unusable.
        """
        path = self.path_for(session_id)

        with self._lock:
            if not path.is_file():
                return []

            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.error("Error loading session %s from %s: %s", session_id, path, exc)
                return []

            if not isinstance(raw, list):
                logger.warning(
                    "Session file %s is not a list; discarding history", path
                )
                self.clear(session_id)
                return []

            try:
                return [ChatMessage.model_validate(m) for m in raw]
            except ValidationError as exc:
                logger.error("Session %s holds invalid messages: %s", session_id, exc)
                return []

    def save_history(self, session_id: str, messages: List[ChatMessage]) -> None:
        """
        Replace the stored history for a session.

        Storage failures are logged, not raised: losing a transcript must
        not fail the answer that produced it.
        """
        path = self.path_for(session_id)

        if self._max_messages_per_session is not None and self._max_messages_per_session > 0:
            messages = messages[-self._max_messages_per_session:]

        payload = json.dumps([m.model_dump() for m in messages], ensure_ascii=False, indent=2)

        with self._lock:
            try:
                atomic_write_text(path, payload)
            except OSError as exc:
                logger.error("Error saving session %s to %s: %s", session_id, path, exc)

    def add_messages(self, session_id: str, new_messages: List[ChatMessage]) -> None:
        """
        Append new messages to the given session's history.
        """
        if not new_messages:
            return

        with self._lock:
            history = self.get_history(session_id)
            self.save_history(session_id, history + list(new_messages))

    def clear(self, session_id: str) -> bool:
        """
        Remove all history for a given session ID.

        Returns True if a file was deleted.
        """
        path = self.path_for(session_id)

        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                logger.error("Error deleting session file %s: %s", path, exc)
                return False

        logger.info("Deleted session file for %s", session_id)
        return True

    # ------------------------------------------------------------------
    # Utility operations
    # ------------------------------------------------------------------

    def clear_all(self) -> int:
        """
        Delete every session file. Returns the number deleted.
        """
        if not self._dir.is_dir():
            return 0

        deleted = 0
        with self._lock:
            for path in self._dir.glob("*.json"):
                try:
                    path.unlink()
                    deleted += 1
                except OSError as exc:
                    logger.error("Error deleting session file %s: %s", path, exc)

        if deleted:
            logger.info("Deleted %d session files from %s", deleted, self._dir)
        return deleted

    def has_session(self, session_id: str) -> bool:
        return self.path_for(session_id).is_file()
