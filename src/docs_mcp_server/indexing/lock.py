from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger("docs.lock")


class RunLockError(RuntimeError):
    """Raised when another indexing run already holds the lock."""


class RunLock:
    """
    Exclusive lock file serialising indexing runs against one data directory.

    The lock file is created with O_EXCL and holds the owner's PID. A crashed
    run leaves it behind; remove it by hand once no run is active.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            owner = self._read_owner()
            raise RunLockError(
                f"Another indexing run holds {self.path} (pid {owner or 'unknown'})."
            ) from exc

        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning("Run lock %s disappeared before release", self.path)
        self._held = False

    def _read_owner(self) -> str:
        try:
            return self.path.read_text().strip()
        except OSError:
            return ""

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
