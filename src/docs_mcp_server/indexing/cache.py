"""
Fingerprint Cache

Persisted map from page URL to the fingerprint seen on the last successful
run. The cache is always loaded and replaced as a whole; there is no per-key
API.

Failure semantics
-----------------
- A missing file is an empty cache.
- A corrupt file is logged, treated as empty for this run, and overwritten by
  the next successful save.
- A failed save is logged and reported as ``False``. Already-written corpus
  records stay valid; the next run may re-fetch pages it did not need to.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

from pydantic import ValidationError

from .files import atomic_write_text
from .models import CacheData

logger = logging.getLogger("docs.cache")


class FingerprintCache:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, str]:
        if not self._path.exists():
            logger.info("No fingerprint cache at %s, starting empty", self._path)
            return {}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            data = CacheData.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning(
                "Fingerprint cache %s is unreadable (%s); ignoring it for this run",
                self._path,
                type(exc).__name__,
            )
            return {}

        logger.info(
            "Loaded fingerprint cache with %d entries (last run %s)",
            len(data.urls),
            data.last_run or "unknown",
        )
        return dict(data.urls)

    def save(self, mapping: Dict[str, str]) -> bool:
        data = CacheData(
            last_run=datetime.now(timezone.utc).isoformat(),
            urls=dict(mapping),
        )
        try:
            atomic_write_text(
                self._path,
                json.dumps(data.model_dump(by_alias=True), indent=2, sort_keys=True),
            )
        except OSError as exc:
            logger.error(
                "Failed to save fingerprint cache to %s: %s", self._path, exc
            )
            return False

        logger.info("Saved fingerprint cache with %d entries", len(mapping))
        return True
