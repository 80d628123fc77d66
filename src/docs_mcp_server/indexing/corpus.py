"""
Corpus Store

Durable per-page JSON records in the documents directory. File names are
derived from the page URL, so re-fetching a page overwrites its record in
place. Writes go through a temp file and a rename.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .files import atomic_write_text
from .hashing import url_to_filename
from .models import CorpusDocument

logger = logging.getLogger("docs.corpus")

# Bookkeeping files that share the documents directory with page records.
RESERVED_FILENAMES = frozenset({"summary.json", "lastmod_cache.json", "sitemap-index.json"})


class CorpusStore:
    def __init__(self, root: Path, base_url: str) -> None:
        self._root = Path(root)
        self._base_url = base_url

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, url: str) -> Path:
        """
        File that holds (or will hold) the record for ``url``.

        The readable name goes to whichever URL claims it first. A different
        URL normalising to the same name gets the digest-suffixed name.
        """
        readable = self._root / url_to_filename(url, self._base_url)
        owner = self._owner_of(readable)
        if owner is None or owner == url:
            return readable
        return self._root / url_to_filename(url, self._base_url, disambiguate=True)

    def write(self, doc: CorpusDocument) -> Path:
        path = self.path_for(doc.url)
        if path.name in RESERVED_FILENAMES:
            raise ValueError(f"URL {doc.url} maps to reserved filename {path.name}")

        atomic_write_text(
            path,
            json.dumps(doc.model_dump(by_alias=True), ensure_ascii=False, indent=2),
        )
        return path

    def read(self, url: str) -> Optional[CorpusDocument]:
        """Return the record for ``url``, or None if no record on disk belongs to it."""
        doc = self._read_path(self.path_for(url))
        if doc is None or doc.url != url:
            return None
        return doc

    def load_all(self) -> List[CorpusDocument]:
        """
        Read every page record currently on disk, sorted by file name.

        Malformed records are skipped with a warning.
        """
        if not self._root.is_dir():
            return []

        documents: List[CorpusDocument] = []
        for path in sorted(self._root.glob("*.json")):
            if path.name in RESERVED_FILENAMES:
                continue
            doc = self._read_path(path)
            if doc is not None:
                documents.append(doc)

        logger.info("Loaded %d corpus documents from %s", len(documents), self._root)
        return documents

    def _read_path(self, path: Path) -> Optional[CorpusDocument]:
        if not path.is_file():
            return None
        try:
            return CorpusDocument.model_validate(
                json.loads(path.read_text(encoding="utf-8"))
            )
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Skipping unreadable corpus record %s: %s", path.name, exc)
            return None

    def _owner_of(self, path: Path) -> Optional[str]:
        if not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        owner = raw.get("url") if isinstance(raw, dict) else None
        return owner if isinstance(owner, str) and owner else None
