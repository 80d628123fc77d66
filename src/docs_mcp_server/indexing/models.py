"""
Indexing Data Models

Canonical records exchanged between the manifest, the fetcher, the corpus
store and the rebuild coordinator.

Persisted shapes (CorpusDocument, CacheData) keep the on-disk key names
used by earlier index builds (``lastmod``, ``lastRun``) so existing data
directories stay readable.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceEntry(BaseModel):
    """One page declared by the site manifest."""

    url: str = Field(..., min_length=1)
    remote_modified: Optional[str] = Field(
        default=None,
        description="Modification marker from the manifest (e.g. sitemap <lastmod>).",
    )

    model_config = ConfigDict(frozen=True)


class PageContent(BaseModel):
    """Normalised content returned by the page transport."""

    title: str = ""
    description: str = ""
    content: str = ""


class CorpusDocument(BaseModel):
    """
    A persisted page record.

    One JSON file per URL in the documents directory. This is the only input
    to an index rebuild.
    """

    url: str = Field(..., min_length=1)
    last_modified: str = Field(default="", alias="lastmod")
    title: str = ""
    description: str = ""
    content: str = ""

    model_config = ConfigDict(populate_by_name=True)

    def page_text(self) -> str:
        """Title, description and body joined into the text that gets embedded."""
        parts = [self.title, self.description, self.content]
        return "\n\n".join(p.strip() for p in parts if p and p.strip()).strip()


class ProcessResult(BaseModel):
    """Per-entry outcome of a fetch run. Errored entries produce none."""

    url: str
    file_path: str
    hash: str
    modified: bool = False
    is_new: bool = False
    content_length: int = Field(default=0, ge=0)

    @property
    def changed(self) -> bool:
        return self.is_new or self.modified


class FetcherStats(BaseModel):
    total_urls: int = 0
    processed_urls: int = 0
    modified_urls: int = 0
    errors: int = 0
    total_bytes: int = 0


class CacheData(BaseModel):
    """On-disk shape of the fingerprint cache."""

    last_run: Optional[str] = Field(default=None, alias="lastRun")
    urls: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class FetchOutcome(BaseModel):
    """
    Everything a fetch run produced.

    ``staged`` holds the fingerprints of successfully fetched pages. They are
    not written anywhere until the coordinator commits them.
    """

    results: List[ProcessResult] = Field(default_factory=list)
    stats: FetcherStats = Field(default_factory=FetcherStats)
    staged: Dict[str, str] = Field(default_factory=dict)
    failed_urls: List[str] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(r.changed for r in self.results)

    def merged_cache(self, previous: Dict[str, str]) -> Dict[str, str]:
        merged = dict(previous)
        merged.update(self.staged)
        return merged
