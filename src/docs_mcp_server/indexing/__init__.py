"""
Indexing Package

Incremental synchronisation of the documentation corpus: manifest parsing,
change detection, corpus persistence and the rebuild decision.
"""

from .cache import FingerprintCache
from .corpus import CorpusStore
from .fetcher import DocumentFetcher
from .lock import RunLock, RunLockError
from .manifest import ManifestError, SitemapManifest
from .models import (
    CorpusDocument,
    FetcherStats,
    FetchOutcome,
    ProcessResult,
    SourceEntry,
)
from .transport import PageFetchError, PageTransport

__all__ = [
    "FingerprintCache",
    "CorpusStore",
    "DocumentFetcher",
    "RunLock",
    "RunLockError",
    "ManifestError",
    "SitemapManifest",
    "CorpusDocument",
    "FetcherStats",
    "FetchOutcome",
    "ProcessResult",
    "SourceEntry",
    "PageFetchError",
    "PageTransport",
]
