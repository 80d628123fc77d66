"""
Rebuild Coordinator

Drives one synchronisation run and decides what happens to the vector index.

State machine
-------------
    START -> FETCHED -> SKIP    -> DONE
                     -> REBUILD -> DONE

- START -> FETCHED: read the manifest and the fingerprint cache, run the
  fetcher. A manifest failure aborts here; neither the cache nor the index
  has been touched.
- FETCHED -> REBUILD when ``force_update`` is set or any page is new or
  modified. The index is rebuilt from the whole corpus on disk, then the
  cache is saved. The cache is committed last, so a failed build leaves it
  describing the previous successful run and the next run sees the same
  changes again.
- FETCHED -> SKIP otherwise. The existing index must still be loadable;
  if it is not, the run fails with IndexMissingError instead of reporting
  success over an empty index.
"""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from .cache import FingerprintCache
from .corpus import CorpusStore
from .fetcher import DocumentFetcher
from .files import atomic_write_text
from .lock import RunLock
from .models import FetcherStats, FetchOutcome, ProcessResult, SourceEntry
from ..embeddings.index import IndexMissingError, VectorStoreManager

logger = logging.getLogger("docs.coordinator")


class RunState(str, Enum):
    START = "start"
    FETCHED = "fetched"
    SKIP = "skip"
    REBUILD = "rebuild"
    DONE = "done"


class ManifestSource(Protocol):
    async def entries(self) -> List[SourceEntry]:
        ...


class RunReport(BaseModel):
    decision: Literal["skip", "rebuild"]
    state: RunState
    stats: FetcherStats
    results: List[ProcessResult] = Field(default_factory=list)
    failed_urls: List[str] = Field(default_factory=list)
    documents_indexed: int = 0
    cache_saved: bool = False
    duration_seconds: float = 0.0

    @property
    def changed_urls(self) -> List[str]:
        return [r.url for r in self.results if r.changed]


class RebuildCoordinator:
    def __init__(
        self,
        manifest: ManifestSource,
        fetcher: DocumentFetcher,
        cache: FingerprintCache,
        corpus: CorpusStore,
        vector_store: VectorStoreManager,
        lock: Optional[RunLock] = None,
        summary_path: Optional[Path] = None,
    ) -> None:
        self.manifest = manifest
        self.fetcher = fetcher
        self.cache = cache
        self.corpus = corpus
        self.vector_store = vector_store
        self.lock = lock
        self.summary_path = summary_path
        self._state = RunState.START

    @property
    def state(self) -> RunState:
        return self._state

    @staticmethod
    def should_rebuild(outcome: FetchOutcome, force_update: bool) -> bool:
        return force_update or outcome.has_changes

    async def run(self, force_update: bool = False) -> RunReport:
        if self.lock is None:
            return await self._run(force_update)

        with self.lock:
            return await self._run(force_update)

    async def _run(self, force_update: bool) -> RunReport:
        started = time.monotonic()
        self._state = RunState.START
        if force_update:
            logger.info("Force update requested; cache ignored and index will be rebuilt")

        entries = await self.manifest.entries()
        previous = self.cache.load()
        outcome = await self.fetcher.fetch_and_process(entries, previous, force_update)
        self._state = RunState.FETCHED

        if outcome.failed_urls:
            logger.warning(
                "%d pages failed to fetch and keep their previous data: %s",
                len(outcome.failed_urls),
                ", ".join(outcome.failed_urls[:10]),
            )

        if self.should_rebuild(outcome, force_update):
            self._state = RunState.REBUILD
            report = await self._rebuild(outcome, previous)
        else:
            self._state = RunState.SKIP
            report = self._skip(outcome)

        self._state = RunState.DONE
        report.state = RunState.DONE
        report.duration_seconds = round(time.monotonic() - started, 3)
        self._write_summary(report)

        logger.info(
            "Run finished: decision=%s, %d documents indexed, %.1fs",
            report.decision,
            report.documents_indexed,
            report.duration_seconds,
        )
        return report

    async def _rebuild(self, outcome: FetchOutcome, previous: Dict[str, str]) -> RunReport:
        logger.info(
            "Changes detected (%d new/modified); rebuilding index from full corpus",
            outcome.stats.modified_urls,
        )
        documents = self.corpus.load_all()

        # Raises on failure, before the cache is touched.
        indexed = await self.vector_store.build_index(documents)

        cache_saved = self.cache.save(outcome.merged_cache(previous))
        if not cache_saved:
            logger.warning("Index rebuilt but cache not saved; next run may re-fetch pages")

        return RunReport(
            decision="rebuild",
            state=RunState.REBUILD,
            stats=outcome.stats,
            results=outcome.results,
            failed_urls=outcome.failed_urls,
            documents_indexed=indexed,
            cache_saved=cache_saved,
        )

    def _skip(self, outcome: FetchOutcome) -> RunReport:
        logger.info("No changes detected; index rebuild skipped")
        if not self.vector_store.load_index(restore_previous=True):
            raise IndexMissingError(
                f"Index rebuild was skipped but no usable index exists at "
                f"{self.vector_store.index_dir}. Run again with --force."
            )

        return RunReport(
            decision="skip",
            state=RunState.SKIP,
            stats=outcome.stats,
            results=outcome.results,
            failed_urls=outcome.failed_urls,
        )

    def _write_summary(self, report: RunReport) -> None:
        if self.summary_path is None:
            return
        summary = {
            "decision": report.decision,
            "stats": report.stats.model_dump(by_alias=True),
            "changed": report.changed_urls,
            "failed": report.failed_urls,
            "documents_indexed": report.documents_indexed,
            "cache_saved": report.cache_saved,
            "duration_seconds": report.duration_seconds,
        }
        try:
            atomic_write_text(self.summary_path, json.dumps(summary, indent=2))
        except OSError as exc:
            logger.warning("Could not write run summary %s: %s", self.summary_path, exc)
