"""
Document Fetcher

Decides, per manifest entry, whether a page must be fetched, fetches it with
bounded concurrency, persists it to the corpus, and classifies it as new,
modified or unchanged.

Change detection
----------------
The fingerprint stored in the cache for a URL depends on the configured mode:

- ``lastmod``: the manifest's modification marker. Entries without a marker
  are always re-fetched.
- ``content_hash``: the SHA-256 of the page text. Every page is fetched; only
  a digest change counts as a modification.
- ``auto``: the marker when the manifest provides one, the digest otherwise.

Failure semantics
-----------------
A failed, timed-out or cancelled fetch is counted in
``FetcherStats.errors`` and the URL is left out of the results. Its previous
cache entry and corpus record are not touched. Nothing here writes the cache file; successful fingerprints are
only staged in the returned FetchOutcome.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Protocol, Sequence, Tuple

from .corpus import CorpusStore
from .hashing import content_hash
from .models import (
    CorpusDocument,
    FetcherStats,
    FetchOutcome,
    PageContent,
    ProcessResult,
    SourceEntry,
)

logger = logging.getLogger("docs.fetcher")

ChangeDetection = Literal["lastmod", "content_hash", "auto"]


class PageSource(Protocol):
    async def fetch(self, url: str) -> PageContent:
        ...


@dataclass
class _EntryOutcome:
    result: Optional[ProcessResult] = None
    fingerprint: Optional[str] = None
    fetched_bytes: int = 0
    error: Optional[str] = None


class DocumentFetcher:
    def __init__(
        self,
        corpus: CorpusStore,
        source: PageSource,
        concurrency: int = 5,
        timeout: float = 30.0,
        change_detection: ChangeDetection = "auto",
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.corpus = corpus
        self.source = source
        self.concurrency = concurrency
        self.timeout = timeout
        self.change_detection = change_detection

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_and_process(
        self,
        entries: Sequence[SourceEntry],
        cache: Dict[str, str],
        force_update: bool = False,
    ) -> FetchOutcome:
        """
        Classify and fetch every entry.

        All per-entry tasks are joined before returning, so the caller can
        commit the staged fingerprints knowing no fetch is still in flight.

        Parameters
        ----------
        entries : Sequence[SourceEntry]
            Manifest entries in manifest order.

        cache : Dict[str, str]
            Fingerprints from the previous successful run. Not mutated.

        force_update : bool
            Fetch every entry regardless of the cache.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(entry: SourceEntry) -> _EntryOutcome:
            async with semaphore:
                return await self._process_entry(entry, cache, force_update)

        outcomes = await asyncio.gather(*(_bounded(e) for e in entries))

        outcome = FetchOutcome(stats=FetcherStats(total_urls=len(entries)))
        for entry, item in zip(entries, outcomes):
            if item.error is not None:
                outcome.stats.errors += 1
                outcome.failed_urls.append(entry.url)
                continue

            result = item.result
            outcome.results.append(result)
            if item.fingerprint is not None:
                outcome.staged[entry.url] = item.fingerprint
                outcome.stats.processed_urls += 1
                outcome.stats.total_bytes += item.fetched_bytes
            if result.changed:
                outcome.stats.modified_urls += 1

        logger.info(
            "Fetch run: %d urls, %d fetched, %d new/modified, %d errors, %d bytes",
            outcome.stats.total_urls,
            outcome.stats.processed_urls,
            outcome.stats.modified_urls,
            outcome.stats.errors,
            outcome.stats.total_bytes,
        )
        return outcome

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _uses_marker(self, entry: SourceEntry) -> bool:
        if self.change_detection == "lastmod":
            return True
        if self.change_detection == "content_hash":
            return False
        return bool(entry.remote_modified)

    async def _process_entry(
        self,
        entry: SourceEntry,
        cache: Dict[str, str],
        force_update: bool,
    ) -> _EntryOutcome:
        previous = cache.get(entry.url)
        uses_marker = self._uses_marker(entry)
        record_missing = False

        if (
            not force_update
            and uses_marker
            and entry.remote_modified
            and previous == entry.remote_modified
        ):
            stored = self.corpus.read(entry.url)
            if stored is not None:
                return _EntryOutcome(result=self._unchanged_result(entry.url, stored))
            logger.warning(
                "Corpus record for %s is missing; re-fetching despite cache hit", entry.url
            )
            record_missing = True

        page, error = await self._fetch_page(entry.url)
        if page is None:
            return _EntryOutcome(error=error)

        doc = CorpusDocument(
            url=entry.url,
            last_modified=entry.remote_modified or "",
            title=page.title,
            description=page.description,
            content=page.content,
        )
        text = doc.page_text()
        digest = content_hash(text)
        fingerprint = (entry.remote_modified or "") if uses_marker else digest

        try:
            path = self.corpus.write(doc)
        except (OSError, ValueError) as exc:
            logger.error("Failed to persist %s: %s", entry.url, exc)
            return _EntryOutcome(error=str(exc))

        is_new = previous is None
        modified = not is_new and (
            record_missing
            or previous != fingerprint
            or (uses_marker and not entry.remote_modified)
        )

        if is_new or modified:
            logger.info("%s %s", "New" if is_new else "Modified", entry.url)

        size = len(text.encode("utf-8"))
        return _EntryOutcome(
            result=ProcessResult(
                url=entry.url,
                file_path=str(path),
                hash=digest,
                modified=modified,
                is_new=is_new,
                content_length=size,
            ),
            fingerprint=fingerprint,
            fetched_bytes=size,
        )

    async def _fetch_page(self, url: str) -> Tuple[Optional[PageContent], Optional[str]]:
        """
        Fetch one page under the per-fetch deadline.

        Timeouts, transport errors and a cancelled transport call all come
        back as an error string for this URL only. Cancelling the run itself
        still propagates.
        """
        task = asyncio.ensure_future(self.source.fetch(url))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.warning("Timed out fetching %s after %.1fs", url, self.timeout)
            return None, "timeout"

        if task.cancelled():
            logger.warning("Fetch of %s was cancelled", url)
            return None, "cancelled"

        exc = task.exception()
        if exc is not None:
            logger.warning("Failed to fetch %s: %s", url, exc)
            return None, str(exc) or type(exc).__name__

        return task.result(), None

    def _unchanged_result(self, url: str, stored: CorpusDocument) -> ProcessResult:
        text = stored.page_text()
        return ProcessResult(
            url=url,
            file_path=str(self.corpus.path_for(url)),
            hash=content_hash(text),
            modified=False,
            is_new=False,
            content_length=len(text.encode("utf-8")),
        )
