"""
Index Build Entry Point (``docs-build-index``)

Synchronises the local documentation corpus with the site's sitemap and
rebuilds the vector index when anything changed.

Exit codes
----------
0   run reached DONE (rebuild or skip)
1   fatal error: manifest unavailable, index build failed, index missing
    on skip, or another run holds the lock
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import Settings, settings
from .logging_config import configure_logging
from .embeddings.embedder import Embedder, EmbeddingError, EmbeddingFunction
from .embeddings.index import VectorIndexError, VectorStoreManager
from .indexing import (
    CorpusStore,
    DocumentFetcher,
    FingerprintCache,
    ManifestError,
    PageTransport,
    RunLock,
    RunLockError,
    SitemapManifest,
)
from .indexing.coordinator import RebuildCoordinator, RunReport

logger = logging.getLogger("docs.build")

LOCK_FILENAME = ".build.lock"
SUMMARY_FILENAME = "summary.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docs-build-index",
        description="Fetch changed documentation pages and rebuild the search index.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the fingerprint cache, refetch every page and rebuild the index.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (defaults to LOG_LEVEL from the environment).",
    )
    return parser


async def run_indexing(
    force: bool = False,
    app_settings: Optional[Settings] = None,
    embedder: Optional[EmbeddingFunction] = None,
) -> RunReport:
    """
    Wire the indexing components from settings and run one synchronisation.
    """
    cfg = app_settings or settings
    docs_dir = cfg.resolved_docs_dir()

    manifest = SitemapManifest(
        cfg.sitemap_url,
        user_agent=cfg.user_agent,
        timeout=cfg.fetch_timeout,
    )
    corpus = CorpusStore(docs_dir, cfg.site_base_url)
    vector_store = VectorStoreManager(
        cfg.resolved_index_dir(),
        embedder or Embedder(
            api_key=cfg.openai_api_key.get_secret_value(),
            model=cfg.embedding_model,
            base_url=cfg.embedding_base_url,
            batch_size=cfg.embedding_batch_size,
        ),
        base_url=cfg.site_base_url,
        embedding_model=cfg.embedding_model,
        chunk_size=cfg.chunk_size,
        chunk_overlap=cfg.chunk_overlap,
    )

    async with PageTransport(user_agent=cfg.user_agent, timeout=cfg.fetch_timeout) as transport:
        fetcher = DocumentFetcher(
            corpus,
            transport,
            concurrency=cfg.fetch_concurrency,
            timeout=cfg.fetch_timeout,
            change_detection=cfg.change_detection,
        )
        coordinator = RebuildCoordinator(
            manifest,
            fetcher,
            FingerprintCache(cfg.resolved_cache_path()),
            corpus,
            vector_store,
            lock=RunLock(docs_dir / LOCK_FILENAME),
            summary_path=docs_dir / SUMMARY_FILENAME,
        )
        return await coordinator.run(force_update=force)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or settings.log_level)

    try:
        report = asyncio.run(run_indexing(force=args.force))
    except (ManifestError, VectorIndexError, EmbeddingError, RunLockError) as exc:
        logger.error("Indexing failed: %s", exc)
        return 1

    logger.info(
        "Processed %d pages, %d new/modified, %d failed; decision=%s",
        report.stats.processed_urls,
        len(report.changed_urls),
        len(report.failed_urls),
        report.decision,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
