"""
FAISS Vector Store

This module owns the persisted vector index: building it from the corpus,
loading it at server start, and answering similarity searches.

Key Properties
--------------
- An index directory is either complete or absent. Builds are written to a
  fresh sibling directory and swapped into place only after every artifact
  is on disk.
- A failed build never touches the previously persisted index, and never
  replaces the index currently served from memory.
- Loading validates all required artifacts; an incomplete directory is
  "no index", never a crash.
- Searches read an immutable snapshot, so they can run while a rebuild is
  in progress and pick up the new index only after the swap.
- "Not loaded" is an exception, distinguishable from an empty result list.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional, Sequence

import faiss
import numpy as np
from langchain_text_splitters import RecursiveCharacterTextSplitter

from .embedder import EmbeddingError, EmbeddingFunction
from .models import IndexedChunk, IndexMeta, ScoredDocument
from ..indexing.hashing import url_to_filename
from ..indexing.models import CorpusDocument

logger = logging.getLogger("docs.index")


INDEX_FILE = "faiss.index"
DOCSTORE_FILE = "docstore.json"
META_FILE = "index_meta.json"

REQUIRED_ARTIFACTS = (INDEX_FILE, DOCSTORE_FILE, META_FILE)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class VectorIndexError(RuntimeError):
    """Base error for vector index failures."""


class IndexBuildError(VectorIndexError):
    """Raised when an index cannot be built."""


class EmptyCorpusError(IndexBuildError):
    """Raised when there is nothing to index."""


class IndexPersistenceError(IndexBuildError):
    """Raised when a built index cannot be written to disk."""


class IndexNotLoadedError(VectorIndexError):
    """Raised when searching before any index has been loaded or built."""


class IndexMissingError(VectorIndexError):
    """Raised when an index is expected on disk but cannot be loaded."""


# ---------------------------------------------------------------------
# Loaded snapshot
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class _LoadedIndex:
    index: faiss.Index
    chunks: List[IndexedChunk]
    meta: IndexMeta


# ---------------------------------------------------------------------
# Vector Store Manager
# ---------------------------------------------------------------------

class VectorStoreManager:
    """
    Build, persist, load and search a FAISS index rooted at one directory.

    One instance is created by the application (or the indexing CLI) and
    passed explicitly to whatever needs it.
    """

    def __init__(
        self,
        index_dir: Path,
        embedder: EmbeddingFunction,
        base_url: str,
        embedding_model: str = "unknown",
        chunk_size: int = 4000,
        chunk_overlap: int = 400,
    ) -> None:
        """
        Parameters
        ----------
        index_dir : Path
            Directory holding the persisted index artifacts.

        embedder : EmbeddingFunction
            Produces vectors for chunks and queries.

        base_url : str
            Documentation site prefix, used to derive ``source`` filenames.

        embedding_model : str
            Recorded in index_meta.json for diagnostics.

        chunk_size, chunk_overlap : int
            Text splitting parameters applied before embedding.
        """
        self._index_dir = Path(index_dir)
        self._embedder = embedder
        self._base_url = base_url
        self._embedding_model = embedding_model

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ".", " ", ""],
        )

        self._current: Optional[_LoadedIndex] = None
        self._lock = RLock()

    @property
    def index_dir(self) -> Path:
        return self._index_dir

    @property
    def _previous_dir(self) -> Path:
        return self._index_dir.with_name(self._index_dir.name + ".previous")

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def chunk_documents(self, documents: Sequence[CorpusDocument]) -> List[IndexedChunk]:
        # Pages whose readable names clash get digest-suffixed source labels.
        clashes = Counter(url_to_filename(d.url, self._base_url) for d in documents)
        chunks: List[IndexedChunk] = []
        for doc in documents:
            text = doc.page_text()
            if not text:
                logger.warning("Skipping %s: empty content", doc.url)
                continue

            source = url_to_filename(doc.url, self._base_url)
            if clashes[source] > 1:
                source = url_to_filename(doc.url, self._base_url, disambiguate=True)
            for i, piece in enumerate(self._splitter.split_text(text)):
                if not piece.strip():
                    continue
                chunks.append(
                    IndexedChunk(
                        chunk_id=f"{source}#{i}",
                        url=doc.url,
                        source=source,
                        title=doc.title or "No Title",
                        lastmod=doc.last_modified or "Unknown",
                        text=piece,
                    )
                )
        return chunks

    async def build_index(self, documents: Sequence[CorpusDocument]) -> int:
        """
        Embed every document and atomically replace the persisted index.

        Returns
        -------
        int
            Number of documents indexed.

        Raises
        ------
        EmptyCorpusError
            If no document has indexable text.

        IndexBuildError
            If embedding fails or returns inconsistent vectors.

        IndexPersistenceError
            If the index cannot be written or swapped into place.
        """
        chunks = self.chunk_documents(documents)
        if not chunks:
            raise EmptyCorpusError("No documents with content to index.")

        document_count = len({c.url for c in chunks})
        logger.info(
            "Building index from %d documents (%d chunks)", document_count, len(chunks)
        )

        try:
            vectors = await self._embedder.embed([c.text for c in chunks])
        except EmbeddingError as exc:
            raise IndexBuildError(f"Embedding failed: {exc}") from exc

        matrix = self._to_matrix(vectors, expected=len(chunks))
        meta = IndexMeta(
            embedding_model=self._embedding_model,
            dimension=int(matrix.shape[1]),
            document_count=document_count,
            chunk_count=len(chunks),
        )

        # FAISS and file IO block; keep them off the event loop.
        index = await asyncio.get_running_loop().run_in_executor(
            None, self._write_index, matrix, chunks, meta
        )

        with self._lock:
            self._current = _LoadedIndex(index=index, chunks=chunks, meta=meta)

        logger.info("Index written to %s", self._index_dir)
        return document_count

    def _write_index(self, matrix: np.ndarray, chunks: List[IndexedChunk], meta: IndexMeta) -> faiss.Index:
        index = faiss.IndexFlatIP(matrix.shape[1])
        index.add(matrix)
        self._persist(index, chunks, meta)
        return index

    @staticmethod
    def _to_matrix(vectors: List[List[float]], expected: int) -> np.ndarray:
        if len(vectors) != expected:
            raise IndexBuildError(
                f"Embedding count {len(vectors)} does not match chunk count {expected}."
            )

        dim = len(vectors[0]) if vectors else 0
        if dim == 0:
            raise IndexBuildError("Embedding vectors must be non-empty.")

        for i, vec in enumerate(vectors):
            if len(vec) != dim:
                raise IndexBuildError(f"Inconsistent embedding dimensionality at index {i}.")

        matrix = np.asarray(vectors, dtype="float32")
        faiss.normalize_L2(matrix)
        return matrix

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, index: faiss.Index, chunks: List[IndexedChunk], meta: IndexMeta) -> None:
        parent = self._index_dir.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            self._remove_stale_builds()
            staging = Path(
                tempfile.mkdtemp(prefix=f".{self._index_dir.name}.build-", dir=str(parent))
            )
        except OSError as exc:
            raise IndexPersistenceError(
                f"Index location {parent} is not writable: {exc}"
            ) from exc

        try:
            faiss.write_index(index, str(staging / INDEX_FILE))
            (staging / DOCSTORE_FILE).write_text(
                json.dumps({"chunks": [c.model_dump() for c in chunks]}, ensure_ascii=False),
                encoding="utf-8",
            )
            # Metadata last: its presence marks a finished build.
            (staging / META_FILE).write_text(meta.model_dump_json(indent=2), encoding="utf-8")
        except Exception as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise IndexPersistenceError(
                f"Failed to write index artifacts: {type(exc).__name__}: {exc}"
            ) from exc

        self._swap_into_place(staging)

    def _swap_into_place(self, staging: Path) -> None:
        previous = self._previous_dir
        try:
            if previous.exists():
                shutil.rmtree(previous)
            if self._index_dir.exists():
                os.replace(self._index_dir, previous)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise IndexPersistenceError(f"Could not retire old index: {exc}") from exc

        try:
            os.replace(staging, self._index_dir)
        except OSError as exc:
            if previous.exists() and not self._index_dir.exists():
                os.replace(previous, self._index_dir)
            shutil.rmtree(staging, ignore_errors=True)
            raise IndexPersistenceError(f"Could not move new index into place: {exc}") from exc

        if previous.exists():
            _remove_tree(previous)

    def _remove_stale_builds(self) -> None:
        for stale in self._index_dir.parent.glob(f".{self._index_dir.name}.build-*"):
            logger.warning("Removing abandoned index build %s", stale)
            _remove_tree(stale)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def missing_artifacts(self) -> List[str]:
        return [name for name in REQUIRED_ARTIFACTS if not (self._index_dir / name).is_file()]

    def load_index(self, restore_previous: bool = False) -> bool:
        """
        Load the persisted index if it is complete. Never raises.

        Returns False (and keeps whatever is already in memory) when the
        directory is absent, incomplete or unreadable.

        If a crash between retiring the old index and swapping in the new one
        left only ``<name>.previous``, that copy is served in place. Only callers
        holding the run lock may move it back (``restore_previous``).
        """
        logger.info("Attempting to load index from %s", self._index_dir)
        source = self._index_dir
        if not source.exists() and self._is_complete(self._previous_dir):
            if not (restore_previous and self._restore_previous()):
                logger.warning("Index missing; serving interrupted-swap copy %s", self._previous_dir)
                source = self._previous_dir

        if not source.is_dir():
            logger.warning("Index directory not found: %s", source)
            return False

        missing = [name for name in REQUIRED_ARTIFACTS if not (source / name).is_file()]
        if missing:
            logger.error(
                "Index at %s is incomplete (missing %s); ignoring it",
                source,
                ", ".join(missing),
            )
            return False

        try:
            index = faiss.read_index(str(source / INDEX_FILE))
            raw = json.loads((source / DOCSTORE_FILE).read_text(encoding="utf-8"))
            chunks = [IndexedChunk.model_validate(c) for c in raw["chunks"]]
            meta = IndexMeta.model_validate_json(
                (source / META_FILE).read_text(encoding="utf-8")
            )
        except Exception:
            logger.exception("Failed to read index from %s", source)
            return False

        if index.ntotal != len(chunks) or index.d != meta.dimension:
            logger.error(
                "Index at %s is inconsistent (%d vectors, %d chunks, dim %d vs %d)",
                source,
                index.ntotal,
                len(chunks),
                index.d,
                meta.dimension,
            )
            return False

        with self._lock:
            self._current = _LoadedIndex(index=index, chunks=chunks, meta=meta)

        logger.info("Index loaded: %d chunks from %d documents", len(chunks), meta.document_count)
        return True

    @staticmethod
    def _is_complete(path: Path) -> bool:
        return path.is_dir() and all((path / name).is_file() for name in REQUIRED_ARTIFACTS)

    def _restore_previous(self) -> bool:
        previous = self._previous_dir
        logger.warning("Restoring index from %s after an interrupted swap", previous)
        try:
            os.replace(previous, self._index_dir)
        except OSError as exc:
            logger.error("Could not restore %s: %s", previous, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def is_index_loaded(self) -> bool:
        return self._current is not None

    async def search(self, query: str, k: int = 5) -> List[ScoredDocument]:
        """
        Return up to ``k`` chunks ordered by descending similarity.

        Raises
        ------
        IndexNotLoadedError
            If no index has been loaded or built.
        """
        snapshot = self._current
        if snapshot is None:
            raise IndexNotLoadedError("Vector index is not loaded. Cannot perform search.")

        if k <= 0 or snapshot.index.ntotal == 0:
            return []

        embeddings = await self._embedder.embed([query])
        if not embeddings:
            raise VectorIndexError("Embedder returned no vector for the query.")

        q = np.asarray([embeddings[0]], dtype="float32")
        if q.shape[1] != snapshot.index.d:
            raise VectorIndexError(
                f"Query dimension {q.shape[1]} does not match index dimension {snapshot.index.d}."
            )
        faiss.normalize_L2(q)

        scores, idxs = snapshot.index.search(q, min(k, snapshot.index.ntotal))

        results: List[ScoredDocument] = []
        for score, idx in zip(scores[0], idxs[0]):
            idx = int(idx)
            if idx < 0:
                continue
            chunk = snapshot.chunks[idx]
            results.append(
                ScoredDocument(
                    url=chunk.url,
                    title=chunk.title,
                    source=chunk.source,
                    lastmod=chunk.lastmod,
                    content=chunk.text,
                    score=float(score),
                )
            )

        logger.debug("Search %r returned %d results", query, len(results))
        return results

    def get_stats(self) -> Dict[str, object]:
        """
        Return index statistics for diagnostics.
        """
        snapshot = self._current
        if snapshot is None:
            return {"loaded": False, "total_vectors": 0, "total_documents": 0}

        return {
            "loaded": True,
            "total_vectors": int(snapshot.index.ntotal),
            "total_documents": snapshot.meta.document_count,
            "dimension": snapshot.meta.dimension,
            "embedding_model": snapshot.meta.embedding_model,
            "built_at": snapshot.meta.built_at,
        }


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)
