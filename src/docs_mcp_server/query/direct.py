from __future__ import annotations

import logging
from typing import List, Optional

from ..api.models import FormattedSearchResult
from ..embeddings.index import IndexNotLoadedError, VectorStoreManager
from ..embeddings.models import ScoredDocument

logger = logging.getLogger("docs.query.direct")


class DirectQueryService:
    """Plain similarity search over the loaded index, no LLM involved."""

    def __init__(self, vector_store: VectorStoreManager, default_limit: int = 5) -> None:
        if not vector_store.is_index_loaded():
            raise IndexNotLoadedError("DirectQueryService requires a loaded vector index.")
        self.vector_store = vector_store
        self.default_limit = default_limit

    async def perform_search(
        self,
        query: str,
        limit: Optional[int] = None,
    ) -> List[FormattedSearchResult]:
        """
        Search and number the hits from 1.

        An empty list means the index is loaded but nothing matched; a
        missing index raises IndexNotLoadedError.
        """
        k = limit or self.default_limit
        logger.info("Direct query %r (limit=%d)", query, k)
        results = await self.vector_store.search(query, k)
        return self.format_results(results)

    @staticmethod
    def format_results(results: List[ScoredDocument]) -> List[FormattedSearchResult]:
        return [
            FormattedSearchResult(
                index=i,
                source=doc.source or "Unknown source",
                url=doc.url or "URL not available",
                title=doc.title or "No Title",
                content=doc.content,
                score=doc.score,
            )
            for i, doc in enumerate(results, start=1)
        ]
