"""
Documentation Search Tool

This module implements the LLM tool ``search_docs``, a thin layer over the
vector store that produces both the text handed back to the LLM and the
structured outcome recorded for the caller.
"""

from __future__ import annotations

from typing import List, Tuple

from ..embeddings.index import VectorStoreManager
from ..embeddings.models import ScoredDocument
from ..api.models import SearchToolArgs


async def tool_search_docs(
    args: SearchToolArgs,
    vector_store: VectorStoreManager,
    default_limit: int = 5,
) -> List[ScoredDocument]:
    """
    Run a similarity search for the agent.

    Raises
    ------
    IndexNotLoadedError
        If the vector store has no index loaded.
    """
    return await vector_store.search(args.query, args.limit or default_limit)


def render_for_llm(results: List[ScoredDocument]) -> Tuple[str, List[dict]]:
    """
    Format search hits as the tool message content.

    Returns
    -------
    (str, List[dict])
        Text for the LLM, and the title/url pairs that were shown.
    """
    if not results:
        return "No relevant documentation found.", []

    blocks = []
    shown = []
    for i, doc in enumerate(results, start=1):
        blocks.append(f"[{i}] {doc.title}\nURL: {doc.url}\n\n{doc.content}")
        shown.append({"title": doc.title, "url": doc.url})

    return "\n\n---\n\n".join(blocks), shown
