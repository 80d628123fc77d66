"""
Tool Dispatch Layer

This module defines the central dispatch mechanism for all LLM-invoked tool
calls. It enforces:

- Explicit tool allow-listing
- Argument validation at the boundary
- One typed outcome per call (SearchToolOutcome or ToolErrorOutcome)

Tool failures never raise out of dispatch: the agent loop hands the error
back to the LLM as a tool message so it can retry or answer without it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Tuple

from pydantic import ValidationError

from .definitions import TOOL_SEARCH_DOCS
from .search_tools import render_for_llm, tool_search_docs
from ..api.models import (
    SearchToolArgs,
    SearchToolOutcome,
    ToolDocument,
    ToolErrorOutcome,
    ToolOutcome,
)
from ..embeddings.index import VectorStoreManager

logger = logging.getLogger("docs.tools")


# ---------------------------------------------------------------------
# Tool Type Definitions
# ---------------------------------------------------------------------

# (raw JSON arguments, vector store, default limit) -> (LLM text, outcome)
ToolHandler = Callable[
    [Dict[str, Any], VectorStoreManager, int],
    Awaitable[Tuple[str, ToolOutcome]],
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------
# Tool Registry (AUTHORITATIVE)
# ---------------------------------------------------------------------

async def _handle_search_docs(
    args: Dict[str, Any],
    vector_store: VectorStoreManager,
    default_limit: int,
) -> Tuple[str, ToolOutcome]:
    parsed = SearchToolArgs.model_validate(args)
    results = await tool_search_docs(parsed, vector_store, default_limit)
    text, shown = render_for_llm(results)
    return text, SearchToolOutcome(
        tool=TOOL_SEARCH_DOCS,
        query=parsed.query,
        documents=[ToolDocument(**d) for d in shown],
        timestamp=_now(),
    )


TOOL_REGISTRY: Dict[str, ToolHandler] = {
    TOOL_SEARCH_DOCS: _handle_search_docs,
}


# ---------------------------------------------------------------------
# Public Dispatch API
# ---------------------------------------------------------------------

def parse_arguments(raw: Any) -> Dict[str, Any]:
    """
    Decode the ``arguments`` field of an LLM tool call.

    Raises
    ------
    ValueError
        If the arguments are not a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    parsed = json.loads(raw or "{}")
    if not isinstance(parsed, dict):
        raise ValueError("Tool arguments must be a JSON object.")
    return parsed


async def dispatch_tool_call(
    tool_name: str,
    raw_args: Any,
    vector_store: VectorStoreManager,
    default_limit: int = 5,
) -> Tuple[str, ToolOutcome]:
    """
    Dispatch a tool call requested by the LLM.

    Returns
    -------
    (str, ToolOutcome)
        Content for the tool message, and the typed outcome.
    """
    handler = TOOL_REGISTRY.get(tool_name)
    if handler is None:
        outcome = ToolErrorOutcome(
            tool=tool_name, error=f"Unknown tool requested: {tool_name}", timestamp=_now()
        )
        return json.dumps({"error": outcome.error}), outcome

    try:
        args = parse_arguments(raw_args)
        return await handler(args, vector_store, default_limit)
    except (ValueError, ValidationError) as exc:
        error = f"Invalid arguments for {tool_name}: {exc}"
    except Exception as exc:
        logger.exception("Tool %s failed", tool_name)
        error = f"Tool execution failed: {type(exc).__name__}: {exc}"

    outcome = ToolErrorOutcome(tool=tool_name, error=error, timestamp=_now())
    return json.dumps({"error": error}), outcome
