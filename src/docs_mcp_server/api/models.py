"""
API Models for the Docs MCP Server

This module defines all Pydantic models used for request/response validation
across search, agent and session endpoints, and the tool-call contracts the
agent loop validates LLM output against.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Explicit tool output contracts, one variant per outcome
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------
# Tool Contracts (Authoritative)
# ---------------------------------------------------------------------

class SearchToolArgs(BaseModel):
    """
    Arguments of the ``search_docs`` tool as requested by the LLM.
    """
    query: str = Field(..., min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=20)

    model_config = ConfigDict(extra="forbid")


class ToolDocument(BaseModel):
    title: str
    url: str


class SearchToolOutcome(BaseModel):
    """Successful tool call: the documents handed back to the LLM."""
    status: Literal["ok"] = "ok"
    tool: str
    query: str
    documents: List[ToolDocument] = Field(default_factory=list)
    timestamp: str


class ToolErrorOutcome(BaseModel):
    """Failed tool call: unknown tool, bad arguments, or search failure."""
    status: Literal["error"] = "error"
    tool: str
    error: str
    timestamp: str


ToolOutcome = Annotated[
    Union[SearchToolOutcome, ToolErrorOutcome],
    Field(discriminator="status"),
]


class ToolCallRecord(BaseModel):
    tool: str
    query: str
    timestamp: str


# ---------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------

class ChatMessage(BaseModel):
    """
    Single message in a stored conversation.
    """
    role: Literal["system", "user", "assistant", "tool"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Direct similarity search request.
    """
    query: str = Field(..., min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=100)

    model_config = ConfigDict(extra="forbid")


class FormattedSearchResult(BaseModel):
    """
    Individual search match, ranked from 1.
    """
    index: int = Field(..., ge=1)
    source: str
    url: str
    title: str
    content: str
    score: float


# ---------------------------------------------------------------------
# Agent Models
# ---------------------------------------------------------------------

class AgentQueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class AgentResponse(BaseModel):
    answer: str
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    tool_results: List[ToolOutcome] = Field(default_factory=list)
    session_id: Optional[str] = None


class ClearSessionRequest(BaseModel):
    """
    Clear one session, or all sessions when ``session_id`` is omitted.
    """
    session_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["deleted", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    index_loaded: bool
