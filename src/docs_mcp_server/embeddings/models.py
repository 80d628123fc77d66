"""
Embedding Data Models

This module defines the records stored alongside the FAISS vectors and the
shape of a search hit.

Each IndexedChunk corresponds to ONE embedding vector and ONE chunk of text
from a corpus document.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, ConfigDict


class IndexedChunk(BaseModel):
    """
    A single indexed chunk.

    This model is the authoritative schema for:
    - docstore.json persistence
    - Vector search result mapping
    """

    chunk_id: str = Field(..., min_length=1)

    url: str = Field(
        ...,
        min_length=1,
        description="Source page URL this chunk belongs to.",
    )

    source: str = Field(
        ...,
        description="Corpus filename of the source page.",
    )

    title: str = Field(default="No Title")

    lastmod: str = Field(
        default="Unknown",
        description="Modification marker of the page revision this chunk came from.",
    )

    text: str = Field(
        ...,
        min_length=1,
        description="Text content for this embedded chunk.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class IndexMeta(BaseModel):
    """Contents of index_meta.json."""

    embedding_model: str
    dimension: int = Field(..., ge=1)
    document_count: int = Field(..., ge=0)
    chunk_count: int = Field(..., ge=0)
    built_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class ScoredDocument(BaseModel):
    """A search hit. Higher ``score`` is more relevant (cosine similarity)."""

    url: str
    title: str
    source: str
    lastmod: str
    content: str
    score: float
