"""
Embedding Client

Turns chunk texts and search queries into vectors through an
OpenAI-compatible ``/embeddings`` endpoint (OpenAI itself, or a local
inference server speaking the same protocol).

Vectors are returned in input order regardless of the order records come
back in, so they always line up with the chunks they embed. Every response
is validated before use; anything unexpected becomes an EmbeddingError.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..config import settings

logger = logging.getLogger("docs.embedder")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class EmbeddingFunction(Protocol):
    """Anything that turns texts into fixed-length vectors, in order."""

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class _EmbeddingRecord(BaseModel):
    index: Optional[int] = None
    embedding: List[float] = Field(..., min_length=1)


class _EmbeddingResponse(BaseModel):
    data: List[_EmbeddingRecord]


class Embedder:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        batch_size: Optional[int] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Parameters
        ----------
        api_key, model, base_url, batch_size
            Overrides; each falls back to the matching ``settings`` field.

        timeout : float
            HTTP timeout per batch request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to serve canned responses.
        """
        self.api_key = api_key if api_key is not None else settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        self.batch_size = max(1, batch_size or settings.embedding_batch_size)
        self.timeout = timeout
        self._transport = transport

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed ``texts`` in batches of ``batch_size``.

        Raises
        ------
        EmbeddingError
            If a request fails, or a response is malformed or short.
        """
        if not texts:
            return []

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        vectors: List[List[float]] = []

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        ) as client:
            for start in range(0, len(texts), self.batch_size):
                batch = list(texts[start:start + self.batch_size])
                vectors.extend(await self._embed_batch(client, batch))

        logger.debug("Embedded %d texts with %s", len(vectors), self.model)
        return vectors

    async def _embed_batch(self, client: httpx.AsyncClient, batch: List[str]) -> List[List[float]]:
        try:
            response = await client.post(self.base_url, json={"model": self.model, "input": batch})
            response.raise_for_status()
            parsed = _EmbeddingResponse.model_validate(response.json())
        except httpx.HTTPError as exc:
            logger.error(
                "Embedding request for %d texts failed: %s: %s",
                len(batch),
                type(exc).__name__,
                exc,
            )
            raise EmbeddingError(f"Embedding request failed: {type(exc).__name__}") from exc
        except (ValueError, ValidationError) as exc:
            raise EmbeddingError(f"Malformed embedding response: {exc}") from exc

        records = parsed.data
        if all(r.index is not None for r in records):
            records = sorted(records, key=lambda r: r.index)

        if len(records) != len(batch):
            raise EmbeddingError(f"Expected {len(batch)} embeddings, received {len(records)}.")

        return [r.embedding for r in records]
