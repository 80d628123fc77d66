"""
Shared test doubles.

FakeEmbedder maps text to a deterministic bag-of-words vector, so documents
that share words with a query rank above ones that do not. FakePageSource
serves canned pages and records every fetch.
"""

import asyncio
import hashlib
import re
from typing import Dict, List, Optional, Sequence, Union

import pytest

from docs_mcp_server.embeddings.embedder import EmbeddingError
from docs_mcp_server.indexing.models import PageContent, SourceEntry

BASE_URL = "https://docs.example.com"
DIM = 64

_WORD = re.compile(r"[a-z0-9]+")


def page_url(slug: str) -> str:
    return f"{BASE_URL}/docs/{slug}"


class FakeEmbedder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[List[str]] = []

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("embedding service unavailable")
        return [self._vector(t) for t in texts]

    @staticmethod
    def _vector(text: str) -> List[float]:
        vec = [0.0] * DIM
        for word in _WORD.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % (DIM - 1)
            vec[bucket] += 1.0
        # Constant component keeps every vector non-zero.
        vec[DIM - 1] = 0.1
        return vec


class FakePageSource:
    def __init__(
        self,
        pages: Optional[Dict[str, Union[PageContent, BaseException]]] = None,
        delay: float = 0.0,
    ) -> None:
        self.pages: Dict[str, Union[PageContent, BaseException]] = dict(pages or {})
        self.delay = delay
        self.fetched: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def set_page(self, url: str, title: str, content: str, description: str = "") -> None:
        self.pages[url] = PageContent(title=title, description=description, content=content)

    async def fetch(self, url: str) -> PageContent:
        self.fetched.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            page = self.pages.get(url)
            if page is None:
                raise RuntimeError(f"404 for {url}")
            if isinstance(page, BaseException):
                raise page
            return page
        finally:
            self.in_flight -= 1


class FakeManifest:
    def __init__(self, entries: Optional[List[SourceEntry]] = None, error: Optional[Exception] = None) -> None:
        self.entries_list = list(entries or [])
        self.error = error

    async def entries(self) -> List[SourceEntry]:
        if self.error is not None:
            raise self.error
        return list(self.entries_list)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def page_source() -> FakePageSource:
    return FakePageSource()
