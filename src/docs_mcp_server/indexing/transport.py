"""
Page Transport

Retrieves a documentation page and reduces it to title, description and
normalised body text. Retry policy, if any, belongs here; the fetcher only
sees success or PageFetchError.
"""

from __future__ import annotations

import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from .models import PageContent

_STRIP_TAGS = ["script", "style", "nav", "footer", "header", "noscript", "svg"]
_BLANK_LINES = re.compile(r"\n\s*\n+")
_SPACES = re.compile(r"[ \t\r\f\v]+")


class PageFetchError(RuntimeError):
    """Raised when a page cannot be retrieved or parsed."""


def extract_page(html: str) -> PageContent:
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else ""

    description = ""
    meta = soup.find("meta", attrs={"name": "description"})
    if meta is not None and meta.get("content"):
        description = meta["content"].strip()

    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()

    root = soup.find("main") or soup.find("article") or soup.body or soup
    return PageContent(
        title=title,
        description=description,
        content=normalize_text(root.get_text("\n")),
    )


def normalize_text(text: str) -> str:
    lines = [_SPACES.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


class PageTransport:
    def __init__(
        self,
        user_agent: str = "docs-mcp-server/1.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    async def fetch(self, url: str) -> PageContent:
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise PageFetchError(f"GET {url} failed: {type(exc).__name__}: {exc}") from exc

        try:
            return extract_page(resp.text)
        except Exception as exc:
            raise PageFetchError(f"Could not parse {url}: {type(exc).__name__}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PageTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
