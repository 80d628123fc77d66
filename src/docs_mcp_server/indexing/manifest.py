"""
Sitemap Manifest

Turns the documentation site's sitemap into an ordered list of SourceEntry
records. A sitemap index is followed one level deep.

Failure semantics
-----------------
- The root sitemap being unreachable or not XML is fatal (ManifestError).
- A single malformed <url> entry, or an unreachable child sitemap, is skipped
  with a warning.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from .models import SourceEntry

logger = logging.getLogger("docs.manifest")


class ManifestError(RuntimeError):
    """Raised when the manifest cannot be retrieved or parsed at all."""


def parse_sitemap(xml: str) -> tuple[List[SourceEntry], List[str]]:
    """
    Parse sitemap XML.

    Returns
    -------
    (entries, child_sitemaps)
        Page entries in document order, and the locations of child sitemaps
        when the document is a <sitemapindex>.
    """
    soup = BeautifulSoup(xml, "html.parser")

    if soup.find("urlset") is None and soup.find("sitemapindex") is None:
        raise ManifestError("Document is neither a <urlset> nor a <sitemapindex>.")

    children = [
        loc.get_text(strip=True)
        for sitemap in soup.find_all("sitemap")
        if (loc := sitemap.find("loc")) is not None and loc.get_text(strip=True)
    ]

    entries: List[SourceEntry] = []
    for position, node in enumerate(soup.find_all("url")):
        loc = node.find("loc")
        url = loc.get_text(strip=True) if loc is not None else ""
        if not url.startswith(("http://", "https://")):
            logger.warning("Skipping malformed sitemap entry #%d (loc=%r)", position, url)
            continue

        lastmod = node.find("lastmod")
        remote_modified = lastmod.get_text(strip=True) if lastmod is not None else None

        entries.append(SourceEntry(url=url, remote_modified=remote_modified or None))

    return entries, children


class SitemapManifest:
    def __init__(
        self,
        sitemap_url: str,
        user_agent: str = "docs-mcp-server/1.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.sitemap_url = sitemap_url
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport

    async def entries(self) -> List[SourceEntry]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                xml = await self._get(client, self.sitemap_url)
            except httpx.HTTPError as exc:
                raise ManifestError(
                    f"Sitemap {self.sitemap_url} unreachable: {type(exc).__name__}"
                ) from exc

            entries, children = parse_sitemap(xml)

            for child_url in children:
                try:
                    child_entries, _ = parse_sitemap(await self._get(client, child_url))
                except (httpx.HTTPError, ManifestError) as exc:
                    logger.warning("Skipping child sitemap %s: %s", child_url, exc)
                    continue
                entries.extend(child_entries)

        unique = _dedupe(entries)
        logger.info("Manifest lists %d pages", len(unique))
        return unique

    @staticmethod
    async def _get(client: httpx.AsyncClient, url: str) -> str:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.text


def _dedupe(entries: List[SourceEntry]) -> List[SourceEntry]:
    seen = set()
    unique: List[SourceEntry] = []
    for entry in entries:
        if entry.url in seen:
            continue
        seen.add(entry.url)
        unique.append(entry)
    return unique
