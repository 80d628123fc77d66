"""
Manifest and Page Transport Tests

HTTP is served by httpx.MockTransport; no network access.
"""

import httpx
import pytest

from docs_mcp_server.indexing.manifest import ManifestError, SitemapManifest, parse_sitemap
from docs_mcp_server.indexing.transport import PageFetchError, PageTransport, extract_page

SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url>
    <loc>https://docs.example.com/docs/intro</loc>
    <lastmod>2024-01-01</lastmod>
  </url>
  <url>
    <loc>not a url</loc>
  </url>
  <url>
    <loc>https://docs.example.com/docs/streaming</loc>
  </url>
</urlset>
"""

SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://docs.example.com/sitemap-docs.xml</loc></sitemap>
  <sitemap><loc>https://docs.example.com/sitemap-missing.xml</loc></sitemap>
</sitemapindex>
"""

CHILD = """<urlset>
  <url><loc>https://docs.example.com/docs/tools</loc><lastmod>2024-02-02</lastmod></url>
  <url><loc>https://docs.example.com/docs/intro</loc><lastmod>2024-01-01</lastmod></url>
</urlset>
"""


def _mock(routes):
    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=body)

    return httpx.MockTransport(handler)


class TestParseSitemap:
    """Tests for parse_sitemap."""

    def test_entries_in_order_and_malformed_skipped(self):
        entries, children = parse_sitemap(SITEMAP)

        assert children == []
        assert [e.url for e in entries] == [
            "https://docs.example.com/docs/intro",
            "https://docs.example.com/docs/streaming",
        ]
        assert entries[0].remote_modified == "2024-01-01"
        assert entries[1].remote_modified is None

    def test_sitemap_index_lists_children(self):
        entries, children = parse_sitemap(SITEMAP_INDEX)
        assert entries == []
        assert children == [
            "https://docs.example.com/sitemap-docs.xml",
            "https://docs.example.com/sitemap-missing.xml",
        ]

    def test_not_a_sitemap(self):
        with pytest.raises(ManifestError):
            parse_sitemap("<html><body>hello</body></html>")


class TestSitemapManifest:
    """Tests for SitemapManifest.entries()."""

    @pytest.mark.asyncio
    async def test_reads_root_sitemap(self):
        url = "https://docs.example.com/sitemap.xml"
        manifest = SitemapManifest(url, transport=_mock({url: SITEMAP}))

        entries = await manifest.entries()

        assert len(entries) == 2

    @pytest.mark.asyncio
    async def test_follows_index_and_dedupes(self):
        url = "https://docs.example.com/sitemap.xml"
        transport = _mock({
            url: SITEMAP_INDEX,
            "https://docs.example.com/sitemap-docs.xml": CHILD,
        })

        entries = await SitemapManifest(url, transport=transport).entries()

        assert [e.url for e in entries] == [
            "https://docs.example.com/docs/tools",
            "https://docs.example.com/docs/intro",
        ]

    @pytest.mark.asyncio
    async def test_unreachable_root_is_fatal(self):
        manifest = SitemapManifest(
            "https://docs.example.com/sitemap.xml", transport=_mock({})
        )
        with pytest.raises(ManifestError):
            await manifest.entries()

    @pytest.mark.asyncio
    async def test_connection_error_is_fatal(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        manifest = SitemapManifest(
            "https://docs.example.com/sitemap.xml",
            transport=httpx.MockTransport(handler),
        )
        with pytest.raises(ManifestError):
            await manifest.entries()


PAGE = """<html>
<head>
  <title>Streaming | Docs</title>
  <meta name="description" content=" Stream text from models. ">
  <script>var tracking = 1;</script>
</head>
<body>
  <nav>Home  Guides  API</nav>
  <main>
    <h1>Streaming</h1>
    <p>Use   streamText to   stream.</p>


    <p>Second paragraph.</p>
  </main>
  <footer>Copyright</footer>
</body>
</html>
"""


class TestExtractPage:
    """Tests for HTML reduction."""

    def test_title_description_and_main_text(self):
        page = extract_page(PAGE)

        assert page.title == "Streaming | Docs"
        assert page.description == "Stream text from models."
        assert "Use streamText to stream." in page.content
        assert "Second paragraph." in page.content
        assert "tracking" not in page.content
        assert "Home" not in page.content
        assert "Copyright" not in page.content
        assert "\n\n\n" not in page.content

    def test_falls_back_to_body(self):
        page = extract_page("<html><body><p>Only body</p></body></html>")
        assert page.title == ""
        assert page.content == "Only body"


class TestPageTransport:
    """Tests for PageTransport."""

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        url = "https://docs.example.com/docs/streaming"
        async with PageTransport(transport=_mock({url: PAGE})) as transport:
            page = await transport.fetch(url)
        assert page.title == "Streaming | Docs"

    @pytest.mark.asyncio
    async def test_http_error_raises_page_fetch_error(self):
        async with PageTransport(transport=_mock({})) as transport:
            with pytest.raises(PageFetchError):
                await transport.fetch("https://docs.example.com/docs/gone")
