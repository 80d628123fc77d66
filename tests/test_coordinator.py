"""
Rebuild Coordinator Tests

End-to-end runs over real on-disk storage and FAISS, with a fake manifest,
page source and embedder.
"""

import json

import pytest

from conftest import BASE_URL, FakeEmbedder, FakeManifest, FakePageSource, page_url
from docs_mcp_server.embeddings.index import (
    IndexBuildError,
    IndexMissingError,
    VectorStoreManager,
)
from docs_mcp_server.indexing.cache import FingerprintCache
from docs_mcp_server.indexing.coordinator import RebuildCoordinator, RunState
from docs_mcp_server.indexing.corpus import CorpusStore
from docs_mcp_server.indexing.fetcher import DocumentFetcher
from docs_mcp_server.indexing.lock import RunLock, RunLockError
from docs_mcp_server.indexing.manifest import ManifestError
from docs_mcp_server.indexing.models import SourceEntry

A = page_url("streaming")
B = page_url("tools")


class Harness:
    """Wires one coordinator against a temp data directory."""

    def __init__(self, tmp_path, embedder=None, with_lock=False):
        self.docs_dir = tmp_path / "docs"
        self.index_dir = tmp_path / "faiss_index"
        self.manifest = FakeManifest([
            SourceEntry(url=A, remote_modified="2024-01-01"),
            SourceEntry(url=B, remote_modified="2024-01-01"),
        ])
        self.source = FakePageSource()
        self.source.set_page(A, "Streaming", "streamText streams tokens")
        self.source.set_page(B, "Tools", "define tools with a schema")
        self.embedder = embedder or FakeEmbedder()
        self.cache = FingerprintCache(self.docs_dir / "lastmod_cache.json")
        self.corpus = CorpusStore(self.docs_dir, BASE_URL)
        self.lock = RunLock(self.docs_dir / ".build.lock") if with_lock else None

    def coordinator(self):
        return RebuildCoordinator(
            self.manifest,
            DocumentFetcher(self.corpus, self.source, concurrency=2, timeout=5.0),
            self.cache,
            self.corpus,
            VectorStoreManager(self.index_dir, self.embedder, base_url=BASE_URL),
            lock=self.lock,
            summary_path=self.docs_dir / "summary.json",
        )

    async def run(self, force_update=False):
        return await self.coordinator().run(force_update=force_update)


class TestRebuildDecision:
    """The three-run scenario: new, unchanged, then one page modified."""

    @pytest.mark.asyncio
    async def test_first_run_rebuilds(self, tmp_path):
        h = Harness(tmp_path)

        report = await h.run()

        assert report.decision == "rebuild"
        assert report.state == RunState.DONE
        assert report.documents_indexed == 2
        assert report.cache_saved
        assert sorted(report.changed_urls) == [A, B]
        assert h.cache.load() == {A: "2024-01-01", B: "2024-01-01"}

    @pytest.mark.asyncio
    async def test_unchanged_run_skips_without_fetching(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()
        h.source.fetched.clear()
        h.embedder.calls.clear()

        report = await h.run()

        assert report.decision == "skip"
        assert report.changed_urls == []
        assert h.source.fetched == []
        assert h.embedder.calls == []

    @pytest.mark.asyncio
    async def test_modified_page_triggers_rebuild(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()
        await h.run()

        h.manifest.entries_list[1] = SourceEntry(url=B, remote_modified="2024-02-01")
        h.source.set_page(B, "Tools", "tool calling with multi step agents")
        report = await h.run()

        assert report.decision == "rebuild"
        assert report.changed_urls == [B]
        assert report.documents_indexed == 2
        assert h.cache.load()[B] == "2024-02-01"
        assert h.corpus.read(B).content == "tool calling with multi step agents"

        store = VectorStoreManager(h.index_dir, FakeEmbedder(), base_url=BASE_URL)
        assert store.load_index()
        hits = await store.search("multi step agents", k=1)
        assert hits[0].url == B
        assert "multi step" in hits[0].content

    @pytest.mark.asyncio
    async def test_urls_with_clashing_filenames_are_both_indexed(self, tmp_path):
        h = Harness(tmp_path)
        nested, flat = page_url("foo/bar"), page_url("foo-bar")
        h.manifest.entries_list = [
            SourceEntry(url=nested, remote_modified="1"),
            SourceEntry(url=flat, remote_modified="1"),
        ]
        h.source.set_page(nested, "Nested", "nested page about streaming")
        h.source.set_page(flat, "Flat", "flat page about tools")

        first = await h.run()
        second = await h.run()

        assert first.documents_indexed == 2
        assert h.corpus.read(nested).title == "Nested"
        assert h.corpus.read(flat).title == "Flat"
        assert second.decision == "skip"

        store = VectorStoreManager(h.index_dir, FakeEmbedder(), base_url=BASE_URL)
        assert store.load_index()
        assert {hit.url for hit in await store.search("page", k=5)} == {nested, flat}

    @pytest.mark.asyncio
    async def test_skip_restores_interrupted_swap(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()
        h.index_dir.rename(h.index_dir.with_name("faiss_index.previous"))

        report = await h.run()

        assert report.decision == "skip"
        assert h.index_dir.is_dir()
        assert not h.index_dir.with_name("faiss_index.previous").exists()

    @pytest.mark.asyncio
    async def test_idempotent_after_success(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()
        cache_before = h.cache.load()

        first = await h.run()
        second = await h.run()

        assert first.decision == second.decision == "skip"
        assert h.cache.load() == cache_before

    @pytest.mark.asyncio
    async def test_force_rebuilds_unchanged_corpus(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()
        h.source.fetched.clear()

        report = await h.run(force_update=True)

        assert report.decision == "rebuild"
        assert sorted(h.source.fetched) == [A, B]
        assert report.changed_urls == []

    @pytest.mark.asyncio
    async def test_failed_fetch_does_not_drop_page_from_index(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()

        h.manifest.entries_list[0] = SourceEntry(url=A, remote_modified="2024-03-01")
        h.source.pages[A] = RuntimeError("503")
        h.manifest.entries_list[1] = SourceEntry(url=B, remote_modified="2024-03-01")
        report = await h.run()

        assert report.decision == "rebuild"
        assert report.failed_urls == [A]
        assert report.documents_indexed == 2
        assert h.cache.load()[A] == "2024-01-01"


class TestFailureSemantics:
    """Nothing is committed unless the index build succeeds."""

    @pytest.mark.asyncio
    async def test_manifest_failure_touches_nothing(self, tmp_path):
        h = Harness(tmp_path)
        h.manifest.error = ManifestError("sitemap unreachable")

        with pytest.raises(ManifestError):
            await h.run()

        assert h.source.fetched == []
        assert not h.cache.path.exists()
        assert not h.index_dir.exists()

    @pytest.mark.asyncio
    async def test_build_failure_leaves_cache_untouched(self, tmp_path):
        h = Harness(tmp_path, embedder=FakeEmbedder(fail=True))

        with pytest.raises(IndexBuildError):
            await h.run()

        assert not h.cache.path.exists()
        assert not h.index_dir.exists()

        # The next healthy run still sees every page as new.
        h.embedder.fail = False
        report = await h.run()
        assert report.decision == "rebuild"
        assert sorted(report.changed_urls) == [A, B]

    @pytest.mark.asyncio
    async def test_skip_without_index_fails(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()
        for path in h.index_dir.iterdir():
            path.unlink()
        h.index_dir.rmdir()

        with pytest.raises(IndexMissingError):
            await h.run()

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected_by_lock(self, tmp_path):
        h = Harness(tmp_path, with_lock=True)
        h.docs_dir.mkdir(parents=True)
        (h.docs_dir / ".build.lock").write_text("12345")

        with pytest.raises(RunLockError):
            await h.run()

        assert h.source.fetched == []

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, tmp_path):
        h = Harness(tmp_path, with_lock=True)
        await h.run()
        assert not (h.docs_dir / ".build.lock").exists()


class TestSummary:
    """A summary of every completed run is written beside the corpus."""

    @pytest.mark.asyncio
    async def test_summary_written(self, tmp_path):
        h = Harness(tmp_path)
        await h.run()

        summary = json.loads((h.docs_dir / "summary.json").read_text())

        assert summary["decision"] == "rebuild"
        assert summary["stats"]["total_urls"] == 2
        assert sorted(summary["changed"]) == [A, B]
        assert summary["failed"] == []

    def test_should_rebuild(self):
        from docs_mcp_server.indexing.models import FetchOutcome, ProcessResult

        unchanged = FetchOutcome(results=[ProcessResult(url=A, file_path="x", hash="h")])
        changed = FetchOutcome(results=[ProcessResult(url=A, file_path="x", hash="h", is_new=True)])

        assert RebuildCoordinator.should_rebuild(unchanged, force_update=False) is False
        assert RebuildCoordinator.should_rebuild(unchanged, force_update=True) is True
        assert RebuildCoordinator.should_rebuild(changed, force_update=False) is True
