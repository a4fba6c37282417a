"""
Ingestion Orchestrator Tests
"""

from unittest.mock import AsyncMock, call

import pytest

from site_rag_server.db import PendingDocument, VectorStore, VectorStoreError
from site_rag_server.embeddings.embedder import Embedder, EmbeddingError
from site_rag_server.ingestion import (
    CrawledPage,
    IngestionError,
    IngestionOrchestrator,
    SiteCrawler,
)

LONG_TEXT = "Our company builds reliable software for small businesses. " * 5


@pytest.fixture
def mock_crawler():
    mock = AsyncMock(spec=SiteCrawler)
    mock.crawl.return_value = []
    return mock


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)

    async def _embed(texts, batch_size=None):
        return [[0.5] * 768 for _ in texts]

    mock.embed.side_effect = _embed
    mock.embed_one.return_value = [0.3] * 768
    return mock


@pytest.fixture
def mock_store():
    mock = AsyncMock(spec=VectorStore)

    async def _replace(url, records):
        return len(records)

    mock.replace_url.side_effect = _replace
    mock.get_documents_missing_embeddings.return_value = []
    mock.update_embedding.return_value = True
    return mock


@pytest.fixture
def orchestrator(mock_crawler, mock_embedder, mock_store):
    return IngestionOrchestrator(mock_crawler, mock_embedder, mock_store)


class TestIngestSite:
    @pytest.mark.asyncio
    async def test_no_pages(self, orchestrator, mock_store):
        report = await orchestrator.ingest_site("https://example.com")

        assert report.pages == 0
        assert report.chunks == 0
        assert report.message == "No content extracted"
        mock_store.replace_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pages_are_chunked_embedded_and_stored(
        self, orchestrator, mock_crawler, mock_embedder, mock_store
    ):
        mock_crawler.crawl.return_value = [
            CrawledPage(url="https://example.com/", title="Home", raw_content=LONG_TEXT),
            CrawledPage(url="https://example.com/tiny", title="Tiny", raw_content="Too short."),
        ]

        report = await orchestrator.ingest_site("https://example.com/", max_pages=10)

        assert report.pages == 2
        assert report.chunks == 1
        assert report.message == "Ingestion complete"
        statuses = {entry.url: entry.status for entry in report.debug}
        assert statuses == {
            "https://example.com/": "success",
            "https://example.com/tiny": "skipped",
        }

        url, records = mock_store.replace_url.call_args.args
        assert url == "https://example.com/"
        assert records[0].title == "Home"
        assert records[0].embedding == [0.5] * 768
        mock_store.commit.assert_awaited()
        assert mock_crawler.crawl.call_args.kwargs["max_pages"] == 10

    @pytest.mark.asyncio
    async def test_reingest_replaces_per_url(self, orchestrator, mock_crawler, mock_store):
        page = CrawledPage(url="https://example.com/", title="Home", raw_content=LONG_TEXT)
        mock_crawler.crawl.return_value = [page]

        first = await orchestrator.ingest_site("https://example.com/")
        second = await orchestrator.ingest_site("https://example.com/")

        assert first.chunks == second.chunks
        urls = [c.args[0] for c in mock_store.replace_url.call_args_list]
        assert urls == ["https://example.com/", "https://example.com/"]

    @pytest.mark.asyncio
    async def test_store_failure_is_reported_per_page(
        self, orchestrator, mock_crawler, mock_store
    ):
        mock_crawler.crawl.return_value = [
            CrawledPage(url="https://example.com/a", title="A", raw_content=LONG_TEXT),
            CrawledPage(url="https://example.com/b", title="B", raw_content=LONG_TEXT),
        ]

        async def _replace(url, records):
            if url.endswith("/a"):
                raise VectorStoreError("Replacing documents failed: IntegrityError")
            return len(records)

        mock_store.replace_url.side_effect = _replace

        report = await orchestrator.ingest_site("https://example.com/")

        assert [e.status for e in report.debug] == ["error", "success"]
        assert report.debug[0].error.startswith("Replacing documents failed")
        assert report.chunks == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_aborts_run(
        self, orchestrator, mock_crawler, mock_embedder, mock_store
    ):
        mock_crawler.crawl.return_value = [
            CrawledPage(url="https://example.com/", title="Home", raw_content=LONG_TEXT),
        ]
        mock_embedder.embed.side_effect = EmbeddingError("Embedding generation failed: ConnectError")

        with pytest.raises(IngestionError, match="Embedding generation failed"):
            await orchestrator.ingest_site("https://example.com/")

        mock_store.replace_url.assert_not_awaited()


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_nothing_to_regenerate(self, orchestrator, mock_embedder):
        report = await orchestrator.regenerate_embeddings()

        assert report.message == "No documents need embedding regeneration"
        assert report.processed == 0
        assert report.total is None
        mock_embedder.embed_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_regenerates_missing_embeddings(self, orchestrator, mock_store):
        mock_store.get_documents_missing_embeddings.return_value = [
            PendingDocument(id=1, content="first"),
            PendingDocument(id=2, content="second"),
        ]

        report = await orchestrator.regenerate_embeddings()

        assert report.message == "Embeddings regenerated successfully"
        assert report.processed == 2
        assert report.total == 2
        assert mock_store.update_embedding.await_args_list == [
            call(1, [0.3] * 768),
            call(2, [0.3] * 768),
        ]

    @pytest.mark.asyncio
    async def test_failed_update_is_skipped(self, orchestrator, mock_store):
        mock_store.get_documents_missing_embeddings.return_value = [
            PendingDocument(id=1, content="first"),
            PendingDocument(id=2, content="second"),
        ]
        mock_store.update_embedding.side_effect = [VectorStoreError("boom"), True]

        report = await orchestrator.regenerate_embeddings()

        assert report.processed == 1
        assert report.total == 2
