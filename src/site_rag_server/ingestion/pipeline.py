"""
Ingestion Orchestrator

Crawl a site, chunk and embed every page, and replace the stored chunks
of each crawled URL. Also re-embeds stored chunks whose embedding is
missing.

Per-page store failures are recorded in the report and the run goes on.
An embedding failure aborts the whole run.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..core.errors import sanitize_error_message
from ..db.vector_store import DocumentRecord, VectorStore, VectorStoreError
from ..embeddings.embedder import Embedder, EmbeddingError
from .chunker import chunk_text, clean_text
from .crawler import SiteCrawler

logger = logging.getLogger("rag.ingest")


class IngestionError(RuntimeError):
    """Raised when an ingestion run cannot complete."""


def _embedding_failure_message(exc: Exception) -> str:
    # EmbeddingError messages carry only the error type; anything else stays in the log
    if isinstance(exc, EmbeddingError):
        return sanitize_error_message(exc)
    return "Embedding generation failed"


class PageReport(BaseModel):
    url: str
    status: Literal["skipped", "no chunks", "error", "success"]
    reason: Optional[str] = None
    error: Optional[str] = None
    chunks: Optional[int] = None
    content_length: Optional[int] = None


class IngestReport(BaseModel):
    pages: int = 0
    chunks: int = 0
    debug: List[PageReport] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return "Ingestion complete" if self.chunks > 0 else "No content extracted"


class RegenerateReport(BaseModel):
    message: str
    processed: int
    total: Optional[int] = None


class IngestionOrchestrator:
    def __init__(
        self,
        crawler: SiteCrawler,
        embedder: Embedder,
        store: VectorStore,
    ) -> None:
        self.crawler = crawler
        self.embedder = embedder
        self.store = store

    # ------------------------------------------------------------------
    # Crawl + ingest
    # ------------------------------------------------------------------

    async def ingest_site(
        self,
        root_url: str,
        max_pages: Optional[int] = None,
        same_host_only: Optional[bool] = None,
    ) -> IngestReport:
        """
        Crawl ``root_url`` and (re)index every page found.

        Parameters
        ----------
        root_url : str
            Seed URL.
        max_pages : Optional[int]
            Page budget. Defaults to settings.crawl_max_pages.
        same_host_only : Optional[bool]
            Defaults to settings.crawl_same_host_only.

        Returns
        -------
        IngestReport
            ``pages == 0`` when nothing could be crawled; callers decide how
            to surface that.

        Raises
        ------
        IngestionError
            If embedding generation fails.
        """
        logger.info("Starting crawl for %s", root_url)
        pages = await self.crawler.crawl(
            root_url,
            max_pages=max_pages or settings.crawl_max_pages,
            same_host_only=(
                settings.crawl_same_host_only if same_host_only is None else same_host_only
            ),
            concurrency=settings.crawl_concurrency,
            page_timeout=settings.crawl_page_timeout,
        )
        logger.info("Crawled %d pages from %s", len(pages), root_url)

        report = IngestReport(pages=len(pages))

        for page in pages:
            cleaned = clean_text(page.raw_content)

            if len(cleaned) < settings.crawl_min_content_length:
                report.debug.append(
                    PageReport(
                        url=page.url,
                        status="skipped",
                        reason="content too short",
                        content_length=len(cleaned),
                    )
                )
                continue

            chunks = chunk_text(cleaned, settings.chunk_size, settings.chunk_overlap)
            if not chunks:
                report.debug.append(
                    PageReport(url=page.url, status="no chunks", content_length=len(cleaned))
                )
                continue

            try:
                embeddings = await self.embedder.embed(chunks)
            except Exception as exc:
                logger.exception("Embedding failed for %s; aborting ingestion", page.url)
                raise IngestionError(_embedding_failure_message(exc)) from exc

            records = [
                DocumentRecord(
                    url=page.url,
                    title=page.title,
                    content=chunk,
                    embedding=embedding,
                )
                for chunk, embedding in zip(chunks, embeddings)
            ]

            try:
                await self.store.replace_url(page.url, records)
                await self.store.commit()
            except VectorStoreError as exc:
                logger.error("Storing chunks for %s failed: %s", page.url, exc)
                report.debug.append(
                    PageReport(url=page.url, status="error", error=sanitize_error_message(exc))
                )
                continue

            report.chunks += len(chunks)
            report.debug.append(
                PageReport(
                    url=page.url,
                    status="success",
                    chunks=len(chunks),
                    content_length=len(cleaned),
                )
            )
            logger.info("Indexed %d chunks for %s", len(chunks), page.url)

        logger.info(
            "Ingestion finished: %d pages, %d chunks stored", report.pages, report.chunks
        )
        return report

    # ------------------------------------------------------------------
    # Re-embed
    # ------------------------------------------------------------------

    async def regenerate_embeddings(self) -> RegenerateReport:
        """
        Embed every stored chunk whose embedding is NULL.

        A failed update is logged and skipped; an embedding failure aborts.
        """
        pending = await self.store.get_documents_missing_embeddings()
        if not pending:
            return RegenerateReport(
                message="No documents need embedding regeneration",
                processed=0,
            )

        logger.info("Found %d documents without embeddings", len(pending))

        processed = 0
        for doc in pending:
            try:
                embedding = await self.embedder.embed_one(doc.content)
            except Exception as exc:
                logger.exception("Embedding failed for document %s", doc.id)
                raise IngestionError(_embedding_failure_message(exc)) from exc

            try:
                updated = await self.store.update_embedding(doc.id, embedding)
                await self.store.commit()
            except VectorStoreError as exc:
                logger.error("Failed to update document %s: %s", doc.id, exc)
                continue

            if updated:
                processed += 1
                logger.debug("Updated embedding for document %s (%d/%d)", doc.id, processed, len(pending))

        return RegenerateReport(
            message="Embeddings regenerated successfully",
            processed=processed,
            total=len(pending),
        )
