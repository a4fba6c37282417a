import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import text

from site_rag_server.core.logging import configure_logging
from site_rag_server.db import AsyncSessionLocal, Base, VectorStore, async_engine
from site_rag_server.embeddings.embedder import Embedder
from site_rag_server.ingestion.crawler import SiteCrawler
from site_rag_server.ingestion.pipeline import IngestionOrchestrator


async def init_db():
    """Create the pgvector extension and the documents table if missing."""
    async with async_engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)


async def run(args) -> int:
    if args.init_db:
        print("Initializing database schema...")
        await init_db()

    async with AsyncSessionLocal() as session:
        orchestrator = IngestionOrchestrator(
            crawler=SiteCrawler(),
            embedder=Embedder(),
            store=VectorStore(session),
        )

        if args.regenerate:
            print("Regenerating missing embeddings...")
            report = await orchestrator.regenerate_embeddings()
            print(f"{report.message} (processed={report.processed}, total={report.total})")
            return 0

        if not args.url:
            print("A URL is required unless --regenerate is given.")
            return 2

        print(f"Crawling {args.url} (max {args.max_pages} pages)...")
        report = await orchestrator.ingest_site(args.url, max_pages=args.max_pages)

        if report.pages == 0:
            print("No pages found. Check if the URL is correct and accessible.")
            return 1

        for entry in report.debug:
            detail = entry.reason or entry.error or f"{entry.chunks or 0} chunks"
            print(f"  [{entry.status}] {entry.url} - {detail}")

        print(f"{report.message}: {report.pages} pages, {report.chunks} chunks.")
        return 0


async def main(args) -> int:
    configure_logging()
    try:
        return await run(args)
    finally:
        await async_engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Crawl a website into the RAG knowledge base.")
    parser.add_argument("url", nargs="?", help="Root URL to crawl")
    parser.add_argument("--max-pages", type=int, default=100)
    parser.add_argument("--regenerate", action="store_true", help="Only re-embed chunks missing an embedding")
    parser.add_argument("--init-db", action="store_true", help="Create the schema before ingesting")
    sys.exit(asyncio.run(main(parser.parse_args())))
