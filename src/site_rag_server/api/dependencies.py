from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import VectorStore, get_async_session
from ..embeddings.embedder import Embedder
from ..guardrails import GuardrailPipeline
from ..ingestion.crawler import SiteCrawler
from ..ingestion.pipeline import IngestionOrchestrator
from ..llm.client import LLMClient
from ..rag.ask import AskOrchestrator
from ..rag.retriever import Retriever


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_crawler() -> SiteCrawler:
    return SiteCrawler()


# One pipeline per process: the rate limiter and telemetry buffers live on it
@lru_cache
def get_guardrails() -> GuardrailPipeline:
    return GuardrailPipeline()


async def get_vector_store(
    session: AsyncSession = Depends(get_async_session),
) -> VectorStore:
    return VectorStore(session)


def get_ask_orchestrator(
    llm: LLMClient = Depends(get_llm_client),
    embedder: Embedder = Depends(get_embedder),
    store: VectorStore = Depends(get_vector_store),
    guardrails: GuardrailPipeline = Depends(get_guardrails),
) -> AskOrchestrator:
    return AskOrchestrator(llm, Retriever(embedder, store), guardrails)


def get_ingestion_orchestrator(
    crawler: SiteCrawler = Depends(get_crawler),
    embedder: Embedder = Depends(get_embedder),
    store: VectorStore = Depends(get_vector_store),
) -> IngestionOrchestrator:
    return IngestionOrchestrator(crawler, embedder, store)


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
) -> None:
    """
    Verify the request is from an admin using the configured API key.
    Checks header first, then query param.
    """
    expected_key = settings.admin_api_key.get_secret_value() if settings.admin_api_key else None

    if not expected_key:
        # No key configured: admin endpoints stay closed
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured (ADMIN_API_KEY missing)",
        )

    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key",
        )
