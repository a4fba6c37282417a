"""
Ingestion Route

Admin-only endpoint that (re)builds the knowledge base:

- ``action="crawl"``: crawl ``url``, chunk, embed and replace the stored
  chunks of every crawled page
- ``action="regenerate"``: embed stored chunks whose embedding is missing

Crawls run inside the request and can take minutes for large sites; the
page budget keeps them bounded.
"""

import logging
from typing import Union

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .dependencies import get_ingestion_orchestrator, verify_admin
from .models import ErrorResponse, IngestRequest, IngestResponse, RegenerateResponse
from ..guardrails.security_filters import is_safe_crawl_url
from ..ingestion.pipeline import IngestionError, IngestionOrchestrator

logger = logging.getLogger("rag.api.ingest")

router = APIRouter(
    prefix="/rag",
    tags=["ingest"],
    dependencies=[Depends(verify_admin)],
)


def _error(status_code: int, message: str) -> JSONResponse:
    code = "INTERNAL_ERROR" if status_code >= 500 else "VALIDATION_ERROR"
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


@router.post(
    "/ingest",
    response_model=Union[IngestResponse, RegenerateResponse],
    response_model_exclude_none=True,
    summary="Crawl a site into the knowledge base, or re-embed pending chunks",
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def ingest(
    req: IngestRequest,
    orchestrator: IngestionOrchestrator = Depends(get_ingestion_orchestrator),
):
    if req.action == "regenerate":
        try:
            report = await orchestrator.regenerate_embeddings()
        except IngestionError as exc:
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
        return RegenerateResponse(**report.model_dump())

    if not req.url:
        return _error(status.HTTP_400_BAD_REQUEST, "URL is required")

    if not is_safe_crawl_url(req.url):
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "URL must be a public http(s) address.",
        )

    try:
        report = await orchestrator.ingest_site(req.url, max_pages=req.max_pages)
    except IngestionError as exc:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except Exception:
        logger.exception("Ingestion of %s failed", req.url)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Ingestion failed")

    if report.pages == 0:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "No pages found. Check if the URL is correct and accessible.",
        )

    return IngestResponse(
        message=report.message,
        pages=report.pages,
        chunks=report.chunks,
        debug=report.debug,
    )
