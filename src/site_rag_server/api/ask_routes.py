"""
Ask Route

Public question-answering endpoint used by the chat widget.

Every request first goes through the guardrail pipeline (rate limiting,
validation, injection and content filtering, PII redaction). Only the
sanitized message reaches retrieval and the model.
"""

import logging

from fastapi import APIRouter, Depends, Request, status

from .dependencies import get_ask_orchestrator, get_guardrails
from .models import AskRequest, AskResponse, ErrorResponse
from ..db.vector_store import VectorStoreError
from ..embeddings.embedder import EmbeddingError
from ..guardrails import GuardrailPipeline, get_client_identifier, verdict_to_response
from ..guardrails.errors import internal_error_response
from ..llm.client import InlineDataPart, LLMError
from ..rag.ask import AskOrchestrator

logger = logging.getLogger("rag.api.ask")

router = APIRouter(prefix="/rag", tags=["rag"])


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Answer a question from the indexed website content",
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def ask(
    req: AskRequest,
    request: Request,
    guardrails: GuardrailPipeline = Depends(get_guardrails),
    orchestrator: AskOrchestrator = Depends(get_ask_orchestrator),
):
    """
    Answer ``req.message``, optionally using an attached image.

    Returns
    -------
    AskResponse
        Answer text, up to three source URLs and whether the reply came
        from the chitchat fast path. Rejections use the guardrail error
        body with a machine-readable ``code`` and the ``request_id``.
    """
    identifier = get_client_identifier(request)
    verdict = guardrails.validate_message_request(identifier, req.message, req.file)
    if not verdict.allowed:
        return verdict_to_response(verdict)

    image = (
        InlineDataPart(data=req.file.data, mime_type=req.file.mime_type)
        if req.file is not None
        else None
    )

    try:
        result = await orchestrator.ask(
            verdict.sanitized_message,
            image=image,
            top_k=req.top_k,
            min_similarity=req.min_similarity,
            request_id=verdict.request_id,
        )
    except (EmbeddingError, VectorStoreError, LLMError):
        logger.exception("Ask failed (request_id=%s)", verdict.request_id)
        return internal_error_response(verdict.request_id)

    return AskResponse(
        text=result.text,
        sources=result.sources,
        is_chitchat=result.is_chitchat,
    )
