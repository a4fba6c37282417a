"""
Direct Model Route

``POST /hive-bot`` forwards the user's text and optional attachment to the
generative model as-is: no retrieval, no persona prompt. Requests still go
through the guardrail pipeline, and the answer through output sanitation.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from .dependencies import get_guardrails, get_llm_client
from .models import ErrorResponse, HiveBotRequest, HiveBotResponse
from ..config import settings
from ..guardrails import (
    GuardrailPipeline,
    generate_request_id,
    get_client_identifier,
    verdict_to_response,
)
from ..guardrails.errors import internal_error_response, validation_error_response
from ..llm.client import InlineDataPart, LLMClient, LLMError, Part, TextPart

logger = logging.getLogger("rag.api.hive_bot")

router = APIRouter(tags=["hive-bot"])


@router.post(
    "/hive-bot",
    response_model=HiveBotResponse,
    summary="Send a message (and optional attachment) straight to the model",
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def hive_bot(
    req: HiveBotRequest,
    request: Request,
    guardrails: GuardrailPipeline = Depends(get_guardrails),
    llm: LLMClient = Depends(get_llm_client),
):
    if not settings.google_api_key.get_secret_value():
        return internal_error_response(message="Model is not configured.")

    if not req.message.strip() and req.file is None:
        return validation_error_response("Empty request", generate_request_id())

    verdict = guardrails.validate_message_request(
        get_client_identifier(request),
        req.message,
        req.file,
        allow_empty_message=True,
    )
    if not verdict.allowed:
        return verdict_to_response(verdict)

    parts: List[Part] = []
    if verdict.sanitized_message:
        parts.append(TextPart(verdict.sanitized_message))
    if req.file is not None:
        parts.append(InlineDataPart(data=req.file.data, mime_type=req.file.mime_type))

    try:
        answer = await llm.generate(parts)
    except LLMError:
        logger.exception("Direct model call failed (request_id=%s)", verdict.request_id)
        return internal_error_response(verdict.request_id)

    check = guardrails.validate_response(answer, verdict.request_id)
    return HiveBotResponse(text=check.sanitized_response)
