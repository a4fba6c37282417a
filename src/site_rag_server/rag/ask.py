"""
Ask Orchestrator

Turns one (already screened) user message into an answer:

1. chitchat fast path (canned reply, no retrieval, no model call)
2. identity questions (one model call, no retrieval)
3. optional image analysis to enrich the search query
4. retrieval with over-fetch and per-URL dedup
5. no matches -> fixed reply, no model call
6. one grounded model call, output sanitation, up to N source URLs
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import settings
from ..guardrails import GuardrailPipeline
from ..guardrails.security_filters import sanitize_output
from ..llm.client import InlineDataPart, LLMClient, TextPart
from ..llm.vision import analyze_image
from ..prompts import NO_MATCH_TEXT, build_rag_parts, identity_prompt
from .classifier import QueryCategory, chitchat_response, classify_message
from .retriever import Retriever

logger = logging.getLogger("rag.ask")


@dataclass
class AskResult:
    text: str
    sources: List[str] = field(default_factory=list)
    is_chitchat: bool = False


class AskOrchestrator:
    def __init__(
        self,
        llm: LLMClient,
        retriever: Retriever,
        guardrails: Optional[GuardrailPipeline] = None,
    ) -> None:
        self.llm = llm
        self.retriever = retriever
        self.guardrails = guardrails

    async def ask(
        self,
        message: str,
        image: Optional[InlineDataPart] = None,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
        request_id: Optional[str] = None,
    ) -> AskResult:
        """
        Answer ``message``, grounded in the stored website content.

        Raises
        ------
        EmbeddingError, VectorStoreError, LLMError
            Upstream failures other than image analysis propagate.
        """
        question = message.strip()
        category = classify_message(question)

        if category.is_chitchat:
            logger.debug("Chitchat fast path: %s", category.value)
            return AskResult(text=chitchat_response(category), is_chitchat=True)

        if category is QueryCategory.IDENTITY:
            answer = await self.llm.generate([TextPart(identity_prompt(question))])
            return AskResult(text=self._sanitize(answer, request_id), is_chitchat=True)

        search_query = question
        if image is not None:
            search_query = await self._augment_with_image(question, image)

        matches = await self.retriever.retrieve(
            search_query,
            top_k=top_k,
            min_similarity=min_similarity,
        )
        if not matches:
            logger.info("No matches above threshold (request_id=%s)", request_id)
            return AskResult(text=NO_MATCH_TEXT)

        parts = build_rag_parts(
            question,
            matches,
            excerpt_chars=settings.rag_excerpt_chars,
            image=image,
        )
        answer = await self.llm.generate(parts)

        sources: List[str] = []
        for match in matches:
            if match.url not in sources:
                sources.append(match.url)

        return AskResult(
            text=self._sanitize(answer, request_id),
            sources=sources[: settings.rag_max_sources],
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _augment_with_image(self, question: str, image: InlineDataPart) -> str:
        try:
            analysis = await analyze_image(self.llm, image.data, image.mime_type)
        except Exception:
            # Image analysis only enriches the query; never fatal
            logger.warning("Image analysis failed; searching with text only", exc_info=True)
            return question

        extra = analysis.as_query_text()
        return f"{question} {extra}" if extra else question

    def _sanitize(self, text: str, request_id: Optional[str]) -> str:
        if self.guardrails is None:
            return sanitize_output(text, settings.max_response_length)
        return self.guardrails.validate_response(text, request_id).sanitized_response
