"""
Image Analysis

Lightweight OCR + caption + entity extraction for an image attached to a
question. The result is only used to enrich the search query, so callers
treat any failure here as non-fatal.
"""

from __future__ import annotations

import json
import logging
from typing import List

from pydantic import BaseModel, Field

from ..config import settings
from .client import InlineDataPart, LLMClient, TextPart

logger = logging.getLogger("rag.vision")

IMAGE_ANALYSIS_PROMPT = """
You are an assistant that extracts structured info from an image.

Return strict JSON with keys:
- ocr: ALL legible text in the image
- caption: a 1-2 sentence concise description
- entities: array of salient named things (brands, products, people, signs, labels), lowercase strings.

If unclear, use empty string/array. No extra text.
""".strip()


class ImageAnalysis(BaseModel):
    ocr: str = ""
    caption: str = ""
    entities: List[str] = Field(default_factory=list)

    def as_query_text(self) -> str:
        """Space-joined non-empty fields, for appending to a search query."""
        return " ".join(x for x in [self.ocr, self.caption, *self.entities] if x).strip()


async def analyze_image(
    llm: LLMClient,
    data: str,
    mime_type: str,
) -> ImageAnalysis:
    """
    Ask the vision model for OCR text, a caption and salient entities.

    Malformed model output yields an empty ``ImageAnalysis``; transport
    errors propagate as ``LLMError``.
    """
    raw = await llm.generate(
        [
            TextPart(IMAGE_ANALYSIS_PROMPT),
            InlineDataPart(data=data, mime_type=mime_type),
        ],
        model=settings.gemini_vision_model,
        response_mime_type="application/json",
    )

    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Image analysis returned non-JSON output")
        return ImageAnalysis()

    if not isinstance(parsed, dict):
        return ImageAnalysis()

    entities = parsed.get("entities")
    return ImageAnalysis(
        ocr=str(parsed.get("ocr") or ""),
        caption=str(parsed.get("caption") or ""),
        entities=[str(e) for e in entities] if isinstance(entities, list) else [],
    )
