from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from ..config import settings
from ..core.retry import with_retry

logger = logging.getLogger("rag.llm")

FALLBACK_ANSWER = "Sorry, I didn't get that."


class LLMError(RuntimeError):
    """Raised when the generative model call fails."""


@dataclass(frozen=True)
class TextPart:
    text: str

    def to_payload(self) -> Dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class InlineDataPart:
    """Binary payload (base64 encoded) sent alongside text, e.g. an image."""
    data: str
    mime_type: str

    def to_payload(self) -> Dict[str, Any]:
        return {"inline_data": {"data": self.data, "mime_type": self.mime_type}}


Part = Union[TextPart, InlineDataPart]


class LLMClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.google_api_key.get_secret_value()
        self.model = model or settings.gemini_model
        self.base_url = (base_url or str(settings.gemini_api_base)).rstrip("/")
        self.timeout = timeout or settings.llm_timeout

    async def generate(
        self,
        parts: Sequence[Part],
        model: Optional[str] = None,
        temperature: float = 0.2,
        response_mime_type: Optional[str] = None,
    ) -> str:
        """
        Send one multi-part prompt and return the first candidate's text, e.g.:
        {
            "candidates": [
                {"content": {"parts": [{"text": "..."}]}}
            ]
        }
        """
        generation_config: Dict[str, Any] = {"temperature": temperature}
        if response_mime_type:
            generation_config["response_mime_type"] = response_mime_type

        payload = {
            "contents": [
                {"role": "user", "parts": [p.to_payload() for p in parts]},
            ],
            "generationConfig": generation_config,
        }
        url = f"{self.base_url}/models/{model or self.model}:generateContent"

        async def _post() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, params={"key": self.api_key})
            resp.raise_for_status()
            return resp

        try:
            resp = await with_retry(_post, max_retries=settings.upstream_max_retries)
        except httpx.HTTPError as exc:
            logger.error("Generation request failed (%s): %s", type(exc).__name__, exc)
            raise LLMError(f"Model call failed: {type(exc).__name__}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("Model returned a non-JSON body (status=%s)", resp.status_code)
            raise LLMError("Model returned an unreadable response") from exc

        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        try:
            parts: List[Dict[str, Any]] = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Model response had no candidate content")
            return FALLBACK_ANSWER

        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
        return text or FALLBACK_ANSWER
