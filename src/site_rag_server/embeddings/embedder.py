"""
Embedding Client

This module implements a robust, test-friendly embedding client for the
Gemini ``embedContent`` API. It is responsible for:

- Bounded parallelism: one request per text, issued concurrently within a
  sub-batch, sub-batches processed one after another
- Transient error retries with exponential backoff
- Network and transport error isolation
- Strict response validation

The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

import asyncio
from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings
from ..core.retry import with_retry

logger = logging.getLogger("rag.embedder")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class Embedder:
    """
    Asynchronous embedding generator for batches of text.

    This class performs no caching and assumes the caller handles
    persistence of the resulting vectors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the Google API key. Defaults to settings.google_api_key.

        model : Optional[str]
            Optional override for embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Base URL of the Gemini REST API. Defaults to settings.gemini_api_base.

        timeout : Optional[float]
            HTTP timeout for each request.

        max_retries : Optional[int]
            Retries per text on transient failures.
        """
        self.api_key = api_key or settings.google_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = (base_url or str(settings.gemini_api_base)).rstrip("/")
        self.timeout = timeout or settings.embedding_timeout
        self.max_retries = (
            settings.upstream_max_retries if max_retries is None else max_retries
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:embedContent"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: Optional[int] = None,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        batch_size : Optional[int]
            Maximum number of simultaneous requests. Defaults to
            settings.embedding_batch_size.

        Returns
        -------
        List[List[float]]
            One embedding per input text, in input order.

        Raises
        ------
        EmbeddingError
            If any request fails or a response is malformed.
        """
        if not texts:
            return []

        batch_size = max(1, batch_size or settings.embedding_batch_size)
        total_batches = (len(texts) + batch_size - 1) // batch_size
        all_embeddings: List[List[float]] = []

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])

                if total_batches > 1:
                    logger.info(
                        "Embedding batch %d/%d (%d texts)",
                        start // batch_size + 1,
                        total_batches,
                        len(batch),
                    )

                tasks = [asyncio.create_task(self._embed_one(client, text)) for text in batch]
                try:
                    vectors = await asyncio.gather(*tasks)
                except BaseException:
                    # Siblings must stop before the shared client closes
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise
                all_embeddings.extend(vectors)

        return all_embeddings

    async def embed_one(self, text: str) -> List[float]:
        """
        Embed a single text (e.g. a search query).
        """
        vectors = await self.embed([text])
        return vectors[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_one(self, client: httpx.AsyncClient, text: str) -> List[float]:
        payload = {"content": {"parts": [{"text": text}]}}

        async def _post() -> httpx.Response:
            response = await client.post(
                self.endpoint,
                json=payload,
                params={"key": self.api_key},
            )
            response.raise_for_status()
            return response

        try:
            response = await with_retry(_post, max_retries=self.max_retries)
        except httpx.HTTPError as exc:
            logger.error(
                "Embedding request failed (%s): text length=%d, error=%s",
                type(exc).__name__,
                len(text),
                str(exc),
            )
            raise EmbeddingError(
                f"Embedding generation failed: {type(exc).__name__}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response was not valid JSON.") from exc

        return self._extract_embedding(data)

    @staticmethod
    def _extract_embedding(data: dict) -> List[float]:
        """
        Parse and validate embedding output format.

        Gemini returns:
            { "embedding": { "values": [...] } }

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure.
        """
        record = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(record, dict) or "values" not in record:
            raise EmbeddingError("Embedding response missing 'embedding.values' field.")

        values = record["values"]
        if not isinstance(values, list) or not values or not all(
            isinstance(x, (float, int)) for x in values
        ):
            raise EmbeddingError("Invalid embedding vector: must be a non-empty float list.")

        return [float(x) for x in values]
