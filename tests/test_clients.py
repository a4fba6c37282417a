"""
Gemini Client Tests

HTTP traffic is served by ``httpx.MockTransport``; nothing leaves the
process.
"""

import asyncio
import contextlib
import json
from unittest.mock import patch

import httpx
import pytest

from site_rag_server.core.retry import is_transient_error, with_retry
from site_rag_server.embeddings.embedder import Embedder, EmbeddingError
from site_rag_server.llm.client import (
    FALLBACK_ANSWER,
    InlineDataPart,
    LLMClient,
    LLMError,
    TextPart,
)
from site_rag_server.llm.vision import ImageAnalysis, analyze_image

BASE = "https://gemini.test/v1beta"

_RealAsyncClient = httpx.AsyncClient


@contextlib.contextmanager
def mock_http(handler):
    """Route every httpx.AsyncClient created inside the block to ``handler``."""

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _RealAsyncClient(*args, **kwargs)

    with patch("httpx.AsyncClient", factory):
        yield


# ---------------------------------------------------------------------
# Retry helper
# ---------------------------------------------------------------------

class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_errors_then_succeeds(self):
        calls = {"n": 0}

        async def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise httpx.ConnectError("refused")
            return "ok"

        assert await with_retry(flaky, max_retries=3, base_delay=0.001, max_delay=0.01) == "ok"
        assert calls["n"] == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = {"n": 0}

        async def always_down():
            calls["n"] += 1
            raise httpx.ReadTimeout("slow")

        with pytest.raises(httpx.ReadTimeout):
            await with_retry(always_down, max_retries=2, base_delay=0.001, max_delay=0.01)
        assert calls["n"] == 3

    @pytest.mark.asyncio
    async def test_non_transient_errors_are_not_retried(self):
        calls = {"n": 0}

        async def bad_request():
            calls["n"] += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await with_retry(bad_request, max_retries=3, base_delay=0.001)
        assert calls["n"] == 1

    def test_status_classification(self):
        request = httpx.Request("POST", BASE)

        def status_error(code):
            response = httpx.Response(code, request=request)
            return httpx.HTTPStatusError("err", request=request, response=response)

        assert is_transient_error(status_error(503))
        assert is_transient_error(status_error(429))
        assert not is_transient_error(status_error(400))
        assert not is_transient_error(status_error(401))


# ---------------------------------------------------------------------
# Embedder
# ---------------------------------------------------------------------

class TestEmbedder:
    @pytest.mark.asyncio
    async def test_one_request_per_text_in_order(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            text = body["content"]["parts"][0]["text"]
            seen.append(text)
            assert request.url.path.endswith("/models/text-embedding-004:embedContent")
            assert request.url.params["key"] == "k"
            return httpx.Response(200, json={"embedding": {"values": [float(len(text)), 1.0]}})

        embedder = Embedder(api_key="k", model="text-embedding-004", base_url=BASE)
        with mock_http(handler):
            vectors = await embedder.embed(["a", "bb", "ccc", "dddd"], batch_size=3)

        assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0], [4.0, 1.0]]
        assert sorted(seen) == ["a", "bb", "ccc", "dddd"]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await Embedder(api_key="k", base_url=BASE).embed([]) == []

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        embedder = Embedder(api_key="k", base_url=BASE, max_retries=0)
        with mock_http(handler), pytest.raises(EmbeddingError):
            await embedder.embed_one("hello")

    @pytest.mark.asyncio
    async def test_http_error_becomes_embedding_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "bad"}})

        embedder = Embedder(api_key="k", base_url=BASE, max_retries=0)
        with mock_http(handler), pytest.raises(EmbeddingError):
            await embedder.embed_one("hello")

    @pytest.mark.asyncio
    async def test_non_json_body_becomes_embedding_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>bad gateway</html>")

        embedder = Embedder(api_key="k", base_url=BASE, max_retries=0)
        with mock_http(handler), pytest.raises(EmbeddingError):
            await embedder.embed_one("hello")

    @pytest.mark.asyncio
    async def test_failure_cancels_rest_of_batch(self):
        cancelled = []

        async def handler(request):
            text = json.loads(request.content)["content"]["parts"][0]["text"]
            if text == "bad":
                return httpx.Response(400, json={"error": {"message": "bad"}})
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(text)
                raise
            return httpx.Response(200, json={"embedding": {"values": [1.0]}})

        embedder = Embedder(api_key="k", base_url=BASE, max_retries=0)
        with mock_http(handler), pytest.raises(EmbeddingError):
            await asyncio.wait_for(embedder.embed(["slow-1", "bad", "slow-2"]), timeout=5)

        assert sorted(cancelled) == ["slow-1", "slow-2"]


# ---------------------------------------------------------------------
# LLM client
# ---------------------------------------------------------------------

class TestLLMClient:
    @pytest.mark.asyncio
    async def test_generate_sends_parts_and_returns_text(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}]},
            )

        llm = LLMClient(api_key="k", model="gemini-test", base_url=BASE)
        with mock_http(handler):
            text = await llm.generate(
                [TextPart("question"), InlineDataPart(data="aGk=", mime_type="image/png")]
            )

        assert text == "Hello world"
        assert "/models/gemini-test:generateContent" in captured["url"]
        parts = captured["body"]["contents"][0]["parts"]
        assert parts == [
            {"text": "question"},
            {"inline_data": {"data": "aGk=", "mime_type": "image/png"}},
        ]

    @pytest.mark.asyncio
    async def test_empty_candidates_fall_back(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": []})

        llm = LLMClient(api_key="k", base_url=BASE)
        with mock_http(handler):
            assert await llm.generate([TextPart("q")]) == FALLBACK_ANSWER

    @pytest.mark.asyncio
    async def test_client_error_raises_llm_error(self):
        def handler(request):
            return httpx.Response(403, json={"error": {"message": "denied"}})

        llm = LLMClient(api_key="k", base_url=BASE)
        with mock_http(handler), pytest.raises(LLMError):
            await llm.generate([TextPart("q")])

    @pytest.mark.asyncio
    async def test_non_json_body_raises_llm_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>upstream proxy error</html>")

        llm = LLMClient(api_key="k", base_url=BASE)
        with mock_http(handler), pytest.raises(LLMError):
            await llm.generate([TextPart("q")])


# ---------------------------------------------------------------------
# Vision
# ---------------------------------------------------------------------

class TestAnalyzeImage:
    @pytest.mark.asyncio
    async def test_parses_json(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["generationConfig"]["response_mime_type"] == "application/json"
            payload = json.dumps({"ocr": "SALE", "caption": "a poster", "entities": ["shop"]})
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": payload}]}}]})

        with mock_http(handler):
            result = await analyze_image(LLMClient(api_key="k", base_url=BASE), "aGk=", "image/png")

        assert result == ImageAnalysis(ocr="SALE", caption="a poster", entities=["shop"])
        assert result.as_query_text() == "SALE a poster shop"

    @pytest.mark.asyncio
    async def test_non_json_output_is_empty_analysis(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "no idea"}]}}]})

        with mock_http(handler):
            result = await analyze_image(LLMClient(api_key="k", base_url=BASE), "aGk=", "image/png")

        assert result == ImageAnalysis()
