"""
API Models

Pydantic request/response models for the ask, direct model, ingest and
guardrail admin endpoints.

The ask endpoint accepts both snake_case and the camelCase field names
sent by the browser widget (``topK``, ``minSim``/``minSimilarity``,
``mimeType``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..guardrails.types import GuardrailMetric, SecurityEvent
from ..ingestion.pipeline import PageReport


# ---------------------------------------------------------------------
# Ask Models
# ---------------------------------------------------------------------

class FilePayload(BaseModel):
    """
    Base64 encoded attachment (image or PDF).
    """
    data: str = Field(..., min_length=1)
    mime_type: str = Field(
        ...,
        validation_alias=AliasChoices("mime_type", "mimeType"),
    )
    name: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AskRequest(BaseModel):
    """
    Question for the assistant.

    ``message`` defaults to empty so that a missing message is rejected by
    the guardrails with a regular validation error.
    """
    message: str = ""
    file: Optional[FilePayload] = None
    top_k: Optional[int] = Field(
        default=None,
        ge=1,
        le=50,
        validation_alias=AliasChoices("top_k", "topK"),
    )
    min_similarity: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("min_similarity", "minSimilarity", "minSim"),
    )

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AskResponse(BaseModel):
    text: str
    sources: List[str] = Field(default_factory=list)
    is_chitchat: bool = False


# ---------------------------------------------------------------------
# Direct Model Models
# ---------------------------------------------------------------------

class HiveBotRequest(BaseModel):
    """
    Plain model call: text, an attachment, or both. No retrieval.
    """
    message: str = ""
    file: Optional[FilePayload] = None

    model_config = ConfigDict(extra="ignore")


class HiveBotResponse(BaseModel):
    text: str


# ---------------------------------------------------------------------
# Ingestion Models
# ---------------------------------------------------------------------

class IngestRequest(BaseModel):
    url: Optional[str] = None
    action: Literal["crawl", "regenerate"] = "crawl"
    max_pages: Optional[int] = Field(
        default=None,
        ge=1,
        le=1000,
        validation_alias=AliasChoices("max_pages", "maxPages"),
    )

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class IngestResponse(BaseModel):
    message: str
    pages: int = Field(..., ge=0)
    chunks: int = Field(..., ge=0)
    debug: List[PageReport] = Field(default_factory=list)


class RegenerateResponse(BaseModel):
    message: str
    processed: int = Field(..., ge=0)
    total: Optional[int] = Field(default=None, ge=0)


# ---------------------------------------------------------------------
# Guardrail Admin Models
# ---------------------------------------------------------------------

class MetricsResponse(BaseModel):
    count: int
    metrics: List[GuardrailMetric]


class SecurityEventsResponse(BaseModel):
    count: int
    events: List[SecurityEvent]


class GuardrailSummaryResponse(BaseModel):
    generated_at: datetime
    metrics: Dict[str, Any]
    security: Dict[str, Any]
    rate_limiter: Dict[str, Any]


class RateLimitResetRequest(BaseModel):
    identifier: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class RateLimitResetResponse(BaseModel):
    identifier: str
    reset: bool


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

class ErrorResponse(BaseModel):
    """
    Error body shared by every endpoint.
    """
    error: str
    code: Optional[str] = None
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    reset_time: Optional[str] = None
