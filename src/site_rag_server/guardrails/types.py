"""
Guardrail result and telemetry types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GuardrailAction(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    ERROR = "error"


class SecurityEventType(str, Enum):
    INJECTION_ATTEMPT = "injection_attempt"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    MALICIOUS_CONTENT = "malicious_content"
    JAILBREAK_ATTEMPT = "jailbreak_attempt"
    PII_DETECTED = "pii_detected"
    VALIDATION_FAILED = "validation_failed"


class GuardrailErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    CONTENT_FILTER_ERROR = "CONTENT_FILTER_ERROR"
    SECURITY_ERROR = "SECURITY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ---------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------

class RateLimitResult(NamedTuple):
    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds
    retry_after: Optional[int] = None  # seconds


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sanitized_input: Optional[str] = None


@dataclass
class ContentFilterResult:
    is_clean: bool
    flagged_categories: List[str] = field(default_factory=list)
    severity: Severity = Severity.LOW
    filtered_content: Optional[str] = None


@dataclass
class PIIDetectionResult:
    has_pii: bool
    detected_types: List[str] = field(default_factory=list)
    redacted_content: str = ""


# ---------------------------------------------------------------------
# Pipeline stage outcome / verdict
# ---------------------------------------------------------------------

@dataclass
class StageOutcome:
    """
    Result of a single pipeline stage.

    A passing stage may replace the text seen by later stages via ``text``.
    A failing stage carries everything needed to build the error response
    and the security event.
    """

    passed: bool
    text: Optional[str] = None
    error_code: Optional[GuardrailErrorCode] = None
    message: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    event_type: Optional[SecurityEventType] = None
    severity: Severity = Severity.LOW
    reset_time: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, text: Optional[str] = None, **metadata: Any) -> "StageOutcome":
        return cls(passed=True, text=text, metadata=metadata)


@dataclass
class GuardrailVerdict:
    """Final decision for one request."""

    allowed: bool
    request_id: str
    sanitized_message: Optional[str] = None
    error_code: Optional[GuardrailErrorCode] = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    reset_time: Optional[float] = None
    pii_redacted: List[str] = field(default_factory=list)


@dataclass
class ResponseCheck:
    """Outcome of validating a model response before it is returned."""

    is_valid: bool
    sanitized_response: str
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------
# Telemetry records
# ---------------------------------------------------------------------

class GuardrailMetric(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    request_id: str
    identifier: str
    action: str
    result: GuardrailAction
    reason: Optional[str] = None
    duration_ms: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SecurityEvent(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    type: SecurityEventType
    severity: Severity
    request_id: Optional[str] = None
    identifier: str
    details: Dict[str, Any] = Field(default_factory=dict)
    blocked: bool = True
