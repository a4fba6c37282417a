"""
Guardrails Package

Request screening (rate limiting, validation, injection and content
filtering, PII redaction), output sanitation and guardrail telemetry.
"""

from .config import GuardrailConfig
from .pipeline import GuardrailPipeline, generate_request_id, get_client_identifier
from .rate_limiter import RateLimiter
from .telemetry import GuardrailTelemetry
from .types import (
    GuardrailAction,
    GuardrailErrorCode,
    GuardrailVerdict,
    SecurityEventType,
    Severity,
)
from .errors import verdict_to_response

__all__ = [
    "GuardrailConfig",
    "GuardrailPipeline",
    "generate_request_id",
    "get_client_identifier",
    "RateLimiter",
    "GuardrailTelemetry",
    "GuardrailAction",
    "GuardrailErrorCode",
    "GuardrailVerdict",
    "SecurityEventType",
    "Severity",
    "verdict_to_response",
]
