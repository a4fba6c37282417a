"""
Guardrail Error Responses

Builds the JSON error bodies returned when a request is rejected. Bodies
carry a user-facing message, a machine-readable code and the request id:

    {"error": "...", "code": "RATE_LIMIT_ERROR", "request_id": "req_...", ...}
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

from .config import ERROR_MESSAGES
from .types import GuardrailErrorCode, GuardrailVerdict

STATUS_BY_CODE: Dict[GuardrailErrorCode, int] = {
    GuardrailErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    GuardrailErrorCode.CONTENT_FILTER_ERROR: status.HTTP_400_BAD_REQUEST,
    GuardrailErrorCode.SECURITY_ERROR: status.HTTP_403_FORBIDDEN,
    GuardrailErrorCode.RATE_LIMIT_ERROR: status.HTTP_429_TOO_MANY_REQUESTS,
    GuardrailErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(
    code: GuardrailErrorCode,
    message: str,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": message, "code": code.value}
    if request_id:
        body["request_id"] = request_id
    if details:
        body["details"] = details
    body.update(extra)
    return JSONResponse(status_code=STATUS_BY_CODE[code], content=body, headers=headers)


def validation_error_response(
    message: str,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return _error_response(GuardrailErrorCode.VALIDATION_ERROR, message, request_id, details)


def content_filter_error_response(
    message: str,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return _error_response(GuardrailErrorCode.CONTENT_FILTER_ERROR, message, request_id, details)


def security_error_response(request_id: Optional[str] = None) -> JSONResponse:
    # Never echo the offending input back
    return _error_response(
        GuardrailErrorCode.SECURITY_ERROR,
        ERROR_MESSAGES["SECURITY_BLOCKED"],
        request_id,
    )


def rate_limit_error_response(
    reset_time: float,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """
    429 with the reset time both in the body (ISO 8601) and in the
    ``X-RateLimit-Reset`` / ``Retry-After`` headers.
    """
    now = datetime.now(timezone.utc).timestamp()
    retry_after = max(1, math.ceil(reset_time - now))
    return _error_response(
        GuardrailErrorCode.RATE_LIMIT_ERROR,
        ERROR_MESSAGES["RATE_LIMIT_EXCEEDED"],
        request_id,
        headers={
            "X-RateLimit-Reset": str(int(reset_time)),
            "Retry-After": str(retry_after),
        },
        reset_time=datetime.fromtimestamp(reset_time, tz=timezone.utc).isoformat(),
    )


def internal_error_response(
    request_id: Optional[str] = None,
    message: Optional[str] = None,
) -> JSONResponse:
    # ``message`` must be a fixed string, never exception text
    return _error_response(
        GuardrailErrorCode.INTERNAL_ERROR,
        message or ERROR_MESSAGES["INTERNAL_ERROR"],
        request_id,
    )


def verdict_to_response(verdict: GuardrailVerdict) -> JSONResponse:
    """
    Translate a rejecting ``GuardrailVerdict`` into its HTTP response.
    """
    code = verdict.error_code or GuardrailErrorCode.INTERNAL_ERROR

    if code is GuardrailErrorCode.RATE_LIMIT_ERROR and verdict.reset_time is not None:
        return rate_limit_error_response(verdict.reset_time, verdict.request_id)
    if code is GuardrailErrorCode.SECURITY_ERROR:
        return security_error_response(verdict.request_id)
    if code is GuardrailErrorCode.INTERNAL_ERROR:
        return internal_error_response(request_id=verdict.request_id)

    message = verdict.error or ERROR_MESSAGES["VALIDATION_FAILED"]
    if code is GuardrailErrorCode.CONTENT_FILTER_ERROR:
        return content_filter_error_response(message, verdict.request_id, verdict.details)
    return validation_error_response(message, verdict.request_id, verdict.details)
