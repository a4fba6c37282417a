"""
Global Error Handling

This module defines application-wide exception handlers and the helpers used
to keep raw exception text out of client-visible error payloads.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Remain testable and framework-agnostic where possible
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("rag.errors")


# ---------------------------------------------------------------------
# Error Message Redaction
# ---------------------------------------------------------------------

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
_CARD_RE = re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b")

GENERIC_ERROR_MESSAGE = "An error occurred"


def sanitize_error_message(error: Any) -> str:
    """
    Produce a client-safe version of an error message.

    Emails, SSN-like and card-like numbers are replaced with placeholders.
    Anything that is neither a string nor an exception collapses to a
    generic message.

    Parameters
    ----------
    error : Any
        A message string or an exception instance.

    Returns
    -------
    str
        Redacted message text.
    """
    if isinstance(error, BaseException):
        error = str(error)

    if not isinstance(error, str) or not error:
        return GENERIC_ERROR_MESSAGE

    redacted = _EMAIL_RE.sub("[EMAIL]", error)
    redacted = _SSN_RE.sub("[SSN]", redacted)
    redacted = _CARD_RE.sub("[CARD]", redacted)
    return redacted


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    # Deterministic, minimal external error surface
    payload: Dict[str, Any] = {
        "error": "An internal error occurred. Please try again later.",
        "code": "INTERNAL_ERROR",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Report malformed request bodies as 400 VALIDATION_ERROR.

    Only field locations and messages are returned; submitted values are
    never echoed back.
    """
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.info(
        "Request validation failed: %s %s (%d errors)",
        request.method,
        request.url.path,
        len(errors),
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request.",
            "code": "VALIDATION_ERROR",
            "details": {"errors": errors},
        },
    )
