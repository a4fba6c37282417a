"""
Guardrail Pipeline

Runs an incoming chat request through an ordered list of checks:

    rate_limit -> input_validation -> injection_check -> file_validation
    -> content_filter -> sanitize

The first failing stage stops the pipeline and determines the response.
Every stage outcome is recorded as a ``GuardrailMetric``; security-relevant
rejections are also recorded as ``SecurityEvent``s.

An unexpected exception inside a stage blocks the request with
INTERNAL_ERROR. The rate limiter is the only component that fails open,
and it does so internally.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from fastapi import Request

from .config import ERROR_MESSAGES, GuardrailConfig
from .content_filter import ContentFilter
from .rate_limiter import RateLimiter
from .security_filters import sanitize_output
from .telemetry import GuardrailTelemetry
from .types import (
    GuardrailAction,
    GuardrailErrorCode,
    GuardrailMetric,
    GuardrailVerdict,
    ResponseCheck,
    SecurityEvent,
    SecurityEventType,
    Severity,
    StageOutcome,
)
from .validator import InputValidator

logger = logging.getLogger("rag.guardrails")

_ID_ALPHABET = string.ascii_lowercase + string.digits


# ---------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------

def generate_request_id() -> str:
    """``req_<epoch ms>_<7 random chars>``"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def get_client_identifier(request: Request) -> str:
    """
    Best-effort client identity for rate limiting.

    First ``X-Forwarded-For`` entry, then ``X-Real-IP``, then the socket
    peer, then ``"unknown"``.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


@dataclass
class _RequestState:
    request_id: str
    identifier: str
    text: str
    file: Optional[Any] = None
    allow_empty: bool = False
    pii_redacted: List[str] = field(default_factory=list)


Stage = Callable[[_RequestState], StageOutcome]


# ---------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------

class GuardrailPipeline:
    """
    Composes the rate limiter, validator, content filter and telemetry.

    Components default to instances built from ``config`` and can be
    replaced individually (e.g. a limiter with a fake clock in tests).
    """

    def __init__(
        self,
        config: Optional[GuardrailConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        validator: Optional[InputValidator] = None,
        content_filter: Optional[ContentFilter] = None,
        telemetry: Optional[GuardrailTelemetry] = None,
    ) -> None:
        self.config = config or GuardrailConfig.from_settings()
        self.rate_limiter = rate_limiter or RateLimiter(self.config)
        self.validator = validator or InputValidator(self.config)
        self.content_filter = content_filter or ContentFilter(self.config)
        self.telemetry = telemetry or GuardrailTelemetry(self.config)

        self._stages: List[Tuple[str, Stage]] = [
            ("rate_limit_check", self._check_rate_limit),
            ("input_validation", self._check_length),
            ("injection_check", self._check_injection),
            ("file_validation", self._check_file),
            ("content_filter", self._check_content),
            ("sanitize", self._sanitize),
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_message_request(
        self,
        identifier: str,
        message: str,
        file: Optional[Any] = None,
        request_id: Optional[str] = None,
        allow_empty_message: bool = False,
    ) -> GuardrailVerdict:
        """
        Run every stage against one chat request.

        Parameters
        ----------
        identifier : str
            Client identifier used for rate limiting and telemetry.
        message : str
            Raw user message.
        file : Optional[Any]
            Attachment exposing ``data`` (base64), ``mime_type`` and an
            optional ``name``.
        request_id : Optional[str]
            Correlation id; generated when omitted.
        allow_empty_message : bool
            Accept a blank message when an attachment is present.

        Returns
        -------
        GuardrailVerdict
            ``allowed`` with the sanitized message, or the rejection details.
        """
        state = _RequestState(
            request_id=request_id or generate_request_id(),
            identifier=identifier,
            text=message if isinstance(message, str) else "",
            file=file,
            allow_empty=allow_empty_message and file is not None,
        )

        for action, stage in self._stages:
            started = time.perf_counter()
            try:
                outcome = stage(state)
            except Exception:
                logger.exception(
                    "Guardrail stage %s failed (request_id=%s)", action, state.request_id
                )
                outcome = StageOutcome(
                    passed=False,
                    error_code=GuardrailErrorCode.INTERNAL_ERROR,
                    message=ERROR_MESSAGES["INTERNAL_ERROR"],
                    reason="stage_error",
                )
            duration_ms = (time.perf_counter() - started) * 1000

            self._record(state, action, outcome, duration_ms)

            if not outcome.passed:
                return GuardrailVerdict(
                    allowed=False,
                    request_id=state.request_id,
                    error_code=outcome.error_code,
                    error=outcome.message,
                    details=outcome.details,
                    reset_time=outcome.reset_time,
                )

            if outcome.text is not None:
                state.text = outcome.text

        return GuardrailVerdict(
            allowed=True,
            request_id=state.request_id,
            sanitized_message=state.text,
            pii_redacted=state.pii_redacted,
        )

    def validate_response(self, text: str, request_id: Optional[str] = None) -> ResponseCheck:
        """
        Sanitize model output before it is returned to the client.
        """
        started = time.perf_counter()
        warnings: List[str] = []

        if not isinstance(text, str):
            self._log_metric(request_id or "", "system", "response_validation",
                             GuardrailAction.ERROR, "invalid_response", started)
            return ResponseCheck(
                is_valid=False,
                sanitized_response=ERROR_MESSAGES["RESPONSE_ERROR"],
                warnings=["Response was not text"],
            )

        sanitized = sanitize_output(text, self.config.max_response_length)
        if len(text) > self.config.max_response_length:
            warnings.append("Response was truncated")

        self._log_metric(request_id or "", "system", "response_validation",
                         GuardrailAction.ALLOWED, None, started,
                         truncated=bool(warnings))
        return ResponseCheck(is_valid=True, sanitized_response=sanitized, warnings=warnings)

    def reset_rate_limit(self, identifier: str) -> bool:
        return self.rate_limiter.reset(identifier)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _check_rate_limit(self, state: _RequestState) -> StageOutcome:
        result = self.rate_limiter.check_limit(state.identifier, state.request_id)
        if result.allowed:
            return StageOutcome.ok(remaining=result.remaining)

        return StageOutcome(
            passed=False,
            error_code=GuardrailErrorCode.RATE_LIMIT_ERROR,
            message=ERROR_MESSAGES["RATE_LIMIT_EXCEEDED"],
            reason="rate_limit_exceeded",
            event_type=SecurityEventType.RATE_LIMIT_EXCEEDED,
            severity=Severity.MEDIUM,
            reset_time=result.reset_time,
            metadata={"retry_after": result.retry_after},
        )

    def _check_length(self, state: _RequestState) -> StageOutcome:
        if state.allow_empty and not state.text.strip():
            return StageOutcome.ok(text="")

        result = self.validator.validate_length(state.text)
        if result.is_valid:
            return StageOutcome.ok(text=result.sanitized_input)

        return StageOutcome(
            passed=False,
            error_code=GuardrailErrorCode.VALIDATION_ERROR,
            message=result.errors[0],
            reason="invalid_length",
            event_type=SecurityEventType.VALIDATION_FAILED,
            severity=Severity.LOW,
            metadata={"length": len(state.text)},
        )

    def _check_injection(self, state: _RequestState) -> StageOutcome:
        result = self.validator.check_injection(state.text)
        if result.is_valid:
            return StageOutcome.ok()

        return StageOutcome(
            passed=False,
            error_code=GuardrailErrorCode.SECURITY_ERROR,
            message=ERROR_MESSAGES["SECURITY_BLOCKED"],
            reason="injection_detected",
            event_type=SecurityEventType.INJECTION_ATTEMPT,
            severity=Severity.HIGH,
            metadata={"detectors": result.errors},
        )

    def _check_file(self, state: _RequestState) -> StageOutcome:
        if state.file is None:
            return StageOutcome.ok()

        result = self.validator.validate_file(
            state.file.data,
            state.file.mime_type,
            getattr(state.file, "name", None),
        )
        if result.is_valid:
            return StageOutcome.ok(mime_type=state.file.mime_type)

        return StageOutcome(
            passed=False,
            error_code=GuardrailErrorCode.VALIDATION_ERROR,
            message=result.errors[0],
            reason="invalid_file",
            event_type=SecurityEventType.VALIDATION_FAILED,
            severity=Severity.LOW,
            metadata={"mime_type": state.file.mime_type},
        )

    def _check_content(self, state: _RequestState) -> StageOutcome:
        result = self.content_filter.filter_content(state.text)
        if not result.is_clean:
            if "jailbreak" in result.flagged_categories:
                return StageOutcome(
                    passed=False,
                    error_code=GuardrailErrorCode.CONTENT_FILTER_ERROR,
                    message=ERROR_MESSAGES["JAILBREAK_DETECTED"],
                    reason="jailbreak_detected",
                    event_type=SecurityEventType.JAILBREAK_ATTEMPT,
                    severity=result.severity,
                    metadata={"categories": result.flagged_categories},
                )
            return StageOutcome(
                passed=False,
                error_code=GuardrailErrorCode.CONTENT_FILTER_ERROR,
                message=ERROR_MESSAGES["PROFANITY_DETECTED"],
                reason="profanity_detected",
                event_type=SecurityEventType.MALICIOUS_CONTENT,
                severity=result.severity,
                metadata={"categories": result.flagged_categories},
            )

        pii = self.content_filter.detect_pii(state.text)
        if pii.has_pii:
            state.pii_redacted = pii.detected_types
            self.telemetry.log_security_event(
                SecurityEvent(
                    type=SecurityEventType.PII_DETECTED,
                    severity=Severity.MEDIUM,
                    request_id=state.request_id,
                    identifier=state.identifier,
                    details={"types": pii.detected_types},
                    blocked=False,
                )
            )
            return StageOutcome.ok(text=pii.redacted_content, pii_types=pii.detected_types)

        return StageOutcome.ok()

    def _sanitize(self, state: _RequestState) -> StageOutcome:
        result = self.validator.sanitize(state.text)
        if not result.sanitized_input and not state.allow_empty:
            return StageOutcome(
                passed=False,
                error_code=GuardrailErrorCode.VALIDATION_ERROR,
                message=ERROR_MESSAGES["MESSAGE_TOO_SHORT"],
                reason="empty_after_sanitize",
            )
        return StageOutcome.ok(text=result.sanitized_input, modified=bool(result.warnings))

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def _record(
        self,
        state: _RequestState,
        action: str,
        outcome: StageOutcome,
        duration_ms: float,
    ) -> None:
        if outcome.passed:
            result = GuardrailAction.ALLOWED
        elif outcome.error_code is GuardrailErrorCode.INTERNAL_ERROR:
            result = GuardrailAction.ERROR
        else:
            result = GuardrailAction.BLOCKED

        self.telemetry.log_metric(
            GuardrailMetric(
                request_id=state.request_id,
                identifier=state.identifier,
                action=action,
                result=result,
                reason=outcome.reason,
                duration_ms=round(duration_ms, 3),
                metadata=outcome.metadata,
            )
        )

        if outcome.event_type is not None:
            self.telemetry.log_security_event(
                SecurityEvent(
                    type=outcome.event_type,
                    severity=outcome.severity,
                    request_id=state.request_id,
                    identifier=state.identifier,
                    details={"action": action, "reason": outcome.reason, **outcome.metadata},
                )
            )

    def _log_metric(
        self,
        request_id: str,
        identifier: str,
        action: str,
        result: GuardrailAction,
        reason: Optional[str],
        started: float,
        **metadata: Any,
    ) -> None:
        self.telemetry.log_metric(
            GuardrailMetric(
                request_id=request_id,
                identifier=identifier,
                action=action,
                result=result,
                reason=reason,
                duration_ms=round((time.perf_counter() - started) * 1000, 3),
                metadata=metadata,
            )
        )
