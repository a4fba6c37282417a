"""
Guardrail Admin Routes

Read-only views over the in-memory guardrail telemetry, and a manual
rate-limit reset for support cases.

Security
--------
All endpoints are protected by `verify_admin` which requires:
- `x-admin-key` header OR
- `key` query parameter

The telemetry buffers are bounded and process-local: they reset on restart
and each worker process has its own.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .dependencies import get_guardrails, verify_admin
from .models import (
    GuardrailSummaryResponse,
    MetricsResponse,
    RateLimitResetRequest,
    RateLimitResetResponse,
    SecurityEventsResponse,
)
from ..guardrails import GuardrailAction, GuardrailPipeline, SecurityEventType, Severity

router = APIRouter(
    prefix="/guardrails",
    tags=["guardrails"],
    dependencies=[Depends(verify_admin)],
)


def _since(minutes: Optional[int]) -> Optional[datetime]:
    if minutes is None:
        return None
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    limit: int = Query(100, ge=1, le=1000),
    action: Optional[str] = Query(None),
    result: Optional[GuardrailAction] = Query(None),
    since_minutes: Optional[int] = Query(None, ge=1),
    guardrails: GuardrailPipeline = Depends(get_guardrails),
):
    """
    Most recent guardrail stage outcomes, newest first.
    """
    metrics = guardrails.telemetry.get_metrics(
        limit=limit,
        action=action,
        result=result,
        since=_since(since_minutes),
    )
    return MetricsResponse(count=len(metrics), metrics=metrics)


@router.get("/events", response_model=SecurityEventsResponse)
async def get_security_events(
    limit: int = Query(50, ge=1, le=1000),
    event_type: Optional[SecurityEventType] = Query(None, alias="type"),
    severity: Optional[Severity] = Query(None),
    since_minutes: Optional[int] = Query(None, ge=1),
    guardrails: GuardrailPipeline = Depends(get_guardrails),
):
    """
    Most recent security events, newest first.
    """
    events = guardrails.telemetry.get_security_events(
        limit=limit,
        event_type=event_type,
        severity=severity,
        since=_since(since_minutes),
    )
    return SecurityEventsResponse(count=len(events), events=events)


@router.get("/summary", response_model=GuardrailSummaryResponse)
async def get_summary(
    window_minutes: int = Query(60, ge=1, le=24 * 60),
    guardrails: GuardrailPipeline = Depends(get_guardrails),
):
    """
    Aggregates over the last ``window_minutes``.
    """
    return GuardrailSummaryResponse(
        generated_at=datetime.now(timezone.utc),
        metrics=guardrails.telemetry.get_metrics_summary(window_minutes),
        security=guardrails.telemetry.get_security_summary(window_minutes),
        rate_limiter=guardrails.rate_limiter.get_stats(),
    )


@router.post("/rate-limit/reset", response_model=RateLimitResetResponse)
async def reset_rate_limit(
    req: RateLimitResetRequest,
    guardrails: GuardrailPipeline = Depends(get_guardrails),
):
    return RateLimitResetResponse(
        identifier=req.identifier,
        reset=guardrails.reset_rate_limit(req.identifier),
    )
