"""
Guardrail Telemetry

Bounded in-memory ring buffers of guardrail metrics and security events,
plus aggregate views for the admin endpoints. The oldest entries are
evicted once a buffer is full.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional

from .config import GuardrailConfig
from .types import (
    GuardrailAction,
    GuardrailMetric,
    SecurityEvent,
    SecurityEventType,
    Severity,
)

logger = logging.getLogger("rag.guardrails.telemetry")


class GuardrailTelemetry:
    def __init__(self, config: GuardrailConfig) -> None:
        self.config = config
        self._metrics: Deque[GuardrailMetric] = deque(maxlen=config.max_stored_metrics)
        self._events: Deque[SecurityEvent] = deque(maxlen=config.max_stored_events)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log_metric(self, metric: GuardrailMetric) -> None:
        if not self.config.enable_metrics:
            return

        with self._lock:
            self._metrics.append(metric)

        if metric.result is GuardrailAction.BLOCKED:
            logger.warning(
                "Guardrail blocked: action=%s reason=%s request_id=%s",
                metric.action,
                metric.reason,
                metric.request_id,
            )
        elif metric.result is GuardrailAction.ERROR:
            logger.error(
                "Guardrail error: action=%s reason=%s request_id=%s",
                metric.action,
                metric.reason,
                metric.request_id,
            )

    def log_security_event(self, event: SecurityEvent) -> None:
        with self._lock:
            self._events.append(event)

        log = logger.error if event.severity in (Severity.HIGH, Severity.CRITICAL) else logger.warning
        log(
            "Security event: type=%s severity=%s identifier=%s",
            event.type.value,
            event.severity.value,
            event.identifier,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_metrics(
        self,
        limit: int = 100,
        action: Optional[str] = None,
        result: Optional[GuardrailAction] = None,
        since: Optional[datetime] = None,
    ) -> List[GuardrailMetric]:
        """Most recent metrics first, optionally filtered."""
        with self._lock:
            items = list(self._metrics)

        if action:
            items = [m for m in items if m.action == action]
        if result:
            items = [m for m in items if m.result == result]
        if since:
            items = [m for m in items if m.timestamp >= since]

        items.reverse()
        return items[: max(0, limit)]

    def get_security_events(
        self,
        limit: int = 50,
        event_type: Optional[SecurityEventType] = None,
        severity: Optional[Severity] = None,
        since: Optional[datetime] = None,
    ) -> List[SecurityEvent]:
        """Most recent events first, optionally filtered."""
        with self._lock:
            items = list(self._events)

        if event_type:
            items = [e for e in items if e.type == event_type]
        if severity:
            items = [e for e in items if e.severity == severity]
        if since:
            items = [e for e in items if e.timestamp >= since]

        items.reverse()
        return items[: max(0, limit)]

    def get_metrics_summary(self, time_window_minutes: int = 60) -> Dict[str, Any]:
        since = datetime.now(timezone.utc) - timedelta(minutes=time_window_minutes)
        with self._lock:
            recent = [m for m in self._metrics if m.timestamp >= since]

        total = len(recent)
        allowed = sum(1 for m in recent if m.result is GuardrailAction.ALLOWED)
        blocked = sum(1 for m in recent if m.result is GuardrailAction.BLOCKED)
        errors = sum(1 for m in recent if m.result is GuardrailAction.ERROR)

        return {
            "time_window_minutes": time_window_minutes,
            "total": total,
            "allowed": allowed,
            "blocked": blocked,
            "errors": errors,
            "allowed_percentage": round(allowed / total * 100, 2) if total else 0.0,
            "avg_duration_ms": (
                round(sum(m.duration_ms for m in recent) / total, 2) if total else 0.0
            ),
            "action_counts": dict(Counter(m.action for m in recent)),
        }

    def get_security_summary(self, time_window_minutes: int = 60) -> Dict[str, Any]:
        since = datetime.now(timezone.utc) - timedelta(minutes=time_window_minutes)
        with self._lock:
            recent = [e for e in self._events if e.timestamp >= since]

        return {
            "time_window_minutes": time_window_minutes,
            "total": len(recent),
            "by_type": dict(Counter(e.type.value for e in recent)),
            "by_severity": dict(Counter(e.severity.value for e in recent)),
            "blocked": sum(1 for e in recent if e.blocked),
        }

    def cleanup(self, older_than: timedelta = timedelta(hours=24)) -> int:
        """
        Drop metrics and events older than ``older_than``.

        Returns the number of removed records.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        with self._lock:
            before = len(self._metrics) + len(self._events)
            self._metrics = deque(
                (m for m in self._metrics if m.timestamp >= cutoff),
                maxlen=self.config.max_stored_metrics,
            )
            self._events = deque(
                (e for e in self._events if e.timestamp >= cutoff),
                maxlen=self.config.max_stored_events,
            )
            return before - len(self._metrics) - len(self._events)
