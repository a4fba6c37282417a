"""
Rate Limiter

In-memory, per-identifier request limiting across three fixed windows:
the configured window, one minute and one hour. A request is admitted only
if every counter is below its cap; admitted requests increment all three.

State lives in process memory and is lost on restart. If the limiter
itself fails the request is admitted (fail open) and the failure logged.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .config import GuardrailConfig
from .types import RateLimitResult

logger = logging.getLogger("rag.guardrails.rate_limit")

MINUTE = 60.0
HOUR = 3600.0


@dataclass
class _Counter:
    count: int
    start: float


@dataclass
class _Entry:
    window: _Counter
    minute: _Counter
    hour: _Counter


class RateLimiter:
    """
    Thread-safe fixed-window rate limiter keyed by client identifier.

    Parameters
    ----------
    config : GuardrailConfig
        Supplies the window length and the three caps.
    clock : Callable[[], float]
        Returns the current time in epoch seconds. Injectable for tests.
    """

    def __init__(
        self,
        config: GuardrailConfig,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config
        self._clock = clock or time.time
        self._store: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_limit(
        self,
        identifier: str,
        request_id: Optional[str] = None,
    ) -> RateLimitResult:
        """
        Check and, if allowed, count a request for ``identifier``.
        """
        try:
            with self._lock:
                result = self._check_locked(identifier, self._clock())
        except Exception:
            logger.exception(
                "Rate limiter failure for %s (request_id=%s); allowing request",
                identifier,
                request_id,
            )
            return RateLimitResult(
                allowed=True,
                remaining=self.config.max_requests_per_window,
                reset_time=self._clock() + self.config.rate_limit_window,
            )

        if not result.allowed:
            logger.warning(
                "Rate limit exceeded for %s (request_id=%s), retry after %ss",
                identifier,
                request_id,
                result.retry_after,
            )
        return result

    def reset(self, identifier: str) -> bool:
        """Forget all counters for ``identifier``. Returns True if it existed."""
        with self._lock:
            return self._store.pop(identifier, None) is not None

    def cleanup(self) -> int:
        """
        Drop entries whose every counter has expired.

        Returns the number of removed identifiers.
        """
        max_age = max(float(self.config.rate_limit_window), HOUR)
        now = self._clock()
        with self._lock:
            stale = [
                key
                for key, entry in self._store.items()
                if now - entry.window.start > max_age
                and now - entry.minute.start > max_age
                and now - entry.hour.start > max_age
            ]
            for key in stale:
                del self._store[key]

        if stale:
            logger.debug("Rate limiter cleanup removed %d identifiers", len(stale))
        return len(stale)

    def get_stats(self, identifier: Optional[str] = None) -> Dict[str, Any]:
        """
        Current counters for one identifier, or the number of tracked
        identifiers when called without one.
        """
        with self._lock:
            if identifier is None:
                return {"tracked_identifiers": len(self._store)}

            entry = self._store.get(identifier)
            if entry is None:
                return {"identifier": identifier, "tracked": False}

            return {
                "identifier": identifier,
                "tracked": True,
                "window_count": entry.window.count,
                "minute_count": entry.minute.count,
                "hour_count": entry.hour.count,
                "remaining": max(0, self.config.max_requests_per_window - entry.window.count),
            }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_locked(self, identifier: str, now: float) -> RateLimitResult:
        cfg = self.config
        window = float(cfg.rate_limit_window)

        entry = self._store.get(identifier)
        if entry is None:
            entry = _Entry(
                window=_Counter(0, now),
                minute=_Counter(0, now),
                hour=_Counter(0, now),
            )
            self._store[identifier] = entry

        # Expired windows start over
        if now - entry.window.start >= window:
            entry.window = _Counter(0, now)
        if now - entry.minute.start >= MINUTE:
            entry.minute = _Counter(0, now)
        if now - entry.hour.start >= HOUR:
            entry.hour = _Counter(0, now)

        checks = (
            (entry.window, cfg.max_requests_per_window, window),
            (entry.minute, cfg.max_requests_per_minute, MINUTE),
            (entry.hour, cfg.max_requests_per_hour, HOUR),
        )
        for counter, cap, length in checks:
            if counter.count >= cap:
                reset_time = counter.start + length
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=reset_time,
                    retry_after=max(1, math.ceil(reset_time - now)),
                )

        entry.window.count += 1
        entry.minute.count += 1
        entry.hour.count += 1

        return RateLimitResult(
            allowed=True,
            remaining=cfg.max_requests_per_window - entry.window.count,
            reset_time=entry.window.start + window,
        )
