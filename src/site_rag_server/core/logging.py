"""
Logging Setup

All modules log through named standard-library loggers under the ``rag``
namespace (``rag.app``, ``rag.crawler``, ``rag.guardrails`` ...). This module
only installs the root handler and level once at application startup.
"""

from __future__ import annotations

import logging

from ..config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging for the service.

    Safe to call more than once; ``logging.basicConfig`` is a no-op when the
    root logger already has handlers.
    """
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("rag").setLevel(resolved)

    # httpx logs every request at INFO, which drowns out ingestion progress.
    logging.getLogger("httpx").setLevel(logging.WARNING)
