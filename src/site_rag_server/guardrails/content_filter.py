"""
Content Filter

Profanity and jailbreak detection, and PII detection/redaction.
"""

from __future__ import annotations

import logging
from typing import List

from .config import (
    GuardrailConfig,
    JAILBREAK_PATTERNS,
    PII_PATTERNS,
    PII_PLACEHOLDERS,
    PROFANITY_PATTERNS,
)
from .types import ContentFilterResult, PIIDetectionResult, Severity

logger = logging.getLogger("rag.guardrails.content")


class ContentFilter:
    def __init__(self, config: GuardrailConfig) -> None:
        self.config = config

    def filter_content(self, content: str) -> ContentFilterResult:
        """
        Flag profanity and jailbreak attempts.

        Jailbreak attempts are high severity and always block. Profanity is
        medium severity.
        """
        flagged: List[str] = []
        severity = Severity.LOW

        if self.config.enable_jailbreak_detection and self.detect_jailbreak(content):
            flagged.append("jailbreak")
            severity = Severity.HIGH

        if self.config.enable_profanity_filter and self.detect_profanity(content):
            flagged.append("profanity")
            if severity is Severity.LOW:
                severity = Severity.MEDIUM

        return ContentFilterResult(
            is_clean=not flagged,
            flagged_categories=flagged,
            severity=severity,
            filtered_content=content,
        )

    def detect_pii(self, content: str) -> PIIDetectionResult:
        """
        Detect and redact PII. Redaction replaces each match with a
        type-specific placeholder.
        """
        if not self.config.enable_pii_detection:
            return PIIDetectionResult(has_pii=False, redacted_content=content)

        detected: List[str] = []
        redacted = content
        for pii_type, pattern in PII_PATTERNS.items():
            redacted, count = pattern.subn(PII_PLACEHOLDERS[pii_type], redacted)
            if count:
                detected.append(pii_type)

        if detected:
            logger.info("PII detected and redacted: %s", ", ".join(detected))

        return PIIDetectionResult(
            has_pii=bool(detected),
            detected_types=detected,
            redacted_content=redacted,
        )

    @staticmethod
    def detect_jailbreak(content: str) -> bool:
        return any(p.search(content) for p in JAILBREAK_PATTERNS)

    @staticmethod
    def detect_profanity(content: str) -> bool:
        return any(p.search(content) for p in PROFANITY_PATTERNS)
