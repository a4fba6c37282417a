"""
Guardrail Configuration

Limits, feature toggles, detection patterns and user-facing messages for
the guardrail pipeline. ``GuardrailConfig`` is built from application
settings by default but can be constructed directly (e.g. in tests).
"""

from __future__ import annotations

import re
from typing import Dict, List, Pattern

from pydantic import BaseModel, ConfigDict, Field

from ..config import settings


class GuardrailConfig(BaseModel):
    """
    Tunable guardrail limits and toggles.
    """

    # Input validation
    max_message_length: int = Field(default=10000, ge=1)
    min_message_length: int = Field(default=1, ge=0)
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=0)
    allowed_file_types: List[str] = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/jpg",
            "image/png",
            "image/gif",
            "image/webp",
            "application/pdf",
        ]
    )

    # Rate limiting
    rate_limit_window: int = Field(default=60, ge=1)  # seconds
    max_requests_per_window: int = Field(default=10, ge=1)
    max_requests_per_minute: int = Field(default=10, ge=1)
    max_requests_per_hour: int = Field(default=100, ge=1)

    # Content filtering
    enable_profanity_filter: bool = True
    enable_pii_detection: bool = True
    enable_jailbreak_detection: bool = True

    # Security
    enable_xss_protection: bool = True
    enable_sql_injection_protection: bool = True

    # Response validation
    max_response_length: int = Field(default=50000, ge=1)

    # Telemetry
    enable_metrics: bool = True
    max_stored_metrics: int = Field(default=1000, ge=1)
    max_stored_events: int = Field(default=100, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_settings(cls) -> "GuardrailConfig":
        return cls(
            max_message_length=settings.max_message_length,
            min_message_length=settings.min_message_length,
            max_file_size=settings.max_file_size,
            allowed_file_types=list(settings.allowed_file_types),
            rate_limit_window=settings.rate_limit_window,
            max_requests_per_window=settings.max_requests_per_window,
            max_requests_per_minute=settings.max_requests_per_minute,
            max_requests_per_hour=settings.max_requests_per_hour,
            enable_profanity_filter=settings.enable_profanity_filter,
            enable_pii_detection=settings.enable_pii_detection,
            enable_jailbreak_detection=settings.enable_jailbreak_detection,
            enable_xss_protection=settings.enable_xss_protection,
            enable_sql_injection_protection=settings.enable_sql_injection_protection,
            max_response_length=settings.max_response_length,
            enable_metrics=settings.enable_guardrail_metrics,
            max_stored_metrics=settings.max_stored_metrics,
            max_stored_events=settings.max_stored_events,
        )


# ---------------------------------------------------------------------
# Detection Patterns
# ---------------------------------------------------------------------

PROFANITY_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(fuck|shit|damn|hell|bitch|bastard|crap|piss|ass)\b", re.IGNORECASE),
]

# Tuned to catch real injection attempts while keeping false positives on
# ordinary prose low: keywords alone never match, they need SQL structure.
SQL_INJECTION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(\bUNION\b.*\bSELECT\b)|(\bSELECT\b.*\bFROM\b.*\bWHERE\b)", re.IGNORECASE),
    re.compile(r"(\bDROP\b.*\bTABLE\b)|(\bDELETE\b.*\bFROM\b)|(\bINSERT\b.*\bINTO\b)", re.IGNORECASE),
    re.compile(r"(\bEXEC\b.*\()|(\bEXECUTE\b.*\()|(\bEXEC\b\s+\w+)", re.IGNORECASE),
    re.compile(r"(['\"].*--|--.*['\"]|/\*.*\*/.*['\"])", re.IGNORECASE),
    re.compile(
        r"(['\"].*\b(OR|AND)\b.*=.*['\"])|(\b(OR|AND)\b\s+['\"]?\d+['\"]?\s*=\s*['\"]?\d+['\"]?)",
        re.IGNORECASE,
    ),
    re.compile(r"('+\s*(OR|AND)\s+'+\s*=\s*'+)|(\"+\s*(OR|AND)\s+\"+\s*=\s*\"+)", re.IGNORECASE),
    re.compile(r";\s*(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC)", re.IGNORECASE),
    re.compile(r"(\\x[0-9a-f]{2}|%[0-9a-f]{2}).*\b(SELECT|UNION|INSERT|UPDATE|DELETE)", re.IGNORECASE),
]

XSS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),  # onclick=, onload=, ...
    re.compile(r"<embed\b", re.IGNORECASE),
    re.compile(r"<object\b", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
]

JAILBREAK_PATTERNS: List[Pattern[str]] = [
    re.compile(r"ignore (previous|above|all) (instructions|prompts|commands)", re.IGNORECASE),
    re.compile(r"you are (now|a) (DAN|unrestricted|unfiltered)", re.IGNORECASE),
    re.compile(r"forget (everything|all|your) (instructions|training|guidelines)", re.IGNORECASE),
    re.compile(r"act as if you (are|were)", re.IGNORECASE),
    re.compile(r"pretend (you are|to be|that you)", re.IGNORECASE),
    re.compile(r"system prompt|system message", re.IGNORECASE),
    re.compile(r"\[INST\]|\[/INST\]|<\|im_start\|>|<\|im_end\|>", re.IGNORECASE),
    re.compile(r"bypass (filter|restriction|limitation|guardrail)", re.IGNORECASE),
    re.compile(r"roleplay as", re.IGNORECASE),
    re.compile(r"developer mode|admin mode|god mode", re.IGNORECASE),
]

# Order matters: SSN and card numbers are redacted before the looser phone
# pattern gets a chance to match inside them.
PII_PATTERNS: Dict[str, Pattern[str]] = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "credit_card": re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
    "ip_address": re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
    "phone": re.compile(r"(?<!\w)(\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
}

PII_PLACEHOLDERS: Dict[str, str] = {
    "email": "[EMAIL_REDACTED]",
    "ssn": "[SSN_REDACTED]",
    "credit_card": "[CC_REDACTED]",
    "ip_address": "[IP_REDACTED]",
    "phone": "[PHONE_REDACTED]",
}


# ---------------------------------------------------------------------
# User-Facing Messages
# ---------------------------------------------------------------------

ERROR_MESSAGES: Dict[str, str] = {
    "MESSAGE_TOO_SHORT": "Message is too short. Please provide more detail.",
    "MESSAGE_TOO_LONG": "Message exceeds maximum length. Please shorten your message.",
    "FILE_TOO_LARGE": "File size exceeds the maximum allowed limit.",
    "INVALID_FILE_TYPE": "Invalid file type. Only images and PDFs are allowed.",
    "INVALID_FILE_NAME": "Invalid file name. Please rename the file and try again.",
    "INVALID_FILE_DATA": "The attached file could not be read.",
    "RATE_LIMIT_EXCEEDED": "Too many requests. Please wait before sending another message.",
    "PROFANITY_DETECTED": "Your message contains inappropriate language. Please rephrase.",
    "JAILBREAK_DETECTED": "Your message appears to attempt to bypass safety guidelines.",
    "SECURITY_BLOCKED": "Request blocked for security reasons.",
    "VALIDATION_FAILED": "Message validation failed. Please try again.",
    "INTERNAL_ERROR": "An internal error occurred. Please try again later.",
    "RESPONSE_TRUNCATED": "\n\n[Response truncated due to length]",
    "RESPONSE_ERROR": "An error occurred while processing the response.",
}
