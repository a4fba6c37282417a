"""
Input Validator

Length, injection and attachment checks for incoming chat requests.
"""

from __future__ import annotations

import base64
import binascii
from typing import Optional

from .config import ERROR_MESSAGES, GuardrailConfig
from .security_filters import (
    detect_sql_injection,
    detect_xss,
    sanitize_file_name,
    sanitize_input,
)
from .types import ValidationResult


class InputValidator:
    def __init__(self, config: GuardrailConfig) -> None:
        self.config = config

    def validate_length(self, message: str) -> ValidationResult:
        """
        Check the trimmed message length against the configured bounds.
        """
        if not isinstance(message, str):
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["VALIDATION_FAILED"]])

        trimmed = message.strip()
        if len(trimmed) < max(1, self.config.min_message_length):
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["MESSAGE_TOO_SHORT"]])
        if len(message) > self.config.max_message_length:
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["MESSAGE_TOO_LONG"]])

        return ValidationResult(is_valid=True, sanitized_input=trimmed)

    def check_injection(self, message: str) -> ValidationResult:
        """
        Run the enabled script and SQL injection detectors.

        ``errors`` holds the internal detector names, never shown to users.
        """
        errors = []
        if self.config.enable_xss_protection and detect_xss(message):
            errors.append("xss")
        if self.config.enable_sql_injection_protection and detect_sql_injection(message):
            errors.append("sql_injection")
        return ValidationResult(is_valid=not errors, errors=errors)

    def validate_file(
        self,
        data: str,
        mime_type: str,
        file_name: Optional[str] = None,
    ) -> ValidationResult:
        """
        Validate a base64 attachment: MIME allow-list, decoded size and name.
        """
        if mime_type not in self.config.allowed_file_types:
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["INVALID_FILE_TYPE"]])

        try:
            size = len(base64.b64decode(data, validate=True))
        except (binascii.Error, ValueError):
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["INVALID_FILE_DATA"]])

        if size > self.config.max_file_size:
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["FILE_TOO_LARGE"]])

        if file_name is not None and sanitize_file_name(file_name) != file_name:
            return ValidationResult(is_valid=False, errors=[ERROR_MESSAGES["INVALID_FILE_NAME"]])

        return ValidationResult(is_valid=True)

    def sanitize(self, message: str) -> ValidationResult:
        cleaned = sanitize_input(message)
        warnings = ["Input was sanitized"] if cleaned != message else []
        return ValidationResult(is_valid=True, warnings=warnings, sanitized_input=cleaned)
