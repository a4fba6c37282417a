"""
Security Filters

Pattern-based detectors for script injection and SQL injection, plus the
sanitizers applied to user input, file names and model output.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Optional
from urllib.parse import urlparse

from .config import (
    ERROR_MESSAGES,
    SQL_INJECTION_PATTERNS,
    XSS_PATTERNS,
)

# Control characters except \t, \n and \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_UNSAFE_FILE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]*|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+))*\.?$")


def detect_xss(text: str) -> bool:
    """True if ``text`` contains a script-injection pattern."""
    return any(p.search(text) for p in XSS_PATTERNS)


def detect_sql_injection(text: str) -> bool:
    """True if ``text`` contains a SQL-injection pattern."""
    return any(p.search(text) for p in SQL_INJECTION_PATTERNS)


def sanitize_input(text: str) -> str:
    """
    Remove null bytes and control characters, then trim.

    Newlines and tabs are preserved so multi-line questions keep their shape.
    """
    return _CONTROL_CHARS.sub("", text).strip()


def sanitize_file_name(file_name: str) -> str:
    """
    Neutralize path traversal and unusual characters in a file name.
    """
    cleaned = file_name.replace("\x00", "")
    cleaned = cleaned.replace("..", "")
    cleaned = re.sub(r"[/\\]", "", cleaned)
    return _UNSAFE_FILE_NAME_CHARS.sub("_", cleaned)


def sanitize_output(text: str, max_length: Optional[int] = None) -> str:
    """
    Strip control characters from model output and enforce a length cap.

    Truncated output ends with a visible marker.
    """
    cleaned = _CONTROL_CHARS.sub("", text).strip()
    if max_length is not None and len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + ERROR_MESSAGES["RESPONSE_TRUNCATED"]
    return cleaned


def is_safe_crawl_url(url: str) -> bool:
    """
    Accept only http(s) URLs whose host is not a literal private,
    loopback or link-local address.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False

    host = parsed.hostname.lower()
    if host == "localhost" or host.endswith(".localhost"):
        return False

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        # inet_aton forms such as 2130706433, 0x7f000001 or 0x7f.1 resolve to IPs
        return not _NUMERIC_HOST.match(host)

    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )
