"""Credential-safe logging utilities for music-search.

Discogs credentials travel as query parameters and Spotify's client secret is
part of the token exchange, so URLs and payloads must be scrubbed before they
reach a log handler:
- URL query redaction
- Sensitive field redaction
- A formatter that applies both to every record
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

import httpx

# Fields that should be redacted in logs
REDACT_FIELDS = frozenset(
    {
        "secret",
        "token",
        "key",
        "api_key",
        "authorization",
        "access_token",
        "client_secret",
        "password",
    }
)

# Query parameters carrying credentials
REDACT_PARAMS = frozenset({"key", "secret", "token", "access_token", "client_secret"})

_URL_PATTERN = re.compile(r"https?://[^\s'\"]+")


def redact_value(value: str, visible_chars: int = 4) -> str:
    """Redact a sensitive value, showing only first few characters.

    Args:
        value: Value to redact
        visible_chars: Number of characters to show

    Returns:
        Redacted string (e.g., "abcd***")
    """
    if len(value) <= visible_chars:
        return "***"
    return f"{value[:visible_chars]}***"


def redact_url(url: str | httpx.URL) -> str:
    """Mask credential query parameters in a URL.

    Args:
        url: URL string or httpx.URL

    Returns:
        URL string with key/secret/token values replaced by "***"
    """
    parsed = httpx.URL(str(url))
    if not parsed.query:
        return str(parsed)

    params = [
        (name, "***" if name.lower() in REDACT_PARAMS else value)
        for name, value in parsed.params.multi_items()
    ]
    return str(parsed.copy_with(params=params))


def redact_dict(
    data: Mapping[str, Any],
    redact_fields: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Recursively redact sensitive fields in a mapping.

    Field names are matched exactly (case-insensitive); `*_secret` and
    `*_token` suffixes are redacted too. `spotify_id` and friends are kept.
    """
    if redact_fields is None:
        redact_fields = REDACT_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        should_redact = key_lower in redact_fields or key_lower.endswith(("_secret", "_token"))

        if should_redact and isinstance(value, str):
            result[key] = redact_value(value)
        elif isinstance(value, Mapping):
            result[key] = redact_dict(value, redact_fields)
        elif isinstance(value, list):
            result[key] = [
                redact_dict(item, redact_fields) if isinstance(item, Mapping) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def sanitize_message(message: str) -> str:
    """Redact credentials from every URL embedded in a log message."""
    return _URL_PATTERN.sub(lambda m: redact_url(m.group(0)), message)


class SafeLogFormatter(logging.Formatter):
    """Log formatter that scrubs credentials from messages and arguments."""

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the untouched record
        record = logging.makeLogRecord(record.__dict__)
        record.msg = sanitize_message(str(record.msg))
        if record.args:
            record.args = self._sanitize_args(record.args)
        return super().format(record)

    def _sanitize_args(self, args: tuple[Any, ...] | Mapping[str, Any]) -> Any:
        if isinstance(args, Mapping):
            return {k: self._sanitize_value(v) for k, v in args.items()}
        return tuple(self._sanitize_value(arg) for arg in args)

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, httpx.URL):
            return redact_url(value)
        if isinstance(value, str) and "://" in value:
            return sanitize_message(value)
        if isinstance(value, Mapping):
            return redact_dict(value)
        return value


def configure_safe_logging(
    level: int | str = logging.WARNING,
    format_string: str | None = None,
) -> None:
    """Configure root logging with credential-safe formatting.

    Args:
        level: Logging level (int or name such as "INFO")
        format_string: Optional custom format string
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(SafeLogFormatter(fmt=format_string))

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, SafeLogFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)


## Tests


def test_redact_url_masks_credentials():
    url = "https://api.discogs.com/database/search?q=abba&key=KEY123&secret=SECRET456"
    redacted = redact_url(url)
    assert "KEY123" not in redacted
    assert "SECRET456" not in redacted
    assert "q=abba" in redacted


def test_redact_dict_keeps_provider_ids():
    data = {"spotify_id": "abc", "client_secret": "supersecret", "nested": {"token": "tok-12345"}}
    redacted = redact_dict(data)
    assert redacted["spotify_id"] == "abc"
    assert redacted["client_secret"] == "supe***"
    assert redacted["nested"]["token"] == "tok-***"


def test_safe_log_formatter_scrubs_message():
    formatter = SafeLogFormatter(fmt="%(message)s")
    record = logging.LogRecord(
        name="test",
        level=logging.ERROR,
        pathname="",
        lineno=0,
        msg="GET %s failed",
        args=("https://api.discogs.com/artists/1?key=abc&secret=def",),
        exc_info=None,
    )
    formatted = formatter.format(record)
    assert "secret=def" not in formatted
    assert "artists/1" in formatted
