"""
Log helpers for crawl workers.

Crawl payloads can carry session cookies and auth headers for the site being
scanned, queue responses carry receipt handles, and seed URLs sometimes carry
access tokens in their query string. Everything that reaches CloudWatch Logs
from a handler event or crawl payload goes through safe_log_event() first.
"""

import logging
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# Matched as substrings of the lowercased key, so "token" covers "lease_token"
DEFAULT_SENSITIVE_KEYS = frozenset(
    {
        "cookie",
        "authorization",
        "token",
        "receipt",
        "password",
        "secret",
        "credential",
        "api_key",
        "apikey",
    }
)

MASK = "***"
MAX_LOGGED_ERROR_LENGTH = 500


def _is_sensitive(key: str, sensitive_keys: frozenset[str]) -> bool:
    lowered = key.lower()
    return any(s in lowered for s in sensitive_keys)


def redact_url(url: str, sensitive_keys: frozenset[str] | None = None) -> str:
    """Mask sensitive query parameters, e.g. ?access_token=... in a seed URL."""
    sensitive_keys = DEFAULT_SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys
    parts = urlsplit(url)
    if not parts.query:
        return url

    query = [
        (name, MASK if _is_sensitive(name, sensitive_keys) else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def mask_value(key: str, value: Any, sensitive_keys: frozenset[str] | None = None) -> Any:
    """
    Mask value when key names a credential, recursing into dicts and lists.

    Long secrets keep a short prefix and their length so two log lines can be
    told apart; short ones are replaced entirely. Values under a "url" key
    have their sensitive query parameters masked.
    """
    sensitive_keys = DEFAULT_SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys

    if _is_sensitive(key, sensitive_keys):
        if isinstance(value, str):
            return f"{value[:6]}...({len(value)} chars)" if len(value) > 20 else MASK
        if isinstance(value, (list, dict)):
            return f"[{type(value).__name__}: masked]"
        return MASK

    if isinstance(value, dict):
        return {k: mask_value(k, v, sensitive_keys) for k, v in value.items()}
    if isinstance(value, list):
        # List items inherit the parent key
        return [mask_value(key, item, sensitive_keys) for item in value]
    if isinstance(value, str) and "url" in key.lower():
        return redact_url(value, sensitive_keys)
    return value


def safe_log_event(
    event: dict[str, Any],
    sensitive_keys: frozenset[str] | None = None,
) -> dict[str, Any]:
    """
    Copy of event with credentials masked, for logging.

    Example:
        ```python
        logger.info(f"Enqueue request: {safe_log_event(event)}")
        # {"url": "https://example.com/?access_token=***", "user_data": {"cookies": "[dict: masked]"}}
        ```
    """
    if not isinstance(event, dict):
        return {"_raw": str(event)[:100]}

    try:
        return {k: mask_value(k, v, sensitive_keys) for k, v in event.items()}
    except Exception as e:
        # Never fall back to the raw event
        logger.warning(f"Failed to mask event: {e}")
        return {"_error": "Could not safely serialize event", "_keys": list(event.keys())[:10]}


def log_summary(
    operation: str,
    *,
    success: bool = True,
    duration_ms: float | None = None,
    item_count: int | None = None,
    error: str | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """
    One-line structured record for a worker operation.

    Scalar fields are kept as-is, sequences are reduced to their length and
    anything else (dicts, payload objects) is left out.

    Example:
        ```python
        logger.info(log_summary("crawl_attempt", success=False, request_id=request.id))
        ```
    """
    summary: dict[str, Any] = {"operation": operation, "success": success}

    if duration_ms is not None:
        summary["duration_ms"] = round(duration_ms, 2)
    if item_count is not None:
        summary["item_count"] = item_count
    if error:
        summary["error"] = error[:MAX_LOGGED_ERROR_LENGTH]

    for name, value in fields.items():
        if isinstance(value, (str, int, float, bool)):
            summary[name] = value
        elif isinstance(value, (list, tuple)):
            summary[name] = len(value)

    return summary
