"""URL canonicalization used as the duplicate grouping key."""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit

LOGGER = logging.getLogger(__name__)

# Query parameters that identify the posting itself.
JOB_ID_PARAMS = frozenset(
    {"jk", "id", "jobid", "job_id", "positionid", "position_id", "req", "reqid"}
)

TRACKING_PARAMS = frozenset(
    {"ref", "source", "fbclid", "gclid", "msclkid", "_ga", "_gid"}
)
_TRACKING_PREFIXES = ("utm_",)


def _is_tracking_param(key: str) -> bool:
    return key in TRACKING_PARAMS or key.startswith(_TRACKING_PREFIXES)


def _keep_param(key: str, value: str) -> bool:
    lower_key = key.lower()
    if lower_key in JOB_ID_PARAMS:
        return True
    if _is_tracking_param(lower_key):
        return False
    return bool(value.strip())


def _strip_trailing_slashes(path: str) -> str:
    stripped = path.rstrip("/")
    return stripped or path[:1]


def _fallback(text: str) -> str:
    return _strip_trailing_slashes(text.lower())


def normalize(raw_url: object) -> str:
    """Return the comparison key for ``raw_url``.

    Malformed URLs are compared as near-literal strings (lowercased, trailing
    slash removed). Empty or non-string input yields ``""``.
    """

    if not isinstance(raw_url, str) or not raw_url:
        return ""

    text = raw_url.strip()
    if not text:
        return ""

    try:
        parts = urlsplit(text)
        netloc = parts.netloc
        # Accessing ``port`` validates it and raises ValueError when malformed.
        parts.port
    except ValueError:
        LOGGER.debug("Unable to parse URL '%s'; comparing as text", text)
        return _fallback(text)

    if not parts.scheme or not netloc:
        return _fallback(text)

    # "https://host" and "https://host/" share the root path.
    path = _strip_trailing_slashes(parts.path or "/")

    params = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if _keep_param(key, value)
    ]
    query = urlencode(params)

    host = netloc.rsplit("@", 1)[-1]
    normalized = f"{parts.scheme}://{host}{path}"
    if query:
        normalized = f"{normalized}?{query}"
    return normalized.lower()


def are_equivalent(first: object, second: object) -> bool:
    """Return True when both URLs share a non-empty normalized key."""

    key = normalize(first)
    return bool(key) and key == normalize(second)


__all__ = ["JOB_ID_PARAMS", "TRACKING_PARAMS", "are_equivalent", "normalize"]
