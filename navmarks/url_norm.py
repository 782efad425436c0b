from __future__ import annotations

import re
from urllib.parse import urlparse

_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_http_url(url: str) -> bool:
    return bool(_HTTP_RE.match(url or ""))


def normalize_url(url: str) -> str:
    """Make a user-entered URL absolute; bare hosts get an https:// scheme."""
    value = (url or "").strip()
    if not value or is_http_url(value):
        return value
    return f"https://{value}"


def display_host(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host
