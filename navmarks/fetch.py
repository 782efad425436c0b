from __future__ import annotations

import time
from typing import Optional

import httpx

from .log import get_logger

log = get_logger(__name__)


class FetchError(RuntimeError):
    pass


def fetch_html(
    url: str,
    *,
    timeout_s: int,
    user_agent: str,
    max_bytes: int,
    follow_redirects: bool = True,
    transport: Optional[httpx.BaseTransport] = None,
) -> str:
    """Download a bookmark export (e.g. the default bookmarks page) as text.

    Redirects are followed unless ``follow_redirects`` is off; any non-2xx
    final status (a redirect included) is an error. The body is
    cut at ``max_bytes`` before decoding.
    """
    t0 = time.time()
    timeout = httpx.Timeout(timeout_s, connect=timeout_s)
    headers = {"User-Agent": user_agent}
    try:
        with httpx.Client(follow_redirects=follow_redirects, headers=headers, timeout=timeout, transport=transport) as client:
            r = client.get(url)
    except httpx.HTTPError as e:
        raise FetchError(f"fetch of {url} failed: {e}") from e

    if not (200 <= r.status_code < 300):
        raise FetchError(f"fetch of {url} returned HTTP {r.status_code}")

    content = r.content[:max_bytes]
    log.info("Fetched %s (%d bytes, %d ms).", r.url, len(content), int((time.time() - t0) * 1000))
    return _decode_html(content, r.encoding)


def _decode_html(content: bytes, encoding: Optional[str]) -> str:
    try:
        return content.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")
