from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Optional

from .log import get_logger
from .model import ParsedEntry
from .url_norm import display_host, is_http_url

log = get_logger(__name__)

# Toolbar/root folder names browsers put at the top of an export. They never
# become a category on their own.
ROOT_FOLDER_NAMES = frozenset({"书签栏", "收藏夹栏", "bookmarks bar", "bookmarks"})

# One pass over the four token kinds we care about, in document order.
# Headings are matched whole, so anchors nested in heading text are swallowed.
_TOKEN_RE = re.compile(
    r"<h3\b[^>]*>(?P<heading>.*?)</h3\s*>"
    r"|(?P<dl_open><dl\b[^>]*>)"
    r"|(?P<dl_close></dl\s*>)"
    r"|<a\b(?P<attrs>[^>]*)>(?P<text>.*?)</a\s*>",
    re.IGNORECASE | re.DOTALL,
)
_HREF_RE = re.compile(
    r"""(?:^|\s)href\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"'>]+))""",
    re.IGNORECASE,
)
_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


def read_bookmarks_file(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def parse_bookmarks_html(text: str) -> List[ParsedEntry]:
    """Flatten a Netscape bookmark export into entries with a category label.

    Folder headings only take effect at the next ``<DL>``; ``</DL>`` closes the
    innermost open folder. Unbalanced markup is tolerated: a stray ``</DL>``
    is ignored and anchors without an http(s) href are dropped.
    """
    entries: List[ParsedEntry] = []
    stack: List[str] = []
    pending: Optional[str] = None
    skipped = 0

    for m in _TOKEN_RE.finditer(text or ""):
        if m.group("heading") is not None:
            pending = decode_text(m.group("heading"))
        elif m.group("dl_open") is not None:
            if pending is not None:
                stack.append(pending)
                pending = None
        elif m.group("dl_close") is not None:
            if stack:
                stack.pop()
        else:
            url = _extract_href(m.group("attrs") or "")
            if not url or not is_http_url(url):
                skipped += 1
                continue
            name = decode_text(m.group("text") or "") or display_host(url)
            entries.append(ParsedEntry(name=name, url=url, category=category_for(stack)))

    log.debug("Parsed %d bookmarks (%d anchors skipped, %d folders left open).", len(entries), skipped, len(stack))
    return entries


def decode_text(raw: str) -> str:
    text = _TAG_RE.sub("", raw or "")
    text = text.replace("&nbsp;", " ").replace("&amp;", "&")
    return _WS_RE.sub(" ", text).strip()


def category_for(stack: Iterable[str]) -> str:
    for name in reversed(list(stack)):
        label = (name or "").strip()
        if not label or label.lower() in ROOT_FOLDER_NAMES:
            continue
        return label
    return ""


def _extract_href(attrs: str) -> str:
    m = _HREF_RE.search(attrs)
    if m is None:
        return ""
    value = m.group("dq")
    if value is None:
        value = m.group("sq")
    if value is None:
        value = m.group("bare")
    return (value or "").strip()
