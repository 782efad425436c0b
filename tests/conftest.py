import sys
from pathlib import Path

import httpx
import pytest

# Allow `import navmarks` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _block_real_network(monkeypatch):
    """Tests must never reach the network; use httpx.MockTransport instead."""

    def _blocked(*_args, **_kwargs):
        raise AssertionError("Real HTTP request attempted during tests")

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", _blocked)


@pytest.fixture
def sample_html() -> str:
    return """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
    <DT><H3 ADD_DATE="1700000000" PERSONAL_TOOLBAR_FOLDER="true">书签栏</H3>
    <DL><p>
        <DT><A HREF="https://github.com/" ADD_DATE="1700000001">GitHub</A>
        <DT><A HREF="https://news.ycombinator.com/">Hacker News</A>
        <DT><H3>Dev</H3>
        <DL><p>
            <DT><A HREF="https://docs.python.org/3/">Python docs</A>
        </DL><p>
    </DL><p>
</DL><p>
"""
