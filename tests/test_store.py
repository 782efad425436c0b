import json
import sqlite3
from pathlib import Path

import pytest

from navmarks.config import Settings
from navmarks.model import SiteRecord
from navmarks.store import (
    MemoryStore,
    SqliteStore,
    StoreError,
    load_categories,
    load_sites,
    open_store,
    save_categories,
    save_sites,
)


def test_sqlite_store_get_put_roundtrip(tmp_path: Path):
    store = SqliteStore(tmp_path / "state" / "nav.sqlite")
    assert store.get("all_sites") is None

    store.put("all_sites", "[1]")
    store.put("all_sites", "[2]")
    assert store.get("all_sites") == "[2]"

    with sqlite3.connect(tmp_path / "state" / "nav.sqlite") as conn:
        rows = conn.execute("SELECT key, value FROM kv").fetchall()
    assert rows == [("all_sites", "[2]")]


def test_sqlite_store_wraps_backend_errors(tmp_path: Path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    store = SqliteStore(blocker / "nav.sqlite")
    with pytest.raises(StoreError):
        store.put("k", "v")


def test_sites_roundtrip_keeps_unknown_keys_and_unicode():
    store = MemoryStore()
    sites = [
        SiteRecord(id="1", name="知乎", url="https://www.zhihu.com/", category="社区", created_at="2025-01-01T00:00:00Z"),
        SiteRecord(id="2", name="Old", url="#", extra={"isPlaceholder": True}),
    ]
    save_sites(store, "all_sites", sites)

    raw = store.get("all_sites")
    assert "知乎" in raw
    doc = json.loads(raw)
    assert doc[0]["createdAt"] == "2025-01-01T00:00:00Z"
    assert doc[1]["isPlaceholder"] is True

    assert load_sites(store, "all_sites") == sites


@pytest.mark.parametrize("raw", [None, "", "{not json", '{"a": 1}', "42"])
def test_unusable_document_reads_as_empty(raw):
    store = MemoryStore({} if raw is None else {"all_sites": raw})
    assert load_sites(store, "all_sites") == []


def test_non_object_items_are_dropped():
    store = MemoryStore({"all_sites": json.dumps([{"id": "1", "name": "A", "url": "https://a"}, "junk", 3])})
    sites = load_sites(store, "all_sites")
    assert [s.id for s in sites] == ["1"]


def test_categories_are_trimmed_and_deduplicated():
    store = MemoryStore({"c": json.dumps([" Dev ", "Dev", "", 5, "News"])})
    assert load_categories(store, "c") == ["Dev", "News"]
    save_categories(store, "c", ["A"])
    assert json.loads(store.get("c")) == ["A"]


def test_open_store_selects_backend(tmp_path: Path):
    s = Settings()
    s.store_backend = "memory"
    assert isinstance(open_store(s), MemoryStore)

    s.store_backend = "SQLite"
    s.store_path = str(tmp_path / "x.sqlite")
    assert isinstance(open_store(s), SqliteStore)

    s.store_backend = "redis"
    with pytest.raises(ValueError):
        open_store(s)
