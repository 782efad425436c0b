from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .config import Settings
from .log import get_logger
from .model import SiteRecord

log = get_logger(__name__)


class StoreError(RuntimeError):
    """Backend read/write failure. Never retried."""


class Store(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def put(self, key: str, value: str) -> None:
        self.data[key] = value


class SqliteStore:
    """Key-value table in a single sqlite file; one connection per call."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._initialized = False

    def init(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"cannot open store {self.db_path}: {e}") from e
        self._initialized = True

    def get(self, key: str) -> Optional[str]:
        if not self._initialized:
            self.init()
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"read of {key!r} failed: {e}") from e
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        if not self._initialized:
            self.init()
        now = datetime.now(timezone.utc).isoformat()
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value=excluded.value,
                        updated_at=excluded.updated_at
                    """,
                    (key, value, now),
                )
        except sqlite3.Error as e:
            raise StoreError(f"write of {key!r} failed: {e}") from e


def open_store(settings: Settings) -> Store:
    backend = (settings.store_backend or "sqlite").lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqliteStore(Path(settings.store_path))
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def load_sites(store: Store, key: str) -> List[SiteRecord]:
    items = _load_json_array(store, key)
    return [SiteRecord.from_dict(item) for item in items if isinstance(item, dict)]


def save_sites(store: Store, key: str, sites: List[SiteRecord]) -> None:
    store.put(key, json.dumps([s.to_dict() for s in sites], ensure_ascii=False))
    log.info("Wrote %d sites to %s.", len(sites), key)


def load_categories(store: Store, key: str) -> List[str]:
    out: List[str] = []
    for item in _load_json_array(store, key):
        if isinstance(item, str) and item.strip() and item.strip() not in out:
            out.append(item.strip())
    return out


def save_categories(store: Store, key: str, categories: List[str]) -> None:
    store.put(key, json.dumps(categories, ensure_ascii=False))


def _load_json_array(store: Store, key: str) -> list:
    raw = store.get(key)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        # Corrupt document reads as an empty collection; the next write replaces it.
        log.warning("Stored value under %s is not valid JSON; treating it as empty.", key)
        return []
    if not isinstance(data, list):
        log.warning("Stored value under %s is not a JSON array; treating it as empty.", key)
        return []
    return data
