from __future__ import annotations

import dataclasses
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import Settings
from .fetch import fetch_html
from .log import get_logger
from .merge import merge_unique, new_site_id, utc_now_iso
from .model import MergeResult, SiteRecord
from .parse_netscape import ROOT_FOLDER_NAMES, parse_bookmarks_html
from .store import Store, load_categories, load_sites, save_categories, save_sites
from .url_norm import normalize_url

log = get_logger(__name__)

ALL_CATEGORIES = "全部"
UNCATEGORIZED = "未分类"
UNNAMED_SITE = "未命名站点"

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


class InputError(ValueError):
    """Rejected request payload; nothing was written."""


class SiteNotFound(KeyError):
    pass


class SitePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    url: str
    category: Optional[str] = ""

    @field_validator("name", "url")
    @classmethod
    def _required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("category")
    @classmethod
    def _trim_category(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class SiteUpdate(SitePayload):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    created_at: Optional[str] = Field(None, alias="createdAt")


def _validate(model, data: Any):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InputError(_short_validation_message(e)) from e


def _short_validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def _writer_lock(key: str) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.Lock()
        return lock


class SiteService:
    """Read-modify-write operations on the stored site collection.

    Every mutation reads the whole document, computes the new list and writes
    it back with a single ``put``. Writers on the same collection key are
    serialized within the process.
    """

    def __init__(self, store: Store, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or Settings()
        self.key = self.settings.collection_key
        self.categories_key = self.settings.categories_key

    def list_sites(self) -> List[SiteRecord]:
        return load_sites(self.store, self.key)

    def catalog(self) -> Dict[str, Any]:
        sites = self.list_sites()
        return {
            "sites": clean_sites(sites),
            "categories": self._categories(sites),
        }

    def add_site(self, payload: Any) -> SiteRecord:
        data = _validate(SitePayload, payload)
        with _writer_lock(self.key):
            sites = load_sites(self.store, self.key)
            used = {s.id for s in sites}
            site_id = new_site_id()
            while site_id in used:
                site_id = new_site_id()
            site = SiteRecord(
                id=site_id,
                name=data.name,
                url=normalize_url(data.url),
                category=data.category,
                created_at=utc_now_iso(),
            )
            sites.append(site)
            save_sites(self.store, self.key, sites)
        log.info("Added site %s (%s).", site.name, site.url)
        return site

    def update_site(self, payload: Any) -> List[SiteRecord]:
        data = _validate(SiteUpdate, payload)
        with _writer_lock(self.key):
            sites = load_sites(self.store, self.key)
            for i, old in enumerate(sites):
                if old.id == data.id:
                    break
            else:
                raise SiteNotFound(data.id)
            sites[i] = SiteRecord(
                id=old.id,
                name=data.name,
                url=normalize_url(data.url),
                category=data.category,
                created_at=data.created_at or old.created_at,
                extra=old.extra,
            )
            save_sites(self.store, self.key, sites)
        log.info("Updated site %s.", data.id)
        return sites

    def delete_sites(self, ids: Iterable[str]) -> int:
        drop = {str(i) for i in ids}
        if not drop:
            return 0
        with _writer_lock(self.key):
            sites = load_sites(self.store, self.key)
            kept = [s for s in sites if s.id not in drop]
            removed = len(sites) - len(kept)
            if removed:
                save_sites(self.store, self.key, kept)
        log.info("Deleted %d sites.", removed)
        return removed

    def add_category(self, name: str) -> List[str]:
        label = (name or "").strip()
        if not label:
            raise InputError("category: must not be empty")
        if label.lower() in ROOT_FOLDER_NAMES:
            raise InputError(f"category: {label} is a browser root folder name")
        with _writer_lock(self.key):
            sites = load_sites(self.store, self.key)
            if label in self._categories(sites):
                log.info("Category %s already exists.", label)
                return self._categories(sites)
            persisted = load_categories(self.store, self.categories_key)
            persisted.append(label)
            save_categories(self.store, self.categories_key, persisted)
            categories = self._categories(sites)
        log.info("Added category %s.", label)
        return categories

    def import_html(self, html: Optional[str]) -> MergeResult:
        if not html or not html.strip():
            raise InputError("No HTML content provided")
        entries = parse_bookmarks_html(html)
        with _writer_lock(self.key):
            existing = load_sites(self.store, self.key)
            result = merge_unique(existing, entries)
            if result.imported_count:
                save_sites(self.store, self.key, result.merged)
        log.info(
            "Import finished: %d parsed, %d imported, %d skipped.",
            len(entries),
            result.imported_count,
            result.skipped_count,
        )
        return result

    def import_url(self, url: str, *, follow_redirects: bool = True) -> MergeResult:
        target = normalize_url(url)
        if not target:
            raise InputError("url: must not be empty")
        html = fetch_html(
            target,
            timeout_s=self.settings.fetch_timeout_s,
            user_agent=self.settings.fetch_user_agent,
            max_bytes=self.settings.fetch_max_bytes,
            follow_redirects=follow_redirects,
        )
        return self.import_html(html)

    def _categories(self, sites: Iterable[SiteRecord]) -> List[str]:
        out: List[str] = []
        names = load_categories(self.store, self.categories_key) + [(s.category or "").strip() for s in sites]
        for name in names:
            if not name or name.lower() in ROOT_FOLDER_NAMES or name in out:
                continue
            out.append(name)
        return out


def clean_sites(raw: Iterable[SiteRecord]) -> List[SiteRecord]:
    """Drop placeholder rows and tidy the rest for display."""
    out: List[SiteRecord] = []
    for s in raw:
        if not s.url or s.url == "#" or s.extra.get("isPlaceholder"):
            continue
        out.append(
            dataclasses.replace(
                s,
                name=s.name or UNNAMED_SITE,
                url=normalize_url(s.url),
                category=(s.category or "").strip(),
            )
        )
    return out


def filter_sites(
    sites: Iterable[SiteRecord],
    *,
    category: Optional[str] = None,
    keyword: str = "",
    sort: str = "recent",
) -> List[SiteRecord]:
    needle = (keyword or "").strip().lower()
    out: List[SiteRecord] = []
    for s in sites:
        if category == UNCATEGORIZED:
            if (s.category or "").strip():
                continue
        elif category and category != ALL_CATEGORIES and s.category != category:
            continue
        if needle and not any(needle in (v or "").lower() for v in (s.name, s.url, s.category)):
            continue
        out.append(s)

    if sort == "name":
        return sorted(out, key=lambda s: (s.name or "").casefold())
    return sorted(out, key=lambda s: -_created_ts(s.created_at))


def _created_ts(value: str) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0
