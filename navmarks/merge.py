from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Set

from .log import get_logger
from .model import MergeResult, ParsedEntry, SiteRecord

log = get_logger(__name__)

_SIGNATURE_SEP = "\n"


def site_signature(url: str, name: str) -> str:
    """Duplicate key: same URL *and* same name, both trimmed and lowercased."""
    return f"{(url or '').strip().lower()}{_SIGNATURE_SEP}{(name or '').strip().lower()}"


def new_site_id() -> str:
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def merge_unique(
    existing: Iterable[SiteRecord],
    incoming: Iterable[ParsedEntry],
    *,
    id_factory: Optional[Callable[[], str]] = None,
    clock: Optional[Callable[[], str]] = None,
) -> MergeResult:
    """Append the incoming entries that are not already present.

    Existing records come first and are never modified or dropped. Incoming
    entries keep their relative order; a repeated signature (against storage
    or earlier in the same batch) is counted as skipped.
    """
    make_id = id_factory or new_site_id
    now = clock or utc_now_iso

    merged: List[SiteRecord] = list(existing)
    seen: Set[str] = {site_signature(s.url, s.name) for s in merged}
    used_ids: Set[str] = {s.id for s in merged}
    imported = 0
    skipped = 0

    for entry in incoming:
        sig = site_signature(entry.url, entry.name)
        if sig in seen:
            skipped += 1
            continue
        seen.add(sig)

        site_id = make_id()
        while site_id in used_ids:
            site_id = make_id()
        used_ids.add(site_id)

        merged.append(
            SiteRecord(
                id=site_id,
                name=entry.name,
                url=entry.url.strip(),
                category=entry.category,
                created_at=now(),
            )
        )
        imported += 1

    log.debug("Merge: %d existing, %d imported, %d skipped.", len(merged) - imported, imported, skipped)
    return MergeResult(merged=merged, imported_count=imported, skipped_count=skipped)
