from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class ParsedEntry:
    name: str
    url: str
    category: str = ""


@dataclass
class SiteRecord:
    id: str
    name: str
    url: str
    category: str = ""
    created_at: str = ""

    # Keys from stored documents we do not model (e.g. isPlaceholder); written back as-is.
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        out.update(
            {
                "id": self.id,
                "name": self.name,
                "url": self.url,
                "category": self.category,
                "createdAt": self.created_at,
            }
        )
        return out

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SiteRecord":
        known = {"id", "name", "url", "category", "createdAt"}
        return SiteRecord(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            url=str(data.get("url") or ""),
            category=str(data.get("category") or ""),
            created_at=str(data.get("createdAt") or ""),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class MergeResult:
    merged: List[SiteRecord]
    imported_count: int = 0
    skipped_count: int = 0
