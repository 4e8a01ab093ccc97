from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import pandas as pd

    from .schema import TableDef

LOW_QUOTA_THRESHOLD = 0.10


class Source(str, enum.Enum):
    ORIGIN = "origin"
    HOSTED = "hosted"
    UNKNOWN = "unknown"


@dataclass
class Table:
    name: str
    columns: list[str]
    frame: pd.DataFrame

    @property
    def row_count(self) -> int:
        return len(self.frame)


@dataclass
class CacheEntry:
    """A table held by the cache. ``path`` is ``None`` when the data could not be stored."""

    table_name: str
    path: Path | None
    fetched_at: datetime
    source: Source = Source.UNKNOWN
    size_bytes: int = 0
    marker: str | None = None
    table: Table | None = None


@dataclass
class ManifestFile:
    size: int | None = None
    sha256: str | None = None
    rows: int | None = None
    last_modified: str | None = None


@dataclass
class Manifest:
    version: str
    generated_at: str
    files: dict[str, ManifestFile] = field(default_factory=dict)
    source: dict[str, str] = field(default_factory=dict)
    attribution: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    def marker_for(self, table_def: TableDef) -> str | None:
        """Change marker for one table: checksum, then last-modified, then release identity."""
        info = self.files.get(table_def.filename)
        if info is None:
            return None
        if info.sha256:
            return info.sha256
        if info.last_modified:
            return info.last_modified
        return f"{self.version}:{self.generated_at}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        files = {}
        for filename, info in (data.get("files") or {}).items():
            files[filename] = ManifestFile(
                size=info.get("size"),
                sha256=info.get("sha256"),
                rows=info.get("rows"),
                last_modified=info.get("last_modified"),
            )
        return cls(
            version=str(data["version"]),
            generated_at=str(data["generated_at"]),
            files=files,
            source=dict(data.get("source") or {}),
            attribution=dict(data.get("attribution") or {}),
            raw=data,
        )


@dataclass
class Profile:
    name: str
    api_key: str
    is_default: bool = False

    def __repr__(self) -> str:
        return f"Profile(name={self.name!r}, is_default={self.is_default!r})"


@dataclass
class Credential:
    api_key: str
    profile: str

    def __repr__(self) -> str:
        return f"Credential(profile={self.profile!r})"


@dataclass
class QuotaState:
    limit: int
    remaining: int
    reset_at: str
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def percentage_remaining(self) -> float:
        if self.limit <= 0:
            return 0.0
        return self.remaining / self.limit * 100.0

    @property
    def is_low(self) -> bool:
        if self.limit <= 0:
            return False
        return self.remaining / self.limit < LOW_QUOTA_THRESHOLD

    @classmethod
    def from_headers(cls, headers: Any, observed_at: datetime | None = None) -> QuotaState | None:
        """Parse X-RateLimit-* headers. Returns None when limit or remaining is missing."""
        try:
            limit = int(headers["X-RateLimit-Limit"])
            remaining = int(headers["X-RateLimit-Remaining"])
        except (KeyError, TypeError, ValueError):
            return None
        reset_at = headers.get("X-RateLimit-Reset") or "unknown"
        return cls(
            limit=limit,
            remaining=remaining,
            reset_at=reset_at,
            observed_at=observed_at or datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
            "observed_at": self.observed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuotaState:
        return cls(
            limit=int(data["limit"]),
            remaining=int(data["remaining"]),
            reset_at=str(data["reset_at"]),
            observed_at=datetime.fromisoformat(data["observed_at"]),
        )


@dataclass(frozen=True)
class TableRequest:
    table: str
    force_refresh: bool = False
    prefer_origin: bool = False


@dataclass
class Resolution:
    table: Table
    source: Source
    fetched_at: datetime
    path: Path | None


@dataclass
class CacheStats:
    location: Path
    entry_count: int = 0
    total_size: int = 0

    @property
    def size_human(self) -> str:
        size = float(self.total_size)
        for unit in ("B", "KB", "MB"):
            if size < 1024:
                return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} GB"


__all__ = [
    "Source",
    "Table",
    "CacheEntry",
    "ManifestFile",
    "Manifest",
    "Profile",
    "Credential",
    "QuotaState",
    "TableRequest",
    "Resolution",
    "CacheStats",
]
