from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ._errors import CacheCorruptionError, CacheError
from ._fs import atomic_write, atomic_write_bytes, is_temp_file
from ._types import CacheEntry, CacheStats, Manifest, Source, Table
from .schema import TableDef, get_table_def

logger = logging.getLogger(__name__)

METADATA_KEY = b"which_llm"
MANIFEST_FILENAME = "manifest.json"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalCacheStore:
    """One parquet file per table, all under one directory.

    Provenance (``fetched_at``, ``source``, ``marker``) lives in the parquet
    schema metadata, so data and provenance are committed by the same
    ``os.replace``. A reader only ever sees a complete previous or complete
    new entry. Unreadable entries are reported as misses, never as errors.
    """

    def __init__(self, base_dir: Path, clock: Callable[[], datetime] = utcnow):
        self._base_dir = Path(base_dir)
        self._clock = clock

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def now(self) -> datetime:
        return self._clock()

    def path(self, name: str) -> Path:
        return self._base_dir / get_table_def(name).filename

    @property
    def manifest_path(self) -> Path:
        return self._base_dir / MANIFEST_FILENAME

    def is_cached(self, name: str) -> bool:
        return self.path(name).exists()

    def read(self, name: str) -> CacheEntry | None:
        table_def = get_table_def(name)
        path = self.path(name)
        if not path.exists():
            return None
        try:
            arrow_table = self._load(table_def, path)
            meta = _provenance(arrow_table.schema.metadata, path)
            frame = table_def.conform(arrow_table.to_pandas())
            stat = path.stat()
        except (CacheCorruptionError, pa.ArrowException) as e:
            logger.warning("Ignoring corrupt cache entry for '%s': %s", name, e)
            return None
        except OSError as e:
            logger.warning("Cannot read cache entry for '%s': %s", name, e)
            return None

        if meta is None:
            fetched_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            source, marker = Source.UNKNOWN, None
        else:
            fetched_at, source, marker = meta
        return CacheEntry(
            table_name=name,
            path=path,
            fetched_at=fetched_at,
            source=source,
            size_bytes=stat.st_size,
            marker=marker,
            table=Table(name=name, columns=table_def.column_names, frame=frame),
        )

    def write(
        self,
        name: str,
        frame: pd.DataFrame,
        source: Source,
        marker: str | None = None,
    ) -> CacheEntry:
        table_def = get_table_def(name)
        conformed = table_def.conform(frame)
        path = self.path(name)
        fetched_at = self._clock()
        try:
            arrow_table = pa.Table.from_pandas(
                conformed, schema=table_def.arrow_schema(nullable=True), preserve_index=False
            )
            metadata = dict(arrow_table.schema.metadata or {})
            metadata[METADATA_KEY] = json.dumps(
                {"fetched_at": fetched_at.isoformat(), "source": source.value, "marker": marker}
            ).encode("utf-8")
            arrow_table = arrow_table.replace_schema_metadata(metadata)
            atomic_write(path, lambda f: pq.write_table(arrow_table, f))
            size = path.stat().st_size
        except (OSError, pa.ArrowException) as e:
            raise CacheError(f"Failed to write cache for '{name}': {e}") from e

        logger.debug("Cached %d rows for '%s' at %s (source=%s)", len(conformed), name, path, source.value)
        return CacheEntry(
            table_name=name,
            path=path,
            fetched_at=fetched_at,
            source=source,
            size_bytes=size,
            marker=marker,
            table=Table(name=name, columns=table_def.column_names, frame=conformed),
        )

    def restamp(self, name: str, marker: str | None, source: Source | None = None) -> CacheEntry | None:
        """Mark an existing entry as fetched now, keeping its rows."""
        entry = self.read(name)
        if entry is None:
            return None
        return self.write(name, entry.table.frame, source or entry.source, marker)

    def is_fresh(self, entry: CacheEntry, ttl: timedelta) -> bool:
        return self._clock() - entry.fetched_at < ttl

    def clear(self, name: str | None = None) -> int:
        if name is not None:
            targets = [self.path(name)]
        elif self._base_dir.exists():
            targets = [
                p
                for p in self._base_dir.iterdir()
                if p.is_file()
                and (p.suffix == ".parquet" or p.name == MANIFEST_FILENAME or is_temp_file(p))
            ]
        else:
            targets = []

        removed = 0
        for path in targets:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheError(f"Failed to remove {path}: {e}") from e
        logger.debug("Removed %d cache files from %s", removed, self._base_dir)
        return removed

    def save_manifest(self, manifest: Manifest) -> None:
        try:
            atomic_write_bytes(self.manifest_path, json.dumps(manifest.raw, indent=2).encode("utf-8"))
        except OSError as e:
            raise CacheError(f"Failed to save manifest: {e}") from e

    def load_manifest(self) -> Manifest | None:
        if not self.manifest_path.exists():
            return None
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            return Manifest.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", self.manifest_path, e)
            return None

    def stats(self) -> CacheStats:
        stats = CacheStats(location=self._base_dir)
        if not self._base_dir.exists():
            return stats
        for path in self._base_dir.iterdir():
            if not path.is_file():
                continue
            if path.suffix == ".parquet":
                stats.entry_count += 1
            stats.total_size += path.stat().st_size
        return stats

    def _load(self, table_def: TableDef, path: Path) -> pa.Table:
        try:
            arrow_table = pq.read_table(path)
        except (pa.ArrowException, OSError, ValueError) as e:
            raise CacheCorruptionError(f"{path.name} is not readable parquet: {e}") from e
        if not table_def.matches(arrow_table.column_names):
            raise CacheCorruptionError(f"{path.name} columns do not match the '{table_def.name}' schema")
        return arrow_table


def _provenance(
    metadata: dict[bytes, bytes] | None, path: Path
) -> tuple[datetime, Source, str | None] | None:
    """Provenance stored in the file, or ``None`` for files written without it."""
    raw = (metadata or {}).get(METADATA_KEY)
    if raw is None:
        return None
    try:
        data: dict[str, Any] = json.loads(raw)
        fetched_at = datetime.fromisoformat(data["fetched_at"])
        source = Source(data.get("source", Source.UNKNOWN.value))
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise CacheCorruptionError(f"{path.name} has invalid provenance metadata: {e}") from e
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    return fetched_at, source, data.get("marker")


__all__ = ["LocalCacheStore", "utcnow"]
