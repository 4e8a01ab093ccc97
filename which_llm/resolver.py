"""Decides which source serves a table: local cache, hosted snapshot or origin API.

The order of stages is computed up front by :func:`stage_chain` and walked
with :func:`next_stage`; both are pure so the ordering rules can be tested
without any I/O.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from ._auth import CredentialResolver
from ._errors import (
    APIError,
    CacheError,
    HostedDataError,
    NetworkError,
    NoDataSourceAvailableError,
    WhichLLMError,
)
from ._types import CacheEntry, Manifest, Resolution, Source, Table, TableRequest
from .cache import LocalCacheStore
from .config import DEFAULT_ORIGIN_TTL_HOURS, DEFAULT_TTL_HOURS
from .hosted import HostedSnapshotFetcher
from .origin import OriginClient
from .schema import TableDef, get_table_def

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class Stage(str, enum.Enum):
    CHECK_LOCAL = "local"
    CHECK_HOSTED = "hosted"
    CHECK_ORIGIN = "origin"
    RESOLVED = "resolved"
    FAILED = "failed"


DEFAULT_CHAIN = (Stage.CHECK_LOCAL, Stage.CHECK_HOSTED, Stage.CHECK_ORIGIN)


def stage_chain(request: TableRequest) -> tuple[Stage, ...]:
    chain = DEFAULT_CHAIN
    if request.prefer_origin:
        chain = tuple(reversed(chain))
    if request.force_refresh:
        chain = tuple(s for s in chain if s is not Stage.CHECK_LOCAL)
    return chain


def next_stage(chain: tuple[Stage, ...], current: Stage, hit: bool) -> Stage:
    if hit:
        return Stage.RESOLVED
    position = chain.index(current) + 1
    return chain[position] if position < len(chain) else Stage.FAILED


class DataSourceResolver:
    def __init__(
        self,
        cache: LocalCacheStore,
        hosted: HostedSnapshotFetcher,
        origin: OriginClient,
        credentials: CredentialResolver,
        ttl: timedelta = timedelta(hours=DEFAULT_TTL_HOURS),
        origin_ttl: timedelta = timedelta(hours=DEFAULT_ORIGIN_TTL_HOURS),
    ):
        self._cache = cache
        self._hosted = hosted
        self._origin = origin
        self._credentials = credentials
        self._ttl = ttl
        self._origin_ttl = origin_ttl
        self._lock = threading.Lock()
        self._manifest: Manifest | None = None
        self._manifest_error: WhichLLMError | None = None
        self._manifest_loaded = False

    def reset(self) -> None:
        """Forget the memoized manifest so the next resolution fetches it again."""
        with self._lock:
            self._manifest = None
            self._manifest_error = None
            self._manifest_loaded = False

    def resolve(self, request: TableRequest) -> Resolution:
        table_def = get_table_def(request.table)
        chain = stage_chain(request)
        errors: list[tuple[Stage, WhichLLMError]] = []

        stage = chain[0]
        while True:
            logger.debug("Resolving '%s': %s", table_def.name, stage.value)
            entry = None
            try:
                entry = self._run(stage, table_def, request)
            except (APIError, NetworkError, HostedDataError, NoDataSourceAvailableError) as e:
                errors.append((stage, e))
                if stage is Stage.CHECK_HOSTED:
                    logger.warning("Hosted data unavailable for '%s': %s", table_def.name, e)
                else:
                    logger.debug("Stage %s failed for '%s': %s", stage.value, table_def.name, e)

            stage = next_stage(chain, stage, entry is not None)
            if stage is Stage.RESOLVED:
                return Resolution(
                    table=entry.table,
                    source=entry.source,
                    fetched_at=entry.fetched_at,
                    path=entry.path,
                )
            if stage is Stage.FAILED:
                raise self._surfaced_error(table_def.name, errors)

    def resolve_many(
        self,
        requests: list[TableRequest],
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> dict[str, Resolution | WhichLLMError]:
        results: dict[str, Resolution | WhichLLMError] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [(r.table, pool.submit(self.resolve, r)) for r in requests]
            for name, future in futures:
                try:
                    results[name] = future.result()
                except WhichLLMError as e:
                    logger.warning("Failed to resolve '%s': %s", name, e)
                    results[name] = e
        return results

    def _run(self, stage: Stage, table_def: TableDef, request: TableRequest) -> CacheEntry | None:
        if stage is Stage.CHECK_LOCAL:
            return self._check_local(table_def)
        if stage is Stage.CHECK_HOSTED:
            return self._check_hosted(table_def, request)
        return self._check_origin(table_def)

    def _check_local(self, table_def: TableDef) -> CacheEntry | None:
        entry = self._cache.read(table_def.name)
        if entry is None:
            return None
        ttl = self._origin_ttl if entry.source is Source.ORIGIN else self._ttl
        if not self._cache.is_fresh(entry, ttl):
            logger.debug("Cached '%s' is stale (fetched %s)", table_def.name, entry.fetched_at.isoformat())
            return None
        return entry

    def _check_hosted(self, table_def: TableDef, request: TableRequest) -> CacheEntry:
        manifest = self._get_manifest()
        marker = manifest.marker_for(table_def)
        if marker is None:
            raise HostedDataError(f"{table_def.filename} is not part of hosted release {manifest.version}")

        if not request.force_refresh:
            local = self._cache.read(table_def.name)
            if local is not None and local.marker == marker:
                logger.debug("Hosted '%s' unchanged, keeping local copy", table_def.name)
                return self._restamp(local, marker)

        table = self._hosted.fetch_table(table_def, manifest)
        return self._store(table, Source.HOSTED, marker)

    def _check_origin(self, table_def: TableDef) -> CacheEntry:
        credential = self._credentials.resolve()
        if credential is None and self._origin.requires_credential(table_def.name):
            raise NoDataSourceAvailableError(table_def.name)
        table = self._origin.fetch(table_def.name, credential)
        return self._store(table, Source.ORIGIN)

    def _store(self, table: Table, source: Source, marker: str | None = None) -> CacheEntry:
        try:
            return self._cache.write(table.name, table.frame, source, marker)
        except CacheError as e:
            logger.warning("Serving '%s' from %s without caching it: %s", table.name, source.value, e)
            return CacheEntry(
                table_name=table.name,
                path=None,
                fetched_at=self._cache.now(),
                source=source,
                marker=marker,
                table=table,
            )

    def _restamp(self, local: CacheEntry, marker: str) -> CacheEntry:
        try:
            return self._cache.restamp(local.table_name, marker, Source.HOSTED) or local
        except CacheError as e:
            logger.warning("Could not restamp cached '%s': %s", local.table_name, e)
            local.source = Source.HOSTED
            local.fetched_at = self._cache.now()
            return local

    def _get_manifest(self) -> Manifest:
        with self._lock:
            if not self._manifest_loaded:
                try:
                    self._manifest = self._hosted.fetch_manifest()
                except NetworkError as e:
                    self._manifest_error = e
                else:
                    self._save_manifest(self._manifest)
                self._manifest_loaded = True
            if self._manifest_error is not None:
                raise self._manifest_error
            return self._manifest

    def _save_manifest(self, manifest: Manifest) -> None:
        try:
            self._cache.save_manifest(manifest)
        except WhichLLMError as e:
            logger.warning("Could not save hosted manifest: %s", e)

    @staticmethod
    def _surfaced_error(name: str, errors: list[tuple[Stage, WhichLLMError]]) -> WhichLLMError:
        if not errors:
            return NoDataSourceAvailableError(name)
        # The origin stage runs in every chain, so its failure is the one reported.
        origin_errors = [(s, e) for s, e in errors if s is Stage.CHECK_ORIGIN]
        stage, err = (origin_errors or errors)[-1]
        err.stage = stage.value
        return err


__all__ = [
    "Stage",
    "DEFAULT_CHAIN",
    "stage_chain",
    "next_stage",
    "DataSourceResolver",
]
