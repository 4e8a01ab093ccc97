from __future__ import annotations

from typing import Any

import httpx

from ._auth import CredentialResolver
from ._errors import WhichLLMError
from ._types import CacheStats, Manifest, QuotaState, Resolution, TableRequest
from .cache import LocalCacheStore
from .config import Config
from .hosted import HostedSnapshotFetcher
from .origin import OriginClient
from .quota import QuotaTracker
from .resolver import DEFAULT_MAX_WORKERS, DataSourceResolver
from .schema import ALL_TABLES, get_table_def

DEFAULT_ATTRIBUTION = "Data provided by Artificial Analysis (https://artificialanalysis.ai) and models.dev"


class WhichLLMClient:
    """Entry point for the CLI and query layer.

    Loads configuration once (or takes an explicit :class:`Config`) and wires
    the cache, quota tracker, hosted fetcher and origin client into a
    :class:`DataSourceResolver`. Use as a context manager to close the
    underlying HTTP connections.
    """

    def __init__(
        self,
        config: Config | None = None,
        profile: str | None = None,
        transport: httpx.BaseTransport | None = None,
        **http_options: Any,
    ):
        self._config = config or Config.load(profile=profile)
        self._credentials = CredentialResolver(self._config)
        self._cache = LocalCacheStore(self._config.cache_dir)
        self._quota = QuotaTracker(self._config.cache_dir)
        self._hosted = HostedSnapshotFetcher(transport=transport, **http_options)
        self._origin = OriginClient(self._quota, transport=transport, **http_options)
        self._resolver = DataSourceResolver(
            self._cache,
            self._hosted,
            self._origin,
            self._credentials,
            ttl=self._config.ttl,
            origin_ttl=self._config.origin_ttl,
        )

    @property
    def config(self) -> Config:
        return self._config

    @property
    def cache(self) -> LocalCacheStore:
        return self._cache

    @property
    def credentials(self) -> CredentialResolver:
        return self._credentials

    def table(self, name: str, force_refresh: bool = False, prefer_origin: bool = False) -> Resolution:
        return self._resolver.resolve(
            TableRequest(table=name, force_refresh=force_refresh, prefer_origin=prefer_origin)
        )

    def refresh_all(self, max_workers: int = DEFAULT_MAX_WORKERS) -> dict[str, Resolution | WhichLLMError]:
        self._resolver.reset()
        requests = [TableRequest(table=t.name, force_refresh=True) for t in ALL_TABLES]
        return self._resolver.resolve_many(requests, max_workers=max_workers)

    def quota(self) -> QuotaState | None:
        credential = self._credentials.resolve()
        if credential is None:
            return None
        return self._quota.last(credential.profile)

    def cache_status(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self, table: str | None = None) -> int:
        if table is not None:
            get_table_def(table)
        return self._cache.clear(table)

    def list_tables(self) -> list[dict[str, Any]]:
        tables = []
        for table_def in ALL_TABLES:
            path = self._cache.path(table_def.name)
            tables.append(
                {
                    "name": table_def.name,
                    "cached": path.exists(),
                    "path": path,
                    "columns": table_def.column_names,
                    "create_sql": table_def.create_table_sql(),
                    "command": table_def.command,
                }
            )
        return tables

    def info(self) -> dict[str, Any]:
        manifest: Manifest | None = self._cache.load_manifest()
        attribution = DEFAULT_ATTRIBUTION
        if manifest is not None and manifest.attribution.get("text"):
            attribution = manifest.attribution["text"]
            if manifest.attribution.get("url"):
                attribution = f"{attribution} ({manifest.attribution['url']})"
        return {
            "manifest": manifest,
            "attribution": attribution,
            "cache_dir": self._config.cache_dir,
            "config_dir": self._config.config_dir,
            "api_key": self._credentials.resolve_masked(),
        }

    def close(self) -> None:
        self._hosted.close()
        self._origin.close()

    def __enter__(self) -> WhichLLMClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["WhichLLMClient"]
