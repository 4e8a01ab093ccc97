from __future__ import annotations

import hashlib
import io
import logging
from typing import Any

import httpx
import pyarrow as pa
import pyarrow.parquet as pq

from ._errors import APIError, HostedDataError, ManifestUnavailableError, NetworkError
from ._http import HTTPClient
from ._types import Manifest, Table
from .schema import TableDef

logger = logging.getLogger(__name__)

GITHUB_REPO = "richard-gyiko/which-llm"
DATA_RELEASE_TAG = "data/latest"
RELEASE_BASE = f"https://github.com/{GITHUB_REPO}/releases/download/{DATA_RELEASE_TAG}"
RELEASE_PAGE = f"https://github.com/{GITHUB_REPO}/releases/tag/{DATA_RELEASE_TAG}"
MANIFEST_FILENAME = "manifest.json"


class HostedSnapshotFetcher(HTTPClient):
    """Downloads pre-built parquet snapshots published as release assets. No credentials."""

    def __init__(self, base_url: str = RELEASE_BASE, *, transport: httpx.BaseTransport | None = None, **kwargs: Any):
        super().__init__(base_url, transport=transport, **kwargs)

    def fetch_manifest(self) -> Manifest:
        try:
            response = self._request("GET", f"/{MANIFEST_FILENAME}")
            return Manifest.from_dict(response.json())
        except (NetworkError, APIError) as e:
            raise ManifestUnavailableError(f"Failed to fetch manifest: {e}") from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ManifestUnavailableError(f"Failed to parse manifest: {e}") from e

    def fetch_table(self, table_def: TableDef, manifest: Manifest) -> Table:
        info = manifest.files.get(table_def.filename)
        if info is None:
            raise HostedDataError(f"{table_def.filename} is not part of hosted release {manifest.version}")

        logger.debug("Downloading %s from hosted release %s", table_def.filename, manifest.version)
        try:
            response = self._request("GET", f"/{table_def.filename}")
        except APIError as e:
            raise HostedDataError(f"Failed to download {table_def.filename}: {e}") from e
        data = response.content

        if info.sha256:
            digest = hashlib.sha256(data).hexdigest()
            if digest.lower() != info.sha256.lower():
                raise HostedDataError(
                    f"Checksum mismatch for {table_def.filename}: expected {info.sha256}, got {digest}"
                )

        try:
            arrow_table = pq.read_table(io.BytesIO(data))
        except (pa.ArrowException, OSError, ValueError) as e:
            raise HostedDataError(f"{table_def.filename} is not valid parquet: {e}") from e

        if info.rows is not None and arrow_table.num_rows != info.rows:
            raise HostedDataError(
                f"Row count mismatch for {table_def.filename}: expected {info.rows}, got {arrow_table.num_rows}"
            )

        frame = table_def.conform(arrow_table.to_pandas())
        return Table(name=table_def.name, columns=table_def.column_names, frame=frame)

    def is_available(self) -> bool:
        try:
            response = self._send("HEAD", RELEASE_PAGE)
        except NetworkError:
            return False
        return response.is_success


__all__ = ["HostedSnapshotFetcher", "RELEASE_BASE", "RELEASE_PAGE"]
