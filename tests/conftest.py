"""Shared fixtures: isolated config/cache dirs, a fake clock and a fake HTTP router."""

from __future__ import annotations

import hashlib
import io
import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from which_llm.config import Config
from which_llm.schema import BENCHMARKS, TableDef

T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class Router:
    """Maps URLs to canned responses and records every request it sees."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.calls: list[httpx.Request] = []

    def add(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response] | httpx.Response) -> None:
        if isinstance(handler, httpx.Response):
            canned = handler

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(canned.status_code, headers=canned.headers, content=canned.content)

        self.routes[(method, url)] = handler

    def called(self, url: str) -> int:
        return sum(1 for r in self.calls if str(r.url) == url)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get((request.method, str(request.url)))
        if handler is None:
            return httpx.Response(404, text=f"no route for {request.method} {request.url}")
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def benchmarks_frame(rows: int = 3) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "id": [f"m-{i}" for i in range(rows)],
            "name": [f"Model {i}" for i in range(rows)],
            "slug": [f"model-{i}" for i in range(rows)],
            "creator": ["Acme"] * rows,
            "intelligence": [50.0 + i for i in range(rows)],
            "price": [1.5] * rows,
        }
    )


def parquet_bytes(table_def: TableDef, frame: pd.DataFrame) -> bytes:
    conformed = table_def.conform(frame)
    table = pa.Table.from_pandas(conformed, schema=table_def.arrow_schema(nullable=True), preserve_index=False)
    buf = io.BytesIO()
    pq.write_table(table, buf)
    return buf.getvalue()


def manifest_body(files: dict[str, bytes], *, rows: dict[str, int] | None = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "version": "1",
        "generated_at": "2026-01-15T00:00:00Z",
        "source": {"artificial_analysis": "v2", "models_dev": "latest"},
        "attribution": {"text": "Data from Artificial Analysis", "url": "https://artificialanalysis.ai"},
        "files": {
            name: {"size": len(data), "sha256": hashlib.sha256(data).hexdigest()} for name, data in files.items()
        },
    }
    for name, count in (rows or {}).items():
        body["files"][name]["rows"] = count
    body.update(extra)
    return body


def json_response(data: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> httpx.Response:
    headers = {"Content-Type": "application/json", **(headers or {})}
    return httpx.Response(status_code, content=json.dumps(data).encode(), headers=headers)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "ARTIFICIAL_ANALYSIS_API_KEY",
        "WHICH_LLM_CONFIG_DIR",
        "WHICH_LLM_CACHE_DIR",
        "WHICH_LLM_PROFILE",
        "WHICH_LLM_CACHE_TTL_HOURS",
        "WHICH_LLM_ORIGIN_TTL_HOURS",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def config(tmp_path: Path, cache_dir: Path) -> Config:
    return Config(cache_dir=cache_dir, config_dir=tmp_path / "config")


@pytest.fixture
def sample_frame() -> pd.DataFrame:
    return benchmarks_frame()


@pytest.fixture
def benchmarks_parquet(sample_frame: pd.DataFrame) -> bytes:
    return parquet_bytes(BENCHMARKS, sample_frame)
