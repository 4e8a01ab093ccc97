"""Table definitions shared by every source, the parquet cache and the query layer.

Each table has one fixed column list. Whatever a source returns is conformed
to it: missing columns become nulls, extra columns are dropped, and values are
cast to pandas nullable dtypes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

import pandas as pd
import pyarrow as pa

from ._errors import UnknownTableError

REFRESH_COMMAND = "which-llm refresh"


class ColumnType(str, enum.Enum):
    STRING = "string"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    INTEGER = "integer"

    @property
    def sql_type(self) -> str:
        return _SQL_TYPES[self]

    @property
    def pandas_dtype(self) -> str:
        return _PANDAS_DTYPES[self]

    @property
    def arrow_type(self) -> pa.DataType:
        return _ARROW_TYPES[self]()


_SQL_TYPES = {
    ColumnType.STRING: "VARCHAR",
    ColumnType.DOUBLE: "DOUBLE",
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.INTEGER: "BIGINT",
}
_PANDAS_DTYPES = {
    ColumnType.STRING: "string",
    ColumnType.DOUBLE: "Float64",
    ColumnType.BOOLEAN: "boolean",
    ColumnType.INTEGER: "Int64",
}
_ARROW_TYPES = {
    ColumnType.STRING: pa.string,
    ColumnType.DOUBLE: pa.float64,
    ColumnType.BOOLEAN: pa.bool_,
    ColumnType.INTEGER: pa.int64,
}


@dataclass(frozen=True)
class Column:
    name: str
    type: ColumnType
    nullable: bool = True


@dataclass(frozen=True)
class TableDef:
    name: str
    columns: tuple[Column, ...]
    command: str = REFRESH_COMMAND

    @property
    def filename(self) -> str:
        return f"{self.name}.parquet"

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def create_table_sql(self) -> str:
        lines = [
            f"{c.name} {c.type.sql_type}{'' if c.nullable else ' NOT NULL'}" for c in self.columns
        ]
        return f"CREATE TABLE {self.name} (\n    " + ",\n    ".join(lines) + "\n)"

    def arrow_schema(self, nullable: bool = False) -> pa.Schema:
        """Arrow schema for this table. ``nullable=True`` relaxes every NOT NULL column."""
        return pa.schema(
            [pa.field(c.name, c.type.arrow_type, nullable=nullable or c.nullable) for c in self.columns]
        )

    def matches(self, columns: list[str]) -> bool:
        return list(columns) == self.column_names

    def conform(self, frame: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of ``frame`` with exactly this table's columns, in order and typed."""
        out = pd.DataFrame(index=range(len(frame)))
        frame = frame.reset_index(drop=True)
        for column in self.columns:
            if column.name in frame.columns:
                out[column.name] = _cast(frame[column.name], column.type)
            else:
                out[column.name] = pd.Series([pd.NA] * len(frame), dtype=column.type.pandas_dtype)
        return out


def _cast(series: pd.Series, column_type: ColumnType) -> pd.Series:
    if column_type is ColumnType.STRING:
        return series.map(lambda v: v if _is_null(v) else str(v)).astype("string")
    if column_type is ColumnType.BOOLEAN:
        return series.map(_to_bool).astype("boolean")
    numeric = pd.to_numeric(series, errors="coerce").astype("Float64")
    if column_type is ColumnType.INTEGER:
        return numeric.round().astype("Int64")
    return numeric


_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0", ""}


def _to_bool(value: object) -> object:
    if _is_null(value):
        return pd.NA
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        return pd.NA
    return bool(value)


def _is_null(value: object) -> bool:
    if value is None or value is pd.NA:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _string(name: str, nullable: bool = True) -> Column:
    return Column(name, ColumnType.STRING, nullable)


def _double(name: str) -> Column:
    return Column(name, ColumnType.DOUBLE)


def _boolean(name: str) -> Column:
    return Column(name, ColumnType.BOOLEAN)


def _integer(name: str) -> Column:
    return Column(name, ColumnType.INTEGER)


# Artificial Analysis LLM benchmarks. Capability data lives in ``models``.
BENCHMARKS = TableDef(
    name="benchmarks",
    columns=(
        _string("id", nullable=False),
        _string("name", nullable=False),
        _string("slug", nullable=False),
        _string("creator", nullable=False),
        _string("creator_slug"),
        _string("release_date"),
        _double("intelligence"),
        _double("coding"),
        _double("math"),
        _double("mmlu_pro"),
        _double("gpqa"),
        _double("hle"),
        _double("livecodebench"),
        _double("scicode"),
        _double("math_500"),
        _double("aime"),
        _double("input_price"),
        _double("output_price"),
        _double("price"),
        _double("tps"),
        _double("latency"),
    ),
)

# models.dev, one row per (provider, model).
MODELS = TableDef(
    name="models",
    columns=(
        _string("provider_id", nullable=False),
        _string("provider_name", nullable=False),
        _string("provider_env"),
        _string("provider_npm"),
        _string("provider_api"),
        _string("provider_doc"),
        _string("model_id", nullable=False),
        _string("model_name", nullable=False),
        _string("family"),
        _boolean("attachment"),
        _boolean("reasoning"),
        _boolean("tool_call"),
        _boolean("structured_output"),
        _boolean("temperature"),
        _string("knowledge"),
        _string("release_date"),
        _string("last_updated"),
        _boolean("open_weights"),
        _string("status"),
        _integer("context_window"),
        _integer("max_input_tokens"),
        _integer("max_output_tokens"),
        _double("cost_input"),
        _double("cost_output"),
        _double("cost_cache_read"),
        _double("cost_cache_write"),
        _string("input_modalities"),
        _string("output_modalities"),
    ),
)

MEDIA_COLUMNS = (
    _string("id", nullable=False),
    _string("name", nullable=False),
    _string("slug", nullable=False),
    _string("creator", nullable=False),
    _double("elo"),
    _integer("rank"),
    _string("release_date"),
)

TEXT_TO_IMAGE = TableDef(name="text_to_image", columns=MEDIA_COLUMNS)
IMAGE_EDITING = TableDef(name="image_editing", columns=MEDIA_COLUMNS)
TEXT_TO_SPEECH = TableDef(name="text_to_speech", columns=MEDIA_COLUMNS)
TEXT_TO_VIDEO = TableDef(name="text_to_video", columns=MEDIA_COLUMNS)
IMAGE_TO_VIDEO = TableDef(name="image_to_video", columns=MEDIA_COLUMNS)

ALL_TABLES: tuple[TableDef, ...] = (
    BENCHMARKS,
    MODELS,
    TEXT_TO_IMAGE,
    IMAGE_EDITING,
    TEXT_TO_SPEECH,
    TEXT_TO_VIDEO,
    IMAGE_TO_VIDEO,
)

_BY_NAME = {t.name: t for t in ALL_TABLES}


def get_table_def(name: str, *, required: bool = True) -> TableDef | None:
    table_def = _BY_NAME.get(name)
    if table_def is None and required:
        raise UnknownTableError(name, list(_BY_NAME))
    return table_def


def table_names() -> list[str]:
    return list(_BY_NAME)


__all__ = [
    "ColumnType",
    "Column",
    "TableDef",
    "BENCHMARKS",
    "MODELS",
    "MEDIA_COLUMNS",
    "TEXT_TO_IMAGE",
    "IMAGE_EDITING",
    "TEXT_TO_SPEECH",
    "TEXT_TO_VIDEO",
    "IMAGE_TO_VIDEO",
    "ALL_TABLES",
    "get_table_def",
    "table_names",
]
