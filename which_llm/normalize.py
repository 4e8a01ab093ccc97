"""Turn raw origin payloads into rows keyed by registered column names.

The Artificial Analysis API has shipped both snake_case and camelCase field
names, so every lookup accepts either spelling.
"""

from __future__ import annotations

from typing import Any

import pandas as pd

from ._errors import APIError
from .schema import BENCHMARKS, MEDIA_COLUMNS, MODELS


def unwrap(payload: Any) -> list[dict[str, Any]]:
    data = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(data, list):
        raise APIError(200, "unexpected response body: expected a list of models")
    return [item for item in data if isinstance(item, dict)]


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _pick(data: Any, *keys: str) -> Any:
    if not isinstance(data, dict):
        return None
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _coalesce(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


def _creator(item: dict[str, Any]) -> tuple[Any, Any]:
    creator = _pick(item, "model_creator", "creator")
    if isinstance(creator, dict):
        return creator.get("name"), creator.get("slug")
    return creator, None


def llm_row(item: dict[str, Any]) -> dict[str, Any]:
    evals = _mapping(_pick(item, "evaluations"))
    pricing = _mapping(_pick(item, "pricing"))
    speed = _mapping(_pick(item, "speed"))
    creator, creator_slug = _creator(item)
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "slug": item.get("slug"),
        "creator": creator,
        "creator_slug": creator_slug,
        "release_date": _pick(item, "release_date", "releaseDate"),
        "intelligence": _pick(
            evals, "artificial_analysis_intelligence_index", "artificialAnalysisIntelligenceIndex"
        ),
        "coding": _pick(evals, "artificial_analysis_coding_index", "artificialAnalysisCodingIndex"),
        "math": _pick(evals, "artificial_analysis_math_index", "artificialAnalysisMathIndex", "math"),
        "mmlu_pro": _pick(evals, "mmlu_pro", "mmluPro"),
        "gpqa": _pick(evals, "gpqa"),
        "hle": _pick(evals, "hle"),
        "livecodebench": _pick(evals, "livecodebench", "liveCodeBench"),
        "scicode": _pick(evals, "scicode", "sciCode"),
        "math_500": _pick(evals, "math_500", "math500"),
        "aime": _pick(evals, "aime", "aime_25", "aime25"),
        "input_price": _pick(pricing, "price_1m_input_tokens", "inputTokens"),
        "output_price": _pick(pricing, "price_1m_output_tokens", "outputTokens"),
        "price": _pick(pricing, "price_1m_blended_3_to_1", "blendedTokens"),
        "tps": _coalesce(
            _pick(item, "median_output_tokens_per_second"), _pick(speed, "tokensPerSecond")
        ),
        "latency": _coalesce(
            _pick(item, "median_time_to_first_token_seconds"), _pick(speed, "timeToFirstToken", "latency")
        ),
    }


def media_row(item: dict[str, Any]) -> dict[str, Any]:
    creator, _ = _creator(item)
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "slug": item.get("slug"),
        "creator": creator,
        "elo": item.get("elo"),
        "rank": item.get("rank"),
        "release_date": _pick(item, "release_date", "releaseDate"),
    }


def _joined(values: Any) -> str | None:
    if values is None:
        return None
    if isinstance(values, (list, tuple)):
        return ",".join(str(v) for v in values)
    return str(values)


def models_dev_rows(payload: Any) -> list[dict[str, Any]]:
    """Flatten models.dev ``{provider: {..., models: {id: {...}}}}`` into one row per model."""
    if not isinstance(payload, dict):
        raise APIError(200, "unexpected models.dev response: expected an object of providers")
    rows = []
    for provider_key, provider in sorted(payload.items()):
        if not isinstance(provider, dict):
            continue
        for model_key, model in sorted(_mapping(provider.get("models")).items()):
            if not isinstance(model, dict):
                continue
            limit = _mapping(model.get("limit"))
            cost = _mapping(model.get("cost"))
            modalities = _mapping(model.get("modalities"))
            rows.append(
                {
                    "provider_id": provider.get("id") or provider_key,
                    "provider_name": provider.get("name") or provider_key,
                    "provider_env": _joined(provider.get("env")),
                    "provider_npm": provider.get("npm"),
                    "provider_api": provider.get("api"),
                    "provider_doc": provider.get("doc"),
                    "model_id": model.get("id") or model_key,
                    "model_name": model.get("name") or model_key,
                    "family": model.get("family"),
                    "attachment": model.get("attachment"),
                    "reasoning": model.get("reasoning"),
                    "tool_call": model.get("tool_call"),
                    "structured_output": model.get("structured_output"),
                    "temperature": model.get("temperature"),
                    "knowledge": model.get("knowledge"),
                    "release_date": model.get("release_date"),
                    "last_updated": model.get("last_updated"),
                    "open_weights": model.get("open_weights"),
                    "status": model.get("status"),
                    "context_window": limit.get("context"),
                    "max_input_tokens": limit.get("input"),
                    "max_output_tokens": limit.get("output"),
                    "cost_input": cost.get("input"),
                    "cost_output": cost.get("output"),
                    "cost_cache_read": cost.get("cache_read"),
                    "cost_cache_write": cost.get("cache_write"),
                    "input_modalities": _joined(modalities.get("input")),
                    "output_modalities": _joined(modalities.get("output")),
                }
            )
    return rows


def llms_frame(payload: Any) -> pd.DataFrame:
    rows = [llm_row(item) for item in unwrap(payload)]
    return pd.DataFrame(rows, columns=BENCHMARKS.column_names)


def media_frame(payload: Any) -> pd.DataFrame:
    columns = [c.name for c in MEDIA_COLUMNS]
    rows = [media_row(item) for item in unwrap(payload)]
    return pd.DataFrame(rows, columns=columns)


def models_dev_frame(payload: Any) -> pd.DataFrame:
    rows = models_dev_rows(payload)
    return pd.DataFrame(rows, columns=MODELS.column_names)


__all__ = [
    "unwrap",
    "llm_row",
    "media_row",
    "models_dev_rows",
    "llms_frame",
    "media_frame",
    "models_dev_frame",
]
