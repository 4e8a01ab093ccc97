from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
import pandas as pd

from ._errors import APIError, CacheError, NoDataSourceAvailableError
from ._http import HTTPClient
from ._types import Credential, QuotaState, Table
from .normalize import llms_frame, media_frame, models_dev_frame
from .quota import QuotaObserver
from .schema import get_table_def

logger = logging.getLogger(__name__)

AA_API_BASE = "https://artificialanalysis.ai/api/v2"
MODELS_DEV_API = "https://models.dev/api.json"


@dataclass(frozen=True)
class OriginEndpoint:
    url: str
    requires_key: bool
    parse: Callable[[Any], pd.DataFrame]


ENDPOINTS: dict[str, OriginEndpoint] = {
    "benchmarks": OriginEndpoint(f"{AA_API_BASE}/data/llms/models", True, llms_frame),
    "text_to_image": OriginEndpoint(f"{AA_API_BASE}/data/media/text-to-image", True, media_frame),
    "image_editing": OriginEndpoint(f"{AA_API_BASE}/data/media/image-editing", True, media_frame),
    "text_to_speech": OriginEndpoint(f"{AA_API_BASE}/data/media/text-to-speech", True, media_frame),
    "text_to_video": OriginEndpoint(f"{AA_API_BASE}/data/media/text-to-video", True, media_frame),
    "image_to_video": OriginEndpoint(f"{AA_API_BASE}/data/media/image-to-video", True, media_frame),
    "models": OriginEndpoint(MODELS_DEV_API, False, models_dev_frame),
}


class OriginClient(HTTPClient):
    """Fetches tables straight from the upstream APIs.

    Rate-limit headers from every response are passed to ``quota`` before the
    status code is looked at, so a 429 still updates the recorded quota.
    """

    def __init__(
        self,
        quota: QuotaObserver | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        **kwargs: Any,
    ):
        super().__init__(transport=transport, **kwargs)
        self._quota = quota

    @staticmethod
    def requires_credential(name: str) -> bool:
        get_table_def(name)
        return ENDPOINTS[name].requires_key

    def fetch(self, name: str, credential: Credential | None) -> Table:
        table_def = get_table_def(name)
        endpoint = ENDPOINTS[name]
        headers = {}
        if endpoint.requires_key:
            if credential is None:
                raise NoDataSourceAvailableError(name)
            headers["x-api-key"] = credential.api_key

        logger.debug("Fetching '%s' from %s", name, endpoint.url)
        response = self._request(
            "GET",
            endpoint.url,
            headers=headers,
            on_response=lambda r: self._observe(credential, r),
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise APIError(response.status_code, f"invalid JSON from {endpoint.url}: {e}") from e

        try:
            frame = table_def.conform(endpoint.parse(payload))
        except (AttributeError, TypeError, ValueError) as e:
            raise APIError(response.status_code, f"unexpected response shape from {endpoint.url}: {e}") from e
        logger.debug("Fetched %d rows for '%s' from origin", len(frame), name)
        return Table(name=name, columns=table_def.column_names, frame=frame)

    def _observe(self, credential: Credential | None, response: httpx.Response) -> None:
        if self._quota is None or credential is None:
            return
        state = QuotaState.from_headers(response.headers)
        if state is None:
            return
        try:
            self._quota.record(credential.profile, state)
        except CacheError as e:
            logger.warning("Could not record quota: %s", e)


__all__ = ["OriginClient", "OriginEndpoint", "ENDPOINTS", "AA_API_BASE", "MODELS_DEV_API"]
