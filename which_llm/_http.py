from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from ._errors import APIError, AuthError, NetworkError, OriginError, RateLimitError
from ._version import __version__

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CONNECT_TIMEOUT = 10.0
DEFAULT_RETRIES = 1
RETRY_BACKOFF = 0.5
USER_AGENT = f"which-llm/{__version__}"


class HTTPClient:
    """Shared httpx plumbing: bounded timeouts, one retry, status classification.

    ``transport`` is handed straight to :class:`httpx.Client`, which lets tests
    plug in an :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
        retries: int = DEFAULT_RETRIES,
        backoff: float = RETRY_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._base_url = base_url.rstrip("/")
        self._headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self._timeout = httpx.Timeout(timeout, connect=CONNECT_TIMEOUT)
        self._transport = transport
        self._retries = retries
        self._backoff = backoff
        self._sleep = sleep
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        body = response.text
        if response.status_code in (401, 403):
            raise AuthError(response.status_code, body)
        if response.status_code == 429:
            raise RateLimitError(response.headers.get("X-RateLimit-Reset"), body)
        msg = f"{response.reason_phrase}: {body}" if body else response.reason_phrase
        if response.status_code >= 500:
            raise OriginError(response.status_code, msg, body)
        raise APIError(response.status_code, msg, body)

    def _send(
        self,
        method: str,
        url: str,
        *,
        on_response: Callable[[httpx.Response], None] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send with one retry on transport failure or 5xx.

        ``on_response`` sees every response, retried ones included, before its
        status is interpreted.
        """
        client = self._get_client()
        attempt = 0
        while True:
            try:
                response = client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                if attempt >= self._retries:
                    raise NetworkError(f"Request to {url} timed out: {e}") from e
            except httpx.TransportError as e:
                if attempt >= self._retries:
                    raise NetworkError(f"Request to {url} failed: {e}") from e
            else:
                if on_response is not None:
                    on_response(response)
                if response.status_code < 500 or attempt >= self._retries:
                    return response

            attempt += 1
            delay = self._backoff * attempt
            logger.debug("Retrying %s %s in %.1fs (attempt %d)", method, url, delay, attempt + 1)
            self._sleep(delay)

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = self._send(method, url, **kwargs)
        self._raise_for_status(response)
        return response


__all__ = ["HTTPClient", "USER_AGENT"]
