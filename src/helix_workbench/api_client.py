from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

_DEFAULT_TIMEOUT_SECONDS = 30.0


class ApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class RequestTimeoutError(ApiError):
    pass


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.1f}s (attempt {attempt})...")


async def _error_from_response(response: httpx.Response) -> ApiError:
    if response.status_code == 401:
        logger.warning(f"Authentication rejected for {response.request.url}; check HELIX_API_TOKEN")

    message = f"HTTP {response.status_code}"
    code: str | None = None
    try:
        await response.aread()
        payload = response.json()
    except ValueError:
        message = response.reason_phrase or message
    else:
        if isinstance(payload, dict):
            message = str(payload.get("detail") or payload.get("message") or message)
            code = payload.get("code")
    return ApiError(message, response.status_code, code)


class ApiClient:
    """Shared async HTTP client for the analysis and AI services."""

    def __init__(
        self,
        *,
        token: str | None = None,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._retry_kwargs = {
            "retry": retry_if_exception_type(httpx.TransportError),
            "wait": wait_exponential(multiplier=0.5, min=0.5, max=8),
            "stop": stop_after_attempt(max(1, max_attempts)),
            "before_sleep": _on_retry,
            "reraise": True,
        }
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        # Expiry is the server's call; always forward the token when present.
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if extra:
            headers.update(extra)
        return headers

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        logger.debug(f"{method} {url}")
        try:
            async for attempt in AsyncRetrying(**self._retry_kwargs):
                with attempt:
                    response = await self._client.request(
                        method,
                        url,
                        json=json,
                        params=params,
                        headers=self._headers(),
                    )
        except httpx.TimeoutException as ex:
            raise RequestTimeoutError(f"Request timeout after {self._timeout_seconds:g}s") from ex

        if response.status_code >= 400:
            raise await _error_from_response(response)

        if response.status_code == 204:
            return None
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return None

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request_json("GET", url, params=params)

    async def post_json(self, url: str, data: Any = None) -> Any:
        return await self.request_json("POST", url, json=data)

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        accept: str | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming response. Not retried: a replay could duplicate consumed events."""
        extra = {"Accept": accept} if accept else None
        logger.debug(f"{method} {url} (stream)")
        try:
            async with self._client.stream(method, url, json=json, headers=self._headers(extra)) as response:
                if response.status_code >= 400:
                    raise await _error_from_response(response)
                yield response
        except httpx.TimeoutException as ex:
            raise RequestTimeoutError(f"Stream timeout after {self._timeout_seconds:g}s") from ex

    async def aclose(self) -> None:
        await self._client.aclose()
