from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from record_counter.errors import TransportError

logger = structlog.get_logger()

_ODATA_HEADERS = {
    "Accept": "application/json",
    "OData-MaxVersion": "4.0",
    "OData-Version": "4.0",
    "Prefer": 'odata.include-annotations="*"',
}


def create_get_with_retry(
    client: httpx.AsyncClient,
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
):
    """Create a retrying GET for the given client.

    Only connection-level failures (connect errors, timeouts) are retried;
    HTTP error statuses are returned to the caller untouched.
    """

    @retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type((httpx.TransportError, TimeoutError)),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "transport_retry",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else "unknown",
        ),
    )
    async def get_with_retry(path: str) -> httpx.Response:
        return await client.get(path)

    return get_with_retry


class HttpQueryExecutor:
    """QueryExecutor over httpx against a Dataverse Web API root."""

    def __init__(
        self,
        base_url: str,
        api_version: str = "9.2",
        access_token: str = "",
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        min_wait: float = 1,
        max_wait: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = dict(_ODATA_HEADERS)
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._api_root = f"{base_url.rstrip('/')}/api/data/v{api_version}/"
        self._client = httpx.AsyncClient(
            base_url=self._api_root,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )
        self._get_with_retry = create_get_with_retry(
            self._client, max_attempts=max_attempts, min_wait=min_wait, max_wait=max_wait
        )

    @property
    def api_root(self) -> str:
        return self._api_root

    async def query(self, path: str) -> dict[str, Any]:
        try:
            response = await self._get_with_retry(path.lstrip("/"))
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}", path=path) from e

        if response.is_error:
            raise TransportError(
                f"HTTP {response.status_code}: {_error_message(response)}",
                path=path,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(
                f"Response is not valid JSON: {e}",
                path=path,
                status_code=response.status_code,
            ) from e
        if not isinstance(payload, dict):
            raise TransportError(
                "Response body is not a JSON object",
                path=path,
                status_code=response.status_code,
            )
        return payload

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpQueryExecutor:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()


def _error_message(response: httpx.Response) -> str:
    """Pull the OData error message out of an error body when present."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.text[:200]
