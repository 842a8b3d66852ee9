from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from record_counter.errors import TransportError

Handler = Callable[[str], Any]


class FakeExecutor:
    """In-memory QueryExecutor that records every path it is asked for."""

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self.calls: list[str] = []

    async def query(self, path: str) -> dict[str, Any]:
        self.calls.append(path)
        result = self._handler(path)
        if isinstance(result, Exception):
            raise result
        return result


def scripted(responses: list[dict[str, Any] | Exception]) -> FakeExecutor:
    """Executor returning the given responses in order, one per call."""
    remaining = iter(responses)
    return FakeExecutor(lambda _path: next(remaining))


def make_rows(count: int, prefix: str = "row") -> list[dict[str, Any]]:
    return [{"id": f"{prefix}-{i}"} for i in range(count)]


def transport_error(path: str = "", status_code: int | None = 503) -> TransportError:
    return TransportError("Service Unavailable", path=path, status_code=status_code)


SIMPLE_FETCH = (
    '<fetch version="1.0" mapping="logical" distinct="false">'
    '<entity name="account"><attribute name="name" />'
    '<filter type="and"><condition attribute="statecode" operator="eq" value="0" /></filter>'
    "</entity></fetch>"
)


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings independent of the developer's environment."""
    for var in (
        "DATAVERSE_URL",
        "DATAVERSE_API_VERSION",
        "DATAVERSE_ACCESS_TOKEN",
        "EXACT_COUNT_PAGE_SIZE",
        "EXACT_COUNT_MAX_PAGES",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")


@pytest.fixture
def simple_fetch() -> str:
    return SIMPLE_FETCH
