"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from typing import Any

import httpx
import pytest

from promframes.adapters.http import HttpxPromClient
from promframes.core.models import Query, QueryRequest, TimeRange
from tests.helpers import END, START


@pytest.fixture
def time_range() -> TimeRange:
    """One hour starting 2024-01-01T00:00:00Z."""
    return TimeRange(start=START, end=END)


@pytest.fixture
def make_request(time_range: TimeRange) -> Callable[..., QueryRequest]:
    """Factory fixture for QueryRequest values with sensible defaults."""

    def _make(ref_id: str = "A", expr: str = "up", **kwargs: Any) -> QueryRequest:
        kwargs.setdefault("time_range", time_range)
        return QueryRequest(ref_id=ref_id, expr=expr, **kwargs)

    return _make


@pytest.fixture
def make_query() -> Callable[..., Query]:
    """Factory fixture for parsed Query values."""

    def _make(**kwargs: Any) -> Query:
        defaults: dict[str, Any] = {
            "ref_id": "A",
            "expr": "up",
            "start": START,
            "end": END,
            "step": timedelta(seconds=15),
            "instant": False,
            "range": True,
            "legend_format": "",
        }
        defaults.update(kwargs)
        return Query(**defaults)

    return _make


@pytest.fixture
async def mock_prom_client() -> AsyncGenerator[Callable[..., HttpxPromClient]]:
    """Factory fixture creating HttpxPromClients over httpx.MockTransport.

    Usage:
        async def test_something(mock_prom_client):
            client = mock_prom_client(handler, http_method="POST")
            response = await client.query_range(query)
    """
    created: list[httpx.AsyncClient] = []

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        url: str = "http://db.test:4000",
        http_method: str = "GET",
    ) -> HttpxPromClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        created.append(http_client)
        return HttpxPromClient(http_client, url, http_method)

    yield _make

    for http_client in created:
        await http_client.aclose()
