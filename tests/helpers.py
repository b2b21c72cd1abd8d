"""Payload builders and fakes shared by the test suites."""

import json
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from promframes.core.errors import TransportError
from promframes.core.models import Query

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = START + timedelta(hours=1)


async def body_chunks(payload: bytes, chunk_size: int = 7) -> AsyncIterator[bytes]:
    """Yield a payload in small chunks to exercise streaming decode."""
    for i in range(0, len(payload), chunk_size):
        yield payload[i : i + chunk_size]


def matrix_body(*series: tuple[dict[str, str], list[tuple[float, str]]]) -> bytes:
    """Build a successful matrix response body."""
    result = [
        {"metric": labels, "values": [[ts, value] for ts, value in points]}
        for labels, points in series
    ]
    return json.dumps(
        {"status": "success", "data": {"resultType": "matrix", "result": result}}
    ).encode()


def vector_body(*samples: tuple[dict[str, str], tuple[float, str]]) -> bytes:
    """Build a successful vector response body."""
    result = [{"metric": labels, "value": [ts, value]} for labels, (ts, value) in samples]
    return json.dumps(
        {"status": "success", "data": {"resultType": "vector", "result": result}}
    ).encode()


def error_body(error_type: str, error: str) -> bytes:
    """Build a Prometheus error envelope."""
    return json.dumps({"status": "error", "errorType": error_type, "error": error}).encode()


class FakeResponse:
    """In-memory RawResponse."""

    def __init__(self, body: bytes, status_code: int = 200) -> None:
        self.status_code = status_code
        self._body = body
        self.closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in body_chunks(self._body):
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


Outcome = FakeResponse | Exception | Callable[[Query], Any]


class FakeQueryClient:
    """PromQueryClientPort returning canned responses or raising errors.

    An outcome may be a FakeResponse, an exception to raise, or an async
    callable receiving the query.
    """

    def __init__(
        self, instant: Outcome | None = None, range: Outcome | None = None
    ) -> None:
        self.instant = instant
        self.range = range
        self.calls: list[tuple[str, Query]] = []

    async def query_instant(self, query: Query) -> FakeResponse:
        self.calls.append(("instant", query))
        return await self._answer(self.instant, query)

    async def query_range(self, query: Query) -> FakeResponse:
        self.calls.append(("range", query))
        return await self._answer(self.range, query)

    async def _answer(self, outcome: Outcome | None, query: Query) -> FakeResponse:
        if outcome is None:
            raise TransportError("no response configured")
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        return await outcome(query)
