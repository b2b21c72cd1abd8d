"""Integration tests for the httpx query client over a mock transport."""

from collections.abc import Callable
from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from promframes.adapters.http import (
    HttpxPromClient,
    format_seconds,
    remove_url_ending_slash,
)
from promframes.core.errors import FetchTimeoutError, TransportError
from promframes.core.models import Query
from tests.helpers import END, START, matrix_body

MakeQuery = Callable[..., Query]
MakeClient = Callable[..., HttpxPromClient]

START_S = str(int(START.timestamp()))
END_S = str(int(END.timestamp()))


class Recorder:
    """MockTransport handler that records requests and answers with a body."""

    def __init__(self, body: bytes = b"{}", status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.body)


class TestHelpers:
    """Tests for URL and number formatting helpers."""

    @pytest.mark.tier(0)
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(1704067200.0, "1704067200"), (1.5, "1.5"), (0.0, "0"), (15.0, "15")],
    )
    def test_format_seconds(self, value: float, expected: str) -> None:
        assert format_seconds(value) == expected

    @pytest.mark.tier(0)
    def test_remove_url_ending_slash(self) -> None:
        assert remove_url_ending_slash("http://db:4000/") == "http://db:4000"
        assert remove_url_ending_slash("http://db:4000") == "http://db:4000"


class TestQueryRequests:
    """Tests for the requests sent for instant and range queries."""

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.RangeQuery")
    async def test_range_query_get(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        recorder = Recorder()
        client = mock_prom_client(recorder)

        response = await client.query_range(make_query(expr="up{job='a'}"))
        await response.aclose()

        (request,) = recorder.requests
        assert request.method == "GET"
        assert request.url.path == "/v1/prometheus/api/v1/query_range"
        assert dict(request.url.params) == {
            "query": "up{job='a'}",
            "start": START_S,
            "end": END_S,
            "step": "15",
        }

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.InstantQuery")
    async def test_instant_query_uses_end_time(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        recorder = Recorder()
        client = mock_prom_client(recorder)

        response = await client.query_instant(make_query())
        await response.aclose()

        (request,) = recorder.requests
        assert request.url.path == "/v1/prometheus/api/v1/query"
        assert dict(request.url.params) == {"query": "up", "time": END_S}

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.Post")
    async def test_post_sends_form_body(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        recorder = Recorder()
        client = mock_prom_client(recorder, http_method="POST")

        response = await client.query_range(make_query())
        await response.aclose()

        (request,) = recorder.requests
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        form = parse_qs(request.content.decode())
        assert form["query"] == ["up"]
        assert form["step"] == ["15"]
        assert not request.url.params

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.AlignedRange")
    async def test_range_is_aligned_to_step(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        recorder = Recorder()
        client = mock_prom_client(recorder)
        query = make_query(
            start=START + timedelta(seconds=7),
            end=END + timedelta(seconds=59),
            step=timedelta(minutes=1),
        )

        response = await client.query_range(query)
        await response.aclose()

        params = recorder.requests[0].url.params
        assert params["start"] == START_S
        assert params["end"] == END_S
        assert params["step"] == "60"

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.BaseUrl")
    async def test_trailing_slash_in_url(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        recorder = Recorder()
        client = mock_prom_client(recorder, url="http://db.test:4000/")

        response = await client.query_range(make_query())
        await response.aclose()

        assert str(recorder.requests[0].url).startswith(
            "http://db.test:4000/v1/prometheus/api/v1/query_range?"
        )


class TestResponses:
    """Tests for response streaming and error mapping."""

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.StreamsBody")
    async def test_body_is_streamed(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        body = matrix_body(({"job": "a"}, [(1, "1")]))
        client = mock_prom_client(Recorder(body))

        response = await client.query_range(make_query())
        chunks = [chunk async for chunk in response.aiter_bytes()]
        await response.aclose()

        assert response.status_code == 200
        assert b"".join(chunks) == body

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.Non2xxReturned")
    async def test_non_2xx_is_returned(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        client = mock_prom_client(Recorder(b"oops", status_code=503))

        response = await client.query_range(make_query())
        await response.aclose()

        assert response.status_code == 503

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.TransportError")
    async def test_connection_error_is_transport_error(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = mock_prom_client(refuse)

        with pytest.raises(TransportError) as excinfo:
            await client.query_range(make_query())

        assert not isinstance(excinfo.value, FetchTimeoutError)
        assert excinfo.value.status == 502

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.Timeout")
    async def test_timeout_is_fetch_timeout(
        self, mock_prom_client: MakeClient, make_query: MakeQuery
    ) -> None:
        def stall(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = mock_prom_client(stall)

        with pytest.raises(FetchTimeoutError):
            await client.query_instant(make_query())


class TestHealthAndResources:
    """Tests for the health endpoint and resource forwarding."""

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.Health")
    async def test_health_hits_health_endpoint(self, mock_prom_client: MakeClient) -> None:
        recorder = Recorder(b"ok")
        client = mock_prom_client(recorder)

        response = await client.health()

        assert response.status_code == 200
        assert recorder.requests[0].url.path == "/health"

    @pytest.mark.tier(2)
    @pytest.mark.tra("Adapter.Http.Resource")
    async def test_resource_is_forwarded_below_prefix(self, mock_prom_client: MakeClient) -> None:
        recorder = Recorder(b'{"status": "success", "data": ["job"]}')
        client = mock_prom_client(recorder)

        response = await client.query_resource(
            "get", "/api/v1/labels", params={"match[]": "up"}, headers={"accept": "application/json"}
        )

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/v1/prometheus/api/v1/labels"
        assert request.url.params["match[]"] == "up"
        assert request.headers["accept"] == "application/json"
        assert response.content == b'{"status": "success", "data": ["job"]}'
