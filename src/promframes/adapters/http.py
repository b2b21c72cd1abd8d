"""httpx implementation of the Prometheus query client port."""

import logging
from collections.abc import AsyncIterator, Mapping
from datetime import datetime, timedelta
from typing import Any

import httpx

from promframes.core.errors import FetchTimeoutError, TransportError
from promframes.core.models import Query

logger = logging.getLogger(__name__)

PROMETHEUS_PATH_PREFIX = "/v1/prometheus/"
QUERY_PATH = "api/v1/query"
QUERY_RANGE_PATH = "api/v1/query_range"
HEALTH_PATH = "/health"


def remove_url_ending_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


def format_seconds(value: float) -> str:
    """Format seconds without a trailing ".0" or exponent."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


def format_time(moment: datetime) -> str:
    return format_seconds(moment.timestamp())


def format_step(step: timedelta) -> str:
    return format_seconds(step.total_seconds())


class StreamedResponse:
    """A streaming httpx response exposed as a RawResponse.

    Failures while reading the body surface as TransportError or
    FetchTimeoutError, like failures while sending the request.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.status_code = response.status_code
        self.headers = response.headers

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as err:
            raise FetchTimeoutError(f"reading response body timed out: {err}") from err
        except httpx.HTTPError as err:
            raise TransportError(f"reading response body failed: {err}") from err

    async def aclose(self) -> None:
        await self._response.aclose()


class HttpxPromClient:
    """Prometheus HTTP API client on top of a pooled httpx.AsyncClient.

    Query responses are returned with their body unread; callers must
    ``aclose()`` them. Transport failures are raised as TransportError, and
    timeouts as FetchTimeoutError.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        http_method: str = "GET",
    ) -> None:
        """Initialize the client.

        Args:
            client: Pooled HTTP client; closed by ``aclose()``.
            url: Database base URL, without the Prometheus API prefix.
            http_method: "GET" sends parameters in the query string, "POST"
                as a form body.
        """
        self._client = client
        self.url = remove_url_ending_slash(url)
        self.base_url = self.url + PROMETHEUS_PATH_PREFIX
        self.http_method = http_method.upper()

    async def query_instant(self, query: Query) -> StreamedResponse:
        params = {"query": query.expr, "time": format_time(query.end)}
        return await self._query(QUERY_PATH, params)

    async def query_range(self, query: Query) -> StreamedResponse:
        start, end = query.aligned_range()
        params = {
            "query": query.expr,
            "start": format_time(start),
            "end": format_time(end),
            "step": format_step(query.step),
        }
        return await self._query(QUERY_RANGE_PATH, params)

    async def _query(self, path: str, params: dict[str, str]) -> StreamedResponse:
        url = self.base_url + path
        if self.http_method == "POST":
            request = self._client.build_request("POST", url, data=params)
        else:
            request = self._client.build_request("GET", url, params=params)
        logger.debug("Sending %s %s", request.method, path)
        return StreamedResponse(await self.send(request))

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request, translating httpx failures into query errors."""
        try:
            return await self._client.send(request, stream=True)
        except httpx.TimeoutException as err:
            raise FetchTimeoutError(f"request to {request.url.path} timed out: {err}") from err
        except httpx.HTTPError as err:
            raise TransportError(f"request to {request.url.path} failed: {err}") from err

    async def health(self) -> httpx.Response:
        """GET the database health endpoint and read the response."""
        request = self._client.build_request("GET", self.url + HEALTH_PATH)
        return await self._send_and_read(request)

    async def query_resource(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> httpx.Response:
        """Forward an arbitrary request below the Prometheus API prefix.

        The response is fully read before it is returned.
        """
        request = self._client.build_request(
            method.upper(),
            self.base_url + path.lstrip("/"),
            params=params,
            headers=headers,
            content=body or None,
        )
        return await self._send_and_read(request)

    async def _send_and_read(self, request: httpx.Request) -> httpx.Response:
        response = await self.send(request)
        try:
            await response.aread()
        except httpx.TimeoutException as err:
            raise FetchTimeoutError(f"reading {request.url.path} timed out: {err}") from err
        except httpx.HTTPError as err:
            raise TransportError(f"reading {request.url.path} failed: {err}") from err
        finally:
            await response.aclose()
        return response

    async def aclose(self) -> None:
        await self._client.aclose()
