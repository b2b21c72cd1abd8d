"""Datasource instance: owns the pooled HTTP client and the dispatcher."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

import httpx

from promframes.adapters.http import HttpxPromClient
from promframes.core.config import DatasourceSettings
from promframes.core.dispatcher import QueryDispatcher
from promframes.core.errors import TransportError
from promframes.core.interval import IntervalCalculator
from promframes.core.models import DispatchResult, QueryRequest

logger = logging.getLogger(__name__)

HEALTH_STATUS_OK = "ok"
HEALTH_STATUS_ERROR = "error"

# Seconds; used for the built-in client when no query timeout is configured
DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a datasource health check."""

    status: str
    message: str

    @property
    def ok(self) -> bool:
        return self.status == HEALTH_STATUS_OK


@dataclass(frozen=True)
class ResourceRequest:
    """A request forwarded unchanged to the database API."""

    path: str
    method: str = "GET"
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class ResourceResponse:
    """The upstream's answer to a forwarded resource request."""

    status: int
    headers: dict[str, str]
    body: bytes


class PromDatasource:
    """One configured datasource instance.

    The instance owns a single pooled httpx.AsyncClient for its lifetime and
    releases it exactly once, on ``aclose()`` or when leaving ``async with``.
    """

    def __init__(
        self,
        settings: DatasourceSettings,
        client: HttpxPromClient,
        calculator: IntervalCalculator | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.dispatcher = QueryDispatcher(client, settings, calculator)
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: DatasourceSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "PromDatasource":
        """Create an instance, building the HTTP client unless one is given.

        Args:
            settings: Datasource settings.
            http_client: Pre-configured client (TLS, auth, proxies). The
                instance takes ownership of it.
        """
        if http_client is None:
            http_client = httpx.AsyncClient(
                timeout=settings.query_timeout or DEFAULT_HTTP_TIMEOUT
            )
        client = HttpxPromClient(http_client, settings.url, settings.http_method)
        logger.debug("Created datasource for %s", client.base_url)
        return cls(settings, client)

    @property
    def closed(self) -> bool:
        return self._closed

    async def query_data(self, requests: Iterable[QueryRequest]) -> dict[str, DispatchResult]:
        """Run a batch of queries. See QueryDispatcher.dispatch."""
        if self._closed:
            raise RuntimeError("datasource is closed")
        return await self.dispatcher.dispatch(requests)

    async def check_health(self) -> HealthCheckResult:
        """Check that the database answers 200 on its health endpoint."""
        try:
            response = await self.client.health()
        except TransportError as err:
            logger.warning("Health check request failed: %s", err)
            return HealthCheckResult(HEALTH_STATUS_ERROR, "request error")
        if response.status_code != 200:
            return HealthCheckResult(
                HEALTH_STATUS_ERROR, f"got response code {response.status_code}"
            )
        return HealthCheckResult(HEALTH_STATUS_OK, "Data source is working")

    async def call_resource(self, request: ResourceRequest) -> ResourceResponse:
        """Forward a request to the database API and return its response as is.

        Raises:
            TransportError: If the database could not be reached.
        """
        response = await self.client.query_resource(
            request.method,
            request.path,
            params=request.params,
            headers=request.headers,
            body=request.body,
        )
        return ResourceResponse(
            status=response.status_code,
            headers=_plain_headers(response.headers),
            body=response.content,
        )

    async def aclose(self) -> None:
        """Close idle pooled connections. Subsequent calls do nothing."""
        if self._closed:
            return
        self._closed = True
        await self.client.aclose()

    async def __aenter__(self) -> "PromDatasource":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def _plain_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {key: value for key, value in headers.items()}
