"""Fan-out of parsed queries into instant and range fetches."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from http import HTTPStatus

from promframes.core.config import DatasourceSettings
from promframes.core.encoding.prometheus import decode_response
from promframes.core.errors import (
    CombinedQueryError,
    DecodeError,
    FetchTimeoutError,
    ParseError,
    QueryError,
    TransportError,
    UpstreamError,
)
from promframes.core.frames import annotate_frames
from promframes.core.interval import IntervalCalculator
from promframes.core.models import DispatchResult, FetchOutcome, Frame, Query, QueryRequest
from promframes.core.parser import parse_query
from promframes.core.ports import PromQueryClientPort, RawResponse

logger = logging.getLogger(__name__)

FetchCall = Callable[[Query], Awaitable[RawResponse]]


def http_status(code: int) -> HTTPStatus | int:
    """Return the HTTPStatus member for a code, or the code itself."""
    try:
        return HTTPStatus(code)
    except ValueError:
        return code


def merge_outcomes(
    instant: FetchOutcome | None, range_: FetchOutcome | None
) -> DispatchResult:
    """Merge the instant and range outcomes of one query.

    Frames are concatenated instant first. Errors of both fetches are joined
    into a CombinedQueryError. The status is that of the last fetch made.
    """
    frames = []
    error: QueryError | None = None
    status = None
    for outcome in (instant, range_):
        if outcome is None:
            continue
        frames.extend(outcome.frames)
        if outcome.error is not None:
            error = outcome.error if error is None else CombinedQueryError(error, outcome.error)
        status = outcome.status
    return DispatchResult(
        frames=tuple(frames),
        error=error,
        status=status,
        instant=instant,
        range=range_,
    )


class QueryDispatcher:
    """Runs batches of queries against a Prometheus-style query API.

    Each query is parsed, sent as an instant and/or range query through the
    client port, decoded and annotated. Failures are reported per query and
    never abort the rest of the batch.
    """

    def __init__(
        self,
        client: PromQueryClientPort,
        settings: DatasourceSettings,
        calculator: IntervalCalculator | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._calculator = calculator or IntervalCalculator()

    async def dispatch(self, requests: Iterable[QueryRequest]) -> dict[str, DispatchResult]:
        """Run a batch of queries.

        Args:
            requests: Query requests; a repeated ref_id keeps the last result.

        Returns:
            Results keyed by ref_id.
        """
        requests = list(requests)
        logger.debug("Dispatching %d queries", len(requests))
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_queries)

        async def run(request: QueryRequest) -> tuple[str, DispatchResult]:
            async with semaphore:
                return request.ref_id, await self.handle_query(request)

        results = await asyncio.gather(*(run(request) for request in requests))
        return dict(results)

    async def handle_query(self, request: QueryRequest) -> DispatchResult:
        """Parse and fetch a single query."""
        logger.debug("Processing query %s", request.ref_id)
        try:
            query = parse_query(request, self._settings.time_interval, self._calculator)
        except ParseError as err:
            return DispatchResult(error=err, status=err.status)

        try:
            return await self.fetch(query)
        except Exception as err:
            logger.exception("Unexpected error while handling query %s", request.ref_id)
            return DispatchResult(
                error=QueryError(f"internal error: {err}"),
                status=HTTPStatus.INTERNAL_SERVER_ERROR,
            )

    async def fetch(self, query: Query) -> DispatchResult:
        """Issue the instant fetch, then the range fetch, and merge them."""
        instant = None
        range_ = None
        if query.instant:
            instant = await self._run_fetch(query, self._client.query_instant)
        if query.range:
            range_ = await self._run_fetch(query, self._client.query_range)
        return merge_outcomes(instant, range_)

    async def _run_fetch(self, query: Query, call: FetchCall) -> FetchOutcome:
        timeout = self._settings.query_timeout
        try:
            async with asyncio.timeout(timeout):
                response = await call(query)
                try:
                    return await self._read_response(query, response)
                finally:
                    await self._close(response)
        except TimeoutError:
            err = FetchTimeoutError(f"query {query.ref_id!r} timed out after {timeout}s")
            return FetchOutcome(error=err, status=err.status)
        except TransportError as err:
            return FetchOutcome(error=err, status=err.status)

    async def _read_response(self, query: Query, response: RawResponse) -> FetchOutcome:
        code = response.status_code
        status = http_status(code)
        ok = 200 <= code < 300

        try:
            decoded = await decode_response(
                response.aiter_bytes(), self._settings.decode_options
            )
        except DecodeError as err:
            if ok:
                return _failed_outcome(query, err, status)
            upstream = UpstreamError(f"unexpected response status {code}", status=status)
            return _failed_outcome(query, upstream, status)

        if decoded.error is not None:
            if ok and decoded.status_override is not None:
                status = decoded.status_override
            upstream = UpstreamError(
                decoded.error.message, status=status, error_type=decoded.error.error_type
            )
            return _failed_outcome(query, upstream, status)

        if not ok:
            upstream = UpstreamError(f"unexpected response status {code}", status=status)
            return _failed_outcome(query, upstream, status)

        return FetchOutcome(frames=tuple(annotate_frames(query, decoded.frames)), status=status)

    async def _close(self, response: RawResponse) -> None:
        try:
            await response.aclose()
        except Exception:
            logger.warning("Failed to close response body", exc_info=True)


def _failed_outcome(
    query: Query, error: QueryError, status: HTTPStatus | int
) -> FetchOutcome:
    """Outcome of a fetch that got a response but no usable result.

    An empty frame still carries the executed query for inspection.
    """
    return FetchOutcome(
        frames=tuple(annotate_frames(query, (Frame(),))), error=error, status=status
    )
