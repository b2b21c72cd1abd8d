"""BDD step definitions for query dispatch features."""

import asyncio
from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from promframes.core.config import DatasourceSettings
from promframes.core.dispatcher import QueryDispatcher
from promframes.core.errors import TransportError
from promframes.core.models import DispatchResult, QueryRequest, TimeRange
from tests.helpers import END, START, FakeQueryClient, FakeResponse, error_body, matrix_body


@dataclass
class DispatchScenarioContext:
    """Shared state between steps in a dispatch scenario."""

    client: FakeQueryClient = field(default_factory=FakeQueryClient)
    settings: DatasourceSettings = field(
        default_factory=lambda: DatasourceSettings(url="http://db.test:4000")
    )
    results: dict[str, DispatchResult] = field(default_factory=dict)


@pytest.fixture
def ctx() -> DispatchScenarioContext:
    """Fresh scenario context for each test."""
    return DispatchScenarioContext()


def _dispatch(ctx: DispatchScenarioContext, request: QueryRequest) -> None:
    dispatcher = QueryDispatcher(ctx.client, ctx.settings)
    ctx.results = asyncio.run(dispatcher.dispatch([request]))


# === Given ===
@given("a datasource with default settings")
def step_default_settings(ctx: DispatchScenarioContext) -> None:
    ctx.settings = DatasourceSettings(url="http://db.test:4000")


@given(parsers.parse('the database answers range queries with series for jobs "{jobs}"'))
def step_range_series(ctx: DispatchScenarioContext, jobs: str) -> None:
    series = [({"job": job}, [(1704067200, "1")]) for job in jobs.split(",")]
    ctx.client.range = FakeResponse(matrix_body(*series))


@given("the database answers range queries with an unlabelled series")
def step_range_unlabelled(ctx: DispatchScenarioContext) -> None:
    ctx.client.range = FakeResponse(matrix_body(({}, [(1704067200, "3")])))


@given("the database answers range queries with an empty matrix")
def step_range_empty(ctx: DispatchScenarioContext) -> None:
    ctx.client.range = FakeResponse(matrix_body())


@given(parsers.parse('the database answers range queries with error "{error_type}" "{error}"'))
def step_range_error(ctx: DispatchScenarioContext, error_type: str, error: str) -> None:
    ctx.client.range = FakeResponse(error_body(error_type, error), status_code=400)


@given("the database refuses instant queries")
def step_instant_refused(ctx: DispatchScenarioContext) -> None:
    ctx.client.instant = TransportError("connection refused")


# === When ===
@when(
    parsers.re(
        r'query "(?P<ref_id>[^"]+)" with expression "(?P<expr>[^"]*)" '
        r'and legend "(?P<legend>[^"]*)" is dispatched$'
    )
)
def step_dispatch(ctx: DispatchScenarioContext, ref_id: str, expr: str, legend: str) -> None:
    request = QueryRequest(ref_id, expr, TimeRange(START, END), legend_format=legend)
    _dispatch(ctx, request)


@when(parsers.parse('query "{ref_id}" with expression "{expr}" is dispatched as instant and range'))
def step_dispatch_both(ctx: DispatchScenarioContext, ref_id: str, expr: str) -> None:
    request = QueryRequest(ref_id, expr, TimeRange(START, END), instant=True, range=True)
    _dispatch(ctx, request)


# === Then ===
@then(parsers.parse('query "{ref_id}" should have status {status:d}'))
def step_status(ctx: DispatchScenarioContext, ref_id: str, status: int) -> None:
    assert ctx.results[ref_id].status == status


@then(parsers.parse('query "{ref_id}" should have frames named "{names}"'))
def step_frame_names(ctx: DispatchScenarioContext, ref_id: str, names: str) -> None:
    assert [frame.name for frame in ctx.results[ref_id].frames] == names.split(",")


@then(parsers.parse('query "{ref_id}" should have {count:d} frame with {rows:d} rows'))
def step_frame_rows(ctx: DispatchScenarioContext, ref_id: str, count: int, rows: int) -> None:
    frames = ctx.results[ref_id].frames
    assert len(frames) == count
    assert all(frame.row_count == rows for frame in frames)


@then(parsers.parse('query "{ref_id}" should have no error'))
def step_no_error(ctx: DispatchScenarioContext, ref_id: str) -> None:
    assert ctx.results[ref_id].error is None


@then(parsers.parse('query "{ref_id}" should have an error containing "{text}"'))
def step_error_contains(ctx: DispatchScenarioContext, ref_id: str, text: str) -> None:
    assert text in str(ctx.results[ref_id].error)


@then(parsers.parse("the database should have received {count:d} queries"))
def step_call_count(ctx: DispatchScenarioContext, count: int) -> None:
    assert len(ctx.client.calls) == count
