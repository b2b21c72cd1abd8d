"""Core domain models for queries and tabular results."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Any

from promframes.core.errors import QueryError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TimeRange:
    """An absolute time range.

    Attributes:
        start: Range start (timezone-aware).
        end: Range end (timezone-aware).
    """

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        """Length of the range, never negative."""
        return max(self.end - self.start, timedelta(0))


@dataclass(frozen=True)
class QueryRequest:
    """An abstract query as received from the caller.

    Attributes:
        ref_id: Caller-assigned identifier, unique within a batch.
        expr: Query expression, forwarded verbatim.
        time_range: Absolute range the query covers.
        max_data_points: Point budget; 0 or less selects the default budget.
        step: Explicit step text (e.g. "30s"); empty to derive one.
        instant: Request an instant query.
        range: Request a range query.
        legend_format: Series naming template ("", "__auto" or custom).
    """

    ref_id: str
    expr: str
    time_range: TimeRange
    max_data_points: int = 0
    step: str = ""
    instant: bool = False
    range: bool = False
    legend_format: str = ""


@dataclass(frozen=True)
class Query:
    """A normalized query, ready to be sent upstream.

    Attributes:
        ref_id: Identifier of the originating request.
        expr: Query expression.
        start: Range start.
        end: Range end; also the evaluation time of instant queries.
        step: Resolution of range queries.
        instant: Issue an instant query.
        range: Issue a range query.
        legend_format: Series naming template.
    """

    ref_id: str
    expr: str
    start: datetime
    end: datetime
    step: timedelta
    instant: bool
    range: bool
    legend_format: str = ""

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def aligned_range(self) -> tuple[datetime, datetime]:
        """Return (start, end) snapped down to multiples of the step.

        Aligned ranges make successive range queries hit the same
        evaluation timestamps.
        """
        step_us = _microseconds(self.step)
        if step_us <= 0:
            return self.start, self.end
        return _align(self.start, step_us), _align(self.end, step_us)


def _microseconds(delta: timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def _align(moment: datetime, step_us: int) -> datetime:
    offset_us = _microseconds(moment - EPOCH)
    return EPOCH + timedelta(microseconds=(offset_us // step_us) * step_us)


@dataclass(frozen=True)
class FieldConfig:
    """Display configuration attached to a field.

    Attributes:
        interval: Sampling interval in milliseconds.
        display_name_from_ds: Display name chosen by the datasource.
    """

    interval: float | None = None
    display_name_from_ds: str | None = None


@dataclass(frozen=True)
class Field:
    """A named column of a frame.

    Attributes:
        name: Column name ("Time" or "Value" for decoded series).
        values: Column values.
        labels: Series labels; set on value fields only.
        config: Optional display configuration.
    """

    name: str
    values: tuple[Any, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)
    config: FieldConfig | None = None

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class Notice:
    """A message attached to a frame (upstream warnings and infos)."""

    severity: str
    text: str


@dataclass(frozen=True)
class FrameMeta:
    """Frame-level metadata.

    Attributes:
        type: Frame type hint ("timeseries-multi", "numeric-multi").
        custom: Datasource specific metadata, e.g. {"resultType": "matrix"}.
        executed_query_string: Diagnostic description of the executed query.
        notices: Upstream warnings and infos.
    """

    type: str | None = None
    custom: dict[str, Any] = field(default_factory=dict)
    executed_query_string: str | None = None
    notices: tuple[Notice, ...] = ()


@dataclass(frozen=True)
class Frame:
    """A named table of fields."""

    name: str = ""
    fields: tuple[Field, ...] = ()
    meta: FrameMeta = field(default_factory=FrameMeta)

    @property
    def row_count(self) -> int:
        return len(self.fields[0]) if self.fields else 0


@dataclass(frozen=True)
class FetchOutcome:
    """Result of a single instant or range fetch."""

    frames: tuple[Frame, ...] = ()
    error: QueryError | None = None
    status: HTTPStatus | int | None = None


@dataclass(frozen=True)
class DispatchResult:
    """Per-query result of a dispatch.

    Attributes:
        frames: Frames of the instant fetch followed by those of the range fetch.
        error: The fetch error, or both joined when both fetches failed.
        status: HTTP-style status of the last fetch performed.
        instant: Unmerged outcome of the instant fetch, if one was made.
        range: Unmerged outcome of the range fetch, if one was made.
    """

    frames: tuple[Frame, ...] = ()
    error: QueryError | None = None
    status: HTTPStatus | int | None = None
    instant: FetchOutcome | None = None
    range: FetchOutcome | None = None
