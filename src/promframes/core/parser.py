"""Normalization of abstract query requests into Query values."""

from datetime import timedelta

from promframes.core.errors import EmptyExpressionError
from promframes.core.interval import IntervalCalculator, parse_duration
from promframes.core.models import Query, QueryRequest


def parse_query(
    request: QueryRequest,
    default_time_interval: str,
    calculator: IntervalCalculator,
) -> Query:
    """Turn a query request into a normalized Query.

    The step is taken from the request when it carries one, then from the
    datasource's default time interval, and is otherwise derived from the
    request's time range and point budget.

    Args:
        request: The abstract query.
        default_time_interval: Datasource-wide interval text, may be empty.
        calculator: Calculator used when no step text is available.

    Returns:
        The parsed Query.

    Raises:
        EmptyExpressionError: If the expression is blank.
        InvalidDurationError: If the step or the default interval is malformed.
    """
    if not request.expr.strip():
        raise EmptyExpressionError(request.ref_id)

    instant, range_ = request.instant, request.range
    if not instant and not range_:
        range_ = True

    step = _step_from_text(request.step) or _step_from_text(default_time_interval)
    if step is None:
        step = calculator.calculate(request.time_range, request.max_data_points)

    return Query(
        ref_id=request.ref_id,
        expr=request.expr,
        start=request.time_range.start,
        end=request.time_range.end,
        step=step,
        instant=instant,
        range=range_,
        legend_format=request.legend_format,
    )


def _step_from_text(text: str) -> timedelta | None:
    """Parse step text; blank text and "0s" mean "not set"."""
    if not text.strip():
        return None
    step = parse_duration(text)
    return step if step > timedelta(0) else None
