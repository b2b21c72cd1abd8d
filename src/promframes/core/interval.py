"""Step (resolution) calculation and duration text handling."""

import math
import re
from datetime import timedelta

from promframes.core.errors import InvalidDurationError
from promframes.core.models import TimeRange

# Point budget used when the request does not carry one
DEFAULT_MAX_DATA_POINTS = 1500

# Prometheus refuses range queries returning more than 11000 points per series
SAFE_RESOLUTION = 11000

MIN_STEP = timedelta(seconds=1)

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
    "y": 365 * 86400,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d|w|y)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "15s", "1h30m", "500ms" or "30".

    Bare numbers are seconds. A leading ">" (min-interval notation) is
    ignored.

    Raises:
        InvalidDurationError: If the text is not a duration.
    """
    raw = text.strip().lstrip(">").strip()
    if not raw:
        raise InvalidDurationError(text)
    try:
        seconds = float(raw)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds) or seconds < 0:
            raise InvalidDurationError(text)
        return timedelta(seconds=seconds)

    total = 0.0
    pos = 0
    while pos < len(raw):
        match = _DURATION_PART.match(raw, pos)
        if match is None:
            raise InvalidDurationError(text)
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=total)


def format_duration(delta: timedelta) -> str:
    """Format a duration in hour/minute/second notation, e.g. "1h30m0s".

    Units below the leading one are always written ("1m0s"). Durations
    under a second use "ms" or "µs", and fractional seconds are written
    as decimals ("1.5s").
    """
    total_us = delta // timedelta(microseconds=1)
    if total_us == 0:
        return "0s"
    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1000:
        return f"{sign}{total_us}µs"
    if total_us < 1_000_000:
        ms, us = divmod(total_us, 1000)
        return f"{sign}{ms}{_fraction(us, 3)}ms"

    hours, rest = divmod(total_us, 3600 * 1_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000)
    seconds, us = divmod(rest, 1_000_000)
    text = f"{seconds}{_fraction(us, 6)}s"
    if hours:
        text = f"{hours}h{minutes}m{text}"
    elif minutes:
        text = f"{minutes}m{text}"
    return sign + text


def _fraction(value: int, digits: int) -> str:
    if not value:
        return ""
    return "." + f"{value:0{digits}d}".rstrip("0")


class IntervalCalculator:
    """Derives the step of a range query from its span and point budget.

    The step is the time span divided by the point budget, rounded up to
    whole seconds, and never smaller than the requested minimum interval.
    """

    def __init__(
        self,
        default_max_data_points: int = DEFAULT_MAX_DATA_POINTS,
        safe_resolution: int = SAFE_RESOLUTION,
        min_step: timedelta = MIN_STEP,
    ) -> None:
        self.default_max_data_points = max(default_max_data_points, 1)
        self.safe_resolution = max(safe_resolution, 1)
        self.min_step = min_step

    def calculate(
        self,
        time_range: TimeRange,
        max_data_points: int,
        min_interval: timedelta = timedelta(0),
    ) -> timedelta:
        """Calculate the step for a range query.

        Args:
            time_range: Range the query covers.
            max_data_points: Point budget; values <= 0 use the default budget.
            min_interval: Lower bound for the step.

        Returns:
            The step, at least ``min_interval`` and at least one second.
        """
        budget = max_data_points if max_data_points > 0 else self.default_max_data_points
        budget = min(budget, self.safe_resolution)

        duration_us = time_range.duration // timedelta(microseconds=1)
        # ceil(duration / budget) in whole seconds, using integers only
        step_seconds = -(-duration_us // (budget * 1_000_000))
        step = timedelta(seconds=step_seconds)

        return max(step, min_interval, self.min_step)
