"""JSON conversion of query batches and dispatch results."""

import itertools
import math
import string
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any

from promframes.core.errors import RequestFormatError
from promframes.core.models import (
    DispatchResult,
    Field,
    Frame,
    QueryRequest,
    TimeRange,
)


def _epoch_ms(value: Any, key: str) -> datetime:
    """Parse an epoch-milliseconds number or numeric string."""
    if isinstance(value, bool):
        raise RequestFormatError(f"{key} must be epoch milliseconds")
    try:
        ms = float(value)
    except (TypeError, ValueError):
        raise RequestFormatError(f"{key} must be epoch milliseconds") from None
    if not math.isfinite(ms):
        raise RequestFormatError(f"{key} must be epoch milliseconds")
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def _time_range(source: Mapping[str, Any], fallback: TimeRange | None) -> TimeRange:
    if "from" in source and "to" in source:
        return TimeRange(
            start=_epoch_ms(source["from"], "from"),
            end=_epoch_ms(source["to"], "to"),
        )
    if fallback is None:
        raise RequestFormatError("query has no time range")
    return fallback


def _get(source: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = source.get(key, default)
    if value is None:
        return default
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise RequestFormatError(f"{key} must be of type {kind.__name__}")
    return value


def _ref_ids() -> Iterator[str]:
    """Yield A..Z, then AA, AB and so on."""
    for length in itertools.count(1):
        for letters in itertools.product(string.ascii_uppercase, repeat=length):
            yield "".join(letters)


def query_requests_from_json(body: Any) -> list[QueryRequest]:
    """Build query requests from a batch body.

    The body has the form ``{"from": ms, "to": ms, "queries": [...]}``.
    Each query may carry its own ``timeRange`` ``{"from", "to"}``. Queries
    without a ``refId`` get the next unused letter id (A..Z, AA, AB, ...).

    Raises:
        RequestFormatError: If the body does not have the expected shape.
    """
    if not isinstance(body, Mapping):
        raise RequestFormatError("request body must be an object")
    queries = body.get("queries")
    if not isinstance(queries, list):
        raise RequestFormatError("queries must be a list")

    default_range = None
    if "from" in body and "to" in body:
        default_range = _time_range(body, None)

    taken = {
        raw["refId"]
        for raw in queries
        if isinstance(raw, Mapping) and isinstance(raw.get("refId"), str)
    }
    default_ids = (ref_id for ref_id in _ref_ids() if ref_id not in taken)

    requests = []
    for i, raw in enumerate(queries):
        if not isinstance(raw, Mapping):
            raise RequestFormatError(f"query {i} must be an object")
        time_range = _time_range(_get(raw, "timeRange", Mapping, {}), default_range)
        requests.append(
            QueryRequest(
                ref_id=_get(raw, "refId", str, None) or next(default_ids),
                expr=_get(raw, "expr", str, ""),
                time_range=time_range,
                max_data_points=_get(raw, "maxDataPoints", int, 0),
                step=_get(raw, "interval", str, ""),
                instant=_get(raw, "instant", bool, False),
                range=_get(raw, "range", bool, False),
                legend_format=_get(raw, "legendFormat", str, ""),
            )
        )
    return requests


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return round(value.timestamp() * 1000)
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "+Inf" if value > 0 else "-Inf"
    return value


def encode_field(field: Field) -> dict[str, Any]:
    encoded: dict[str, Any] = {
        "name": field.name,
        "labels": dict(field.labels),
        "values": [_encode_value(v) for v in field.values],
    }
    if field.config is not None:
        config = {}
        if field.config.interval is not None:
            config["interval"] = field.config.interval
        if field.config.display_name_from_ds is not None:
            config["displayNameFromDS"] = field.config.display_name_from_ds
        encoded["config"] = config
    return encoded


def encode_frame(frame: Frame) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    if frame.meta.type is not None:
        meta["type"] = frame.meta.type
    if frame.meta.custom:
        meta["custom"] = dict(frame.meta.custom)
    if frame.meta.executed_query_string is not None:
        meta["executedQueryString"] = frame.meta.executed_query_string
    if frame.meta.notices:
        meta["notices"] = [
            {"severity": notice.severity, "text": notice.text}
            for notice in frame.meta.notices
        ]
    return {
        "name": frame.name,
        "fields": [encode_field(field) for field in frame.fields],
        "meta": meta,
    }


def encode_results(results: Mapping[str, DispatchResult]) -> dict[str, Any]:
    """Encode dispatch results as a JSON-compatible dict.

    Times become epoch milliseconds and non-finite floats become the
    strings "NaN", "+Inf" and "-Inf".
    """
    encoded = {}
    for ref_id, result in results.items():
        entry: dict[str, Any] = {
            "status": int(result.status) if result.status is not None else None,
            "frames": [encode_frame(frame) for frame in result.frames],
        }
        if result.error is not None:
            entry["error"] = str(result.error)
        encoded[ref_id] = entry
    return {"results": encoded}
