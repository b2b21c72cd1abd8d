"""Streaming decoder for Prometheus HTTP API query results.

The response body is consumed as a stream of ijson parse events and turned
into frames without building the JSON document in memory. One frame is
produced per series, holding a "Time" and a "Value" field; the series
labels live on the value field.
"""

import math
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

import ijson

from promframes.core.errors import DecodeError, UpstreamError
from promframes.core.models import Field, Frame, FrameMeta, Notice

FRAME_TYPE_TIMESERIES_MULTI = "timeseries-multi"
FRAME_TYPE_NUMERIC_MULTI = "numeric-multi"

TIME_FIELD_NAME = "Time"
VALUE_FIELD_NAME = "Value"

_SPECIAL_VALUES = {
    "NaN": math.nan,
    "+Inf": math.inf,
    "-Inf": -math.inf,
    "Inf": math.inf,
}

# Same mapping the Prometheus API uses when answering with an error envelope
_ERROR_TYPE_STATUS: dict[str, HTTPStatus | int] = {
    "bad_data": HTTPStatus.BAD_REQUEST,
    "not_found": HTTPStatus.NOT_FOUND,
    "not_acceptable": HTTPStatus.NOT_ACCEPTABLE,
    "execution": HTTPStatus.UNPROCESSABLE_ENTITY,
    "canceled": 499,
    "timeout": HTTPStatus.SERVICE_UNAVAILABLE,
    "unavailable": HTTPStatus.SERVICE_UNAVAILABLE,
    "internal": HTTPStatus.INTERNAL_SERVER_ERROR,
}


@dataclass(frozen=True)
class DecodeOptions:
    """Options for decoding result payloads.

    Attributes:
        dataplane: Mark vector, scalar and string results as numeric frames
            instead of single-row time series.
    """

    dataplane: bool = False


@dataclass(frozen=True)
class DecodedResponse:
    """Outcome of decoding one response body.

    Attributes:
        frames: Decoded frames; at least one unless the payload is an error.
        error: Error reported by the upstream inside the payload.
        status_override: Status derived from the upstream error type.
    """

    frames: tuple[Frame, ...] = ()
    error: UpstreamError | None = None
    status_override: HTTPStatus | int | None = None


def parse_sample_value(text: str) -> float:
    """Parse a string-encoded sample value, including NaN and +/-Inf.

    Raises:
        DecodeError: If the text is not a number.
    """
    special = _SPECIAL_VALUES.get(text)
    if special is not None:
        return special
    if "_" in text or text != text.strip():
        raise DecodeError(f"invalid sample value {text!r}")
    try:
        return float(text)
    except ValueError:
        raise DecodeError(f"invalid sample value {text!r}") from None


class _ChunkReader:
    """Async file-like view over an async iterable of byte chunks."""

    def __init__(self, chunks: AsyncIterable[bytes]) -> None:
        self._chunks = aiter(chunks)
        self._buffer = b""

    async def read(self, size: int = -1) -> bytes:
        while not self._buffer:
            try:
                self._buffer = await anext(self._chunks)
            except StopAsyncIteration:
                return b""
        if size < 0:
            size = len(self._buffer)
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data


class _EventCursor:
    """Pull cursor over ijson (prefix, event, value) tuples."""

    def __init__(self, events: AsyncIterator[tuple[str, str, Any]]) -> None:
        self._events = events

    async def next(self) -> tuple[str, Any]:
        try:
            _, event, value = await anext(self._events)
        except StopAsyncIteration:
            raise DecodeError("unexpected end of JSON input") from None
        return event, value

    async def expect(self, expected: str) -> Any:
        event, value = await self.next()
        if event != expected:
            raise DecodeError(f"expected {expected}, got {event}")
        return value

    async def keys(self) -> AsyncIterator[str]:
        """Iterate over the keys of an object whose start was consumed.

        The caller must consume each key's value before the next iteration.
        """
        while True:
            event, value = await self.next()
            if event == "end_map":
                return
            if event != "map_key":
                raise DecodeError(f"expected map_key, got {event}")
            yield value

    async def elements(self) -> AsyncIterator[tuple[str, Any]]:
        """Iterate over the elements of an array whose start was consumed.

        Yields the first event of each element; the caller consumes the rest.
        """
        while True:
            event, value = await self.next()
            if event == "end_array":
                return
            yield event, value

    async def skip(self, event: str) -> None:
        """Skip the remainder of a value whose first event was consumed."""
        if event not in ("start_map", "start_array"):
            return
        depth = 1
        while depth:
            event, _ = await self.next()
            if event in ("start_map", "start_array"):
                depth += 1
            elif event in ("end_map", "end_array"):
                depth -= 1

    async def skip_value(self) -> None:
        event, _ = await self.next()
        await self.skip(event)

    async def at_end(self) -> bool:
        try:
            await anext(self._events)
        except StopAsyncIteration:
            return True
        return False


async def decode_response(
    chunks: AsyncIterable[bytes],
    options: DecodeOptions | None = None,
) -> DecodedResponse:
    """Decode a Prometheus query result body.

    Args:
        chunks: Response body as an async iterable of byte chunks.
        options: Decoding options.

    Returns:
        The decoded frames, or the error reported by the upstream.

    Raises:
        DecodeError: If the body is not a well-formed result envelope.
    """
    cursor = _EventCursor(ijson.parse_async(_ChunkReader(chunks)))
    try:
        return await _read_envelope(cursor, options or DecodeOptions())
    except (ijson.JSONError, UnicodeDecodeError) as err:
        raise DecodeError(f"malformed JSON: {err}") from err


async def _read_envelope(cursor: _EventCursor, options: DecodeOptions) -> DecodedResponse:
    event, _ = await cursor.next()
    if event != "start_map":
        raise DecodeError(f"response must be a JSON object, got {event}")

    status: str | None = None
    error: str | None = None
    error_type: str | None = None
    notices: list[Notice] = []
    frames: list[Frame] = []

    async for key in cursor.keys():
        if key == "status":
            status = await _read_optional_string(cursor)
        elif key == "data":
            frames = await _read_data(cursor, options)
        elif key == "error":
            error = await _read_optional_string(cursor)
        elif key == "errorType":
            error_type = await _read_optional_string(cursor)
        elif key == "warnings":
            notices.extend(Notice("warning", text) for text in await _read_strings(cursor))
        elif key == "infos":
            notices.extend(Notice("info", text) for text in await _read_strings(cursor))
        else:
            await cursor.skip_value()

    if not await cursor.at_end():
        raise DecodeError("unexpected data after the response object")

    if status == "error" or error:
        message = error or "unknown error"
        if error_type:
            message = f"{error_type}: {message}"
        override = _ERROR_TYPE_STATUS.get(error_type or "")
        return DecodedResponse(
            error=UpstreamError(message, status=override, error_type=error_type),
            status_override=override,
        )

    if not frames:
        frames = [Frame()]
    if notices:
        first = frames[0]
        frames[0] = replace(
            first, meta=replace(first.meta, notices=first.meta.notices + tuple(notices))
        )
    return DecodedResponse(frames=tuple(frames))


async def _read_optional_string(cursor: _EventCursor) -> str | None:
    """Read a string value; null reads as absent."""
    event, value = await cursor.next()
    if event == "null":
        return None
    if event != "string":
        raise DecodeError(f"expected string, got {event}")
    return value


async def _read_strings(cursor: _EventCursor) -> list[str]:
    event, _ = await cursor.next()
    if event == "null":
        return []
    if event != "start_array":
        raise DecodeError(f"expected an array of strings, got {event}")
    strings = []
    async for event, value in cursor.elements():
        if event != "string":
            raise DecodeError(f"expected string, got {event}")
        strings.append(value)
    return strings


async def _read_data(cursor: _EventCursor, options: DecodeOptions) -> list[Frame]:
    event, _ = await cursor.next()
    if event == "null":
        return []
    if event != "start_map":
        raise DecodeError(f"data must be an object, got {event}")

    result_type: str | None = None
    frames: list[Frame] = []
    async for key in cursor.keys():
        if key == "resultType":
            result_type = await cursor.expect("string")
            if result_type not in _RESULT_READERS:
                raise DecodeError(f"unknown result type {result_type!r}")
        elif key == "result":
            if result_type is None:
                raise DecodeError("resultType must precede result")
            frames = await _RESULT_READERS[result_type](cursor, options)
        else:
            await cursor.skip_value()
    return frames


async def _read_labels(cursor: _EventCursor) -> dict[str, str]:
    await cursor.expect("start_map")
    labels = {}
    async for key in cursor.keys():
        labels[key] = await cursor.expect("string")
    return labels


async def _read_pair(cursor: _EventCursor) -> tuple[datetime, Any, str]:
    """Read the rest of a [timestamp, value] pair whose start was consumed."""
    event, timestamp = await cursor.next()
    if event != "number":
        raise DecodeError(f"sample timestamp must be a number, got {event}")
    event, value = await cursor.next()
    if event not in ("string", "number"):
        raise DecodeError(f"sample value must be a string, got {event}")
    await cursor.expect("end_array")
    try:
        moment = datetime.fromtimestamp(float(timestamp), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as err:
        raise DecodeError(f"invalid sample timestamp {timestamp}") from err
    return moment, value, event


def _sample_value(value: Any, event: str) -> float:
    return float(value) if event == "number" else parse_sample_value(value)


def _series_frame(
    result_type: str,
    options: DecodeOptions,
    labels: dict[str, str],
    times: list[datetime],
    values: list[Any],
) -> Frame:
    if result_type == "matrix" or not options.dataplane:
        frame_type = FRAME_TYPE_TIMESERIES_MULTI
    else:
        frame_type = FRAME_TYPE_NUMERIC_MULTI
    return Frame(
        fields=(
            Field(TIME_FIELD_NAME, tuple(times)),
            Field(VALUE_FIELD_NAME, tuple(values), labels=labels),
        ),
        meta=FrameMeta(type=frame_type, custom={"resultType": result_type}),
    )


async def _read_series(
    cursor: _EventCursor, options: DecodeOptions, result_type: str
) -> list[Frame]:
    """Read a matrix or vector result: an array of labelled series."""
    await cursor.expect("start_array")
    frames = []
    async for event, _ in cursor.elements():
        if event != "start_map":
            raise DecodeError(f"{result_type} series must be objects, got {event}")
        labels: dict[str, str] = {}
        times: list[datetime] = []
        values: list[float] = []
        async for key in cursor.keys():
            if key == "metric":
                labels = await _read_labels(cursor)
            elif key == "values" and result_type == "matrix":
                await cursor.expect("start_array")
                async for pair_event, _ in cursor.elements():
                    if pair_event != "start_array":
                        raise DecodeError(f"sample must be an array, got {pair_event}")
                    moment, value, value_event = await _read_pair(cursor)
                    times.append(moment)
                    values.append(_sample_value(value, value_event))
            elif key == "value" and result_type == "vector":
                await cursor.expect("start_array")
                moment, value, value_event = await _read_pair(cursor)
                times.append(moment)
                values.append(_sample_value(value, value_event))
            else:
                # native histograms and unknown keys
                await cursor.skip_value()
        frames.append(_series_frame(result_type, options, labels, times, values))
    return frames


async def _read_matrix(cursor: _EventCursor, options: DecodeOptions) -> list[Frame]:
    return await _read_series(cursor, options, "matrix")


async def _read_vector(cursor: _EventCursor, options: DecodeOptions) -> list[Frame]:
    return await _read_series(cursor, options, "vector")


async def _read_scalar(cursor: _EventCursor, options: DecodeOptions) -> list[Frame]:
    await cursor.expect("start_array")
    moment, value, value_event = await _read_pair(cursor)
    return [_series_frame("scalar", options, {}, [moment], [_sample_value(value, value_event)])]


async def _read_string(cursor: _EventCursor, options: DecodeOptions) -> list[Frame]:
    await cursor.expect("start_array")
    moment, value, _ = await _read_pair(cursor)
    return [_series_frame("string", options, {}, [moment], [str(value)])]


_RESULT_READERS: dict[
    str, Callable[[_EventCursor, DecodeOptions], Awaitable[list[Frame]]]
] = {
    "matrix": _read_matrix,
    "vector": _read_vector,
    "scalar": _read_scalar,
    "string": _read_string,
}
