"""Attaches per-query metadata to decoded frames."""

from collections.abc import Iterable
from dataclasses import replace
from datetime import timedelta

from promframes.core.interval import format_duration
from promframes.core.legend import resolve_name
from promframes.core.models import FieldConfig, Frame, Query


def executed_query_string(query: Query) -> str:
    """Describe the executed query for diagnostic display."""
    return f"Expr: {query.expr}\nStep: {format_duration(query.step)}"


def annotate_frame(query: Query, frame: Frame) -> Frame:
    """Return a copy of a series frame with interval and display name set.

    Frames with fewer than two fields are returned unchanged.
    """
    if len(frame.fields) < 2:
        return frame

    time_field, value_field, *rest = frame.fields
    time_field = replace(
        time_field, config=FieldConfig(interval=query.step / timedelta(milliseconds=1))
    )

    name = resolve_name(value_field.labels, query.legend_format, query.expr)
    if name:
        value_field = replace(value_field, config=FieldConfig(display_name_from_ds=name))

    return replace(frame, name=name, fields=(time_field, value_field, *rest))


def annotate_frames(query: Query, frames: Iterable[Frame]) -> list[Frame]:
    """Annotate every frame and record the executed query on the first one."""
    annotated = []
    for i, frame in enumerate(frames):
        frame = annotate_frame(query, frame)
        if i == 0:
            frame = replace(
                frame,
                meta=replace(frame.meta, executed_query_string=executed_query_string(query)),
            )
        annotated.append(frame)
    return annotated
