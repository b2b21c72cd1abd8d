"""Series display name ("legend") resolution."""

import json
import re

LEGEND_FORMAT_AUTO = "__auto"
METRIC_NAME_LABEL = "__name__"

_PLACEHOLDER = re.compile(r"\{\{\s*(.+?)\s*\}\}")


def metric_name_from_labels(labels: dict[str, str]) -> str:
    """Render labels in metric notation: name{k1="v1", k2="v2"}.

    Labels are sorted by key and ``__name__`` supplies the leading name.
    A series with no labels at all renders as "{}".
    """
    name = labels.get(METRIC_NAME_LABEL, "")
    pairs = [
        f"{key}={_quote(value)}"
        for key, value in sorted(labels.items())
        if key != METRIC_NAME_LABEL
    ]
    if not pairs:
        return name or "{}"
    return f"{name}{{{', '.join(pairs)}}}"


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def resolve_name(labels: dict[str, str], legend_format: str, expr: str) -> str:
    """Resolve the display name of a series.

    Args:
        labels: Labels of the series' value field.
        legend_format: "" for metric notation, "__auto", or a template with
            ``{{ label }}`` placeholders.
        expr: Query expression, shown instead of an empty "{}" name.

    Returns:
        The display name; empty when "__auto" defers to the series labels.
    """
    legend = metric_name_from_labels(labels)

    if legend_format == LEGEND_FORMAT_AUTO:
        if any(key != METRIC_NAME_LABEL for key in labels):
            legend = ""
    elif legend_format:
        legend = _PLACEHOLDER.sub(
            lambda match: labels.get(match.group(1).strip(), ""), legend_format
        )

    if legend == "{}":
        return expr
    return legend
