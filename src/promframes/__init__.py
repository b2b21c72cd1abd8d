"""promframes - Prometheus-style query dispatch into tabular frames."""

import logging

from promframes.adapters.datasource import (
    HealthCheckResult,
    PromDatasource,
    ResourceRequest,
    ResourceResponse,
)
from promframes.adapters.http import HttpxPromClient
from promframes.core.config import DatasourceSettings
from promframes.core.dispatcher import QueryDispatcher
from promframes.core.encoding.prometheus import DecodeOptions, decode_response
from promframes.core.errors import (
    CombinedQueryError,
    ConfigError,
    DecodeError,
    EmptyExpressionError,
    FetchTimeoutError,
    InvalidDurationError,
    ParseError,
    QueryError,
    RequestFormatError,
    TransportError,
    UpstreamError,
)
from promframes.core.interval import IntervalCalculator
from promframes.core.legend import metric_name_from_labels, resolve_name
from promframes.core.models import (
    DispatchResult,
    FetchOutcome,
    Field,
    FieldConfig,
    Frame,
    FrameMeta,
    Notice,
    Query,
    QueryRequest,
    TimeRange,
)
from promframes.core.parser import parse_query

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CombinedQueryError",
    "ConfigError",
    "DatasourceSettings",
    "DecodeError",
    "DecodeOptions",
    "DispatchResult",
    "EmptyExpressionError",
    "FetchOutcome",
    "FetchTimeoutError",
    "Field",
    "FieldConfig",
    "Frame",
    "FrameMeta",
    "HealthCheckResult",
    "HttpxPromClient",
    "IntervalCalculator",
    "InvalidDurationError",
    "Notice",
    "ParseError",
    "PromDatasource",
    "Query",
    "QueryDispatcher",
    "QueryError",
    "QueryRequest",
    "RequestFormatError",
    "ResourceRequest",
    "ResourceResponse",
    "TimeRange",
    "TransportError",
    "UpstreamError",
    "decode_response",
    "metric_name_from_labels",
    "parse_query",
    "resolve_name",
]
