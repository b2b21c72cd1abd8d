"""Per-instance datasource settings."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from promframes.core.encoding.prometheus import DecodeOptions
from promframes.core.errors import ConfigError, InvalidDurationError
from promframes.core.interval import parse_duration

VALID_HTTP_METHODS = {"GET", "POST"}


@dataclass(frozen=True)
class DatasourceSettings:
    """Settings of one datasource instance.

    Attributes:
        url: Base URL of the database, without the Prometheus API prefix.
        time_interval: Default step text used when a query carries none.
        http_method: "GET" (query string) or "POST" (form body).
        query_timeout: Deadline in seconds for each fetch; None disables it.
        max_concurrent_queries: Queries of one batch processed at once.
        decode_options: Options passed to the response decoder.
    """

    url: str
    time_interval: str = ""
    http_method: str = "GET"
    query_timeout: float | None = None
    max_concurrent_queries: int = 4
    decode_options: DecodeOptions = field(default_factory=DecodeOptions)

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("url is required")
        if self.http_method not in VALID_HTTP_METHODS:
            raise ConfigError(f"unsupported http method {self.http_method!r}")
        if self.max_concurrent_queries < 1:
            raise ConfigError("max_concurrent_queries must be at least 1")
        if self.query_timeout is not None and self.query_timeout <= 0:
            raise ConfigError("query_timeout must be positive")
        if self.time_interval.strip():
            try:
                parse_duration(self.time_interval)
            except InvalidDurationError as err:
                raise ConfigError(f"invalid timeInterval: {err}") from err

    @classmethod
    def from_json_data(
        cls, url: str, json_data: Mapping[str, Any] | None = None
    ) -> "DatasourceSettings":
        """Build settings from the datasource's JSON configuration.

        Recognized keys: timeInterval, httpMethod, queryTimeout (duration
        text) and maxConcurrentQueries.

        Raises:
            ConfigError: If a key has the wrong type or value.
        """
        data = json_data or {}
        time_interval = _optional_str(data, "timeInterval")
        http_method = _optional_str(data, "httpMethod").upper() or "GET"

        query_timeout = None
        timeout_text = _optional_str(data, "queryTimeout")
        if timeout_text:
            try:
                query_timeout = parse_duration(timeout_text).total_seconds()
            except InvalidDurationError as err:
                raise ConfigError(f"invalid queryTimeout: {err}") from err

        max_concurrent = data.get("maxConcurrentQueries", 4)
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int):
            raise ConfigError("maxConcurrentQueries must be an integer")

        return cls(
            url=url,
            time_interval=time_interval,
            http_method=http_method,
            query_timeout=query_timeout,
            max_concurrent_queries=max_concurrent,
        )


def _optional_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string, got {type(value).__name__}")
    return value
