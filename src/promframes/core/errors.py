"""Error taxonomy for query parsing, fetching and decoding.

Every per-query failure derives from QueryError and carries the HTTP-style
status that the dispatcher reports for it. Configuration and request format
errors are ValueErrors raised before any query is processed.
"""

from http import HTTPStatus


class QueryError(Exception):
    """Base class for failures that are reported per query."""

    status: HTTPStatus | int | None = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(QueryError):
    """The query request could not be turned into a Query."""

    status = HTTPStatus.BAD_REQUEST


class EmptyExpressionError(ParseError):
    """The query expression is blank."""

    def __init__(self, ref_id: str) -> None:
        super().__init__(f"query {ref_id!r} has an empty expression")
        self.ref_id = ref_id


class InvalidDurationError(ParseError):
    """A duration string (step, interval) could not be parsed."""

    def __init__(self, text: str) -> None:
        super().__init__(f"invalid duration {text!r}")
        self.text = text


class TransportError(QueryError):
    """The request never produced an HTTP response."""

    status = HTTPStatus.BAD_GATEWAY


class FetchTimeoutError(TransportError):
    """The request or its decode exceeded the query deadline."""

    status = HTTPStatus.GATEWAY_TIMEOUT


class UpstreamError(QueryError):
    """The remote API answered with a non-2xx status or an error envelope."""

    def __init__(
        self,
        message: str,
        status: HTTPStatus | int | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_type = error_type


class DecodeError(QueryError):
    """The response body is not a well-formed result envelope."""

    status = None


class CombinedQueryError(QueryError):
    """Instant and range fetches of the same query both failed."""

    separator = "; "

    def __init__(self, first: QueryError, second: QueryError) -> None:
        super().__init__(f"{first}{self.separator}{second}")
        self.errors = (first, second)
        self.status = second.status


class ConfigError(ValueError):
    """Datasource settings are missing or have the wrong type."""


class RequestFormatError(ValueError):
    """An inbound query batch body is malformed."""
