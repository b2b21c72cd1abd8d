"""Port interfaces for the outbound query client.

The dispatcher depends only on these protocols, not on a concrete HTTP
library. HttpxPromClient is the production implementation.
"""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from promframes.core.models import Query


@runtime_checkable
class RawResponse(Protocol):
    """An HTTP response whose body has not been read yet."""

    status_code: int

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Iterate over the response body in chunks."""
        ...

    async def aclose(self) -> None:
        """Release the underlying connection."""
        ...


@runtime_checkable
class PromQueryClientPort(Protocol):
    """Port for Prometheus-style query API calls.

    Implementations raise TransportError (or FetchTimeoutError) when no
    response could be obtained. Non-2xx responses are returned, not raised.
    """

    async def query_instant(self, query: Query) -> RawResponse:
        """Evaluate the query at its end time."""
        ...

    async def query_range(self, query: Query) -> RawResponse:
        """Evaluate the query over its range at its step."""
        ...
