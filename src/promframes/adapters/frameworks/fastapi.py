"""FastAPI adapter exposing a datasource over HTTP."""

import json

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from promframes.adapters.datasource import PromDatasource, ResourceRequest
from promframes.core.encoding.frames import encode_results, query_requests_from_json
from promframes.core.errors import RequestFormatError, TransportError

# Hop-by-hop and length headers are recomputed by the server
_DROPPED_RESPONSE_HEADERS = {"content-length", "transfer-encoding", "connection", "content-encoding"}
_FORWARDED_REQUEST_HEADERS = {"accept", "content-type"}


def create_datasource_router(datasource: PromDatasource) -> APIRouter:
    """Create a FastAPI router with /query, /health and /resources endpoints.

    Args:
        datasource: The datasource instance serving the requests.

    Returns:
        APIRouter with the datasource endpoints configured.
    """
    router = APIRouter()

    @router.post("/query")
    async def query(request: Request) -> Response:
        """Run a batch of queries and return frames keyed by refId."""
        try:
            body = json.loads(await request.body())
            requests = query_requests_from_json(body)
        except (json.JSONDecodeError, UnicodeDecodeError, RequestFormatError) as err:
            return JSONResponse({"error": str(err)}, status_code=400)
        results = await datasource.query_data(requests)
        return JSONResponse(encode_results(results))

    @router.get("/health")
    async def health() -> Response:
        """Report whether the database is reachable."""
        result = await datasource.check_health()
        return JSONResponse(
            {"status": result.status, "message": result.message},
            status_code=200 if result.ok else 503,
        )

    @router.api_route("/resources/{path:path}", methods=["GET", "POST"])
    async def resources(path: str, request: Request) -> Response:
        """Forward a request to the database's Prometheus API."""
        resource = ResourceRequest(
            path=path,
            method=request.method,
            params=dict(request.query_params),
            headers={
                key: value
                for key, value in request.headers.items()
                if key.lower() in _FORWARDED_REQUEST_HEADERS
            },
            body=await request.body(),
        )
        try:
            upstream = await datasource.call_resource(resource)
        except TransportError as err:
            return JSONResponse({"error": str(err)}, status_code=int(err.status or 502))
        headers = {
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in _DROPPED_RESPONSE_HEADERS
        }
        return Response(content=upstream.body, status_code=upstream.status, headers=headers)

    return router
