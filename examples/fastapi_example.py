"""Example FastAPI application serving a GreptimeDB-backed datasource.

Run with:
    PROMFRAMES_URL=http://localhost:4000 uvicorn examples.fastapi_example:app --reload

Endpoints:
    POST /query                  - Run a batch of queries, frames keyed by refId
    GET  /health                 - Check that the database is reachable
    GET  /resources/<path>       - Forwarded to <url>/v1/prometheus/<path>

Example query batch:
    curl -s localhost:8000/query -d '{
        "from": 1704067200000, "to": 1704070800000,
        "queries": [{"refId": "A", "expr": "rate(http_requests_total[5m])",
                     "legendFormat": "{{instance}}"}]
    }'
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from promframes import DatasourceSettings, PromDatasource
from promframes.adapters.frameworks.fastapi import create_datasource_router

logging.basicConfig(level=os.environ.get("PROMFRAMES_LOG_LEVEL", "INFO"))

settings = DatasourceSettings.from_json_data(
    os.environ.get("PROMFRAMES_URL", "http://localhost:4000"),
    {
        "timeInterval": os.environ.get("PROMFRAMES_TIME_INTERVAL", ""),
        "httpMethod": os.environ.get("PROMFRAMES_HTTP_METHOD", "GET"),
        "queryTimeout": os.environ.get("PROMFRAMES_QUERY_TIMEOUT", "30s"),
    },
)
datasource = PromDatasource.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Release pooled connections on shutdown
    async with datasource:
        yield


app = FastAPI(title="promframes example", lifespan=lifespan)
app.include_router(create_datasource_router(datasource))
