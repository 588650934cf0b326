from __future__ import annotations
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional, Union

import redis.asyncio as aioredis
from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import BaseModel, Field

from storybridge.catalog.fields import FieldCatalog
from storybridge.config.loader import load_config
from storybridge.config.models import GatewayConfig
from storybridge.connectors.shortcut import ShortcutConnector
from storybridge.credentials.store import InMemoryCredentialStore, RedisCredentialStore
from storybridge.engine.models import DateRange
from storybridge.engine.orchestrator import QueryOrchestrator
from storybridge.errors import InvalidCredentialError, UnknownFieldError, UpstreamError

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
QUERY_COUNT = Counter(
    "storybridge_queries_total",
    "Total getData requests processed",
    ["status"],
)
QUERY_LATENCY = Histogram(
    "storybridge_query_latency_seconds",
    "getData latency including all upstream pages",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)
PAGES_FETCHED = Counter(
    "storybridge_search_pages_total",
    "Search result pages fetched from the upstream service",
)
UPSTREAM_ERRORS = Counter(
    "storybridge_upstream_errors_total",
    "Non-200 or failed upstream calls",
    ["status_code"],
)

# ---------------------------------------------------------------------------
# Shared process-level resources (populated in lifespan)
# ---------------------------------------------------------------------------
_config: Optional[GatewayConfig] = None
_connector: Optional[ShortcutConnector] = None
_store: Optional[Union[RedisCredentialStore, InMemoryCredentialStore]] = None
_redis: Optional[aioredis.Redis] = None
_catalog = FieldCatalog()


def _init_tracing() -> None:
    """
    Initialize OpenTelemetry tracing.

    - OTEL_SDK_DISABLED=true → leave the no-op global provider in place
    - OTEL_EXPORTER_OTLP_ENDPOINT set → OTLP HTTP exporter (Jaeger, Tempo, etc.)
    - Otherwise → ConsoleSpanExporter (visible in server stdout for demo)
    """
    if os.environ.get("OTEL_SDK_DISABLED", "").lower() == "true":
        logger.info("OpenTelemetry disabled via OTEL_SDK_DISABLED")
        return

    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    resource = Resource.create({
        "service.name": "storybridge-gateway",
        "service.version": "1.0.0",
    })
    provider = TracerProvider(resource=resource)

    otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
        logger.info("OpenTelemetry: OTLP exporter → %s", otlp_endpoint)
    else:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("OpenTelemetry: ConsoleSpanExporter (set OTEL_EXPORTER_OTLP_ENDPOINT for production)")

    trace.set_tracer_provider(provider)


# ---------------------------------------------------------------------------
# App lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _config, _connector, _store, _redis

    # 0. Tracing (first, other modules read the global provider)
    _init_tracing()

    # 1. Config
    _config = load_config(os.environ.get("STORYBRIDGE_CONFIG") or None)

    # 2. Credential store: Redis when configured and reachable
    _redis = None
    if _config.redis_url:
        try:
            _redis = aioredis.from_url(_config.redis_url, decode_responses=False)
            await _redis.ping()
            logger.info("Redis connected: %s", _config.redis_url)
        except Exception as exc:
            logger.warning("Redis unavailable (%s), credentials kept in memory", exc)
            _redis = None
    _store = (
        RedisCredentialStore(_redis, ttl_s=_config.credential_ttl_s)
        if _redis else InMemoryCredentialStore()
    )

    # 3. Connector (one pooled HTTP session for all requests)
    _connector = ShortcutConnector(_config.connector)

    logger.info(
        "storybridge gateway started. upstream=%s credential_store=%s",
        _config.connector.base_url, _store.backend,
    )

    yield

    await _connector.close()
    if _redis:
        await _redis.aclose()
    logger.info("storybridge gateway shut down.")


app = FastAPI(title="storybridge", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request models (host platform wire format)
# ---------------------------------------------------------------------------

class CredentialsRequest(BaseModel):
    key: str


class ConfigParams(BaseModel):
    project: str = Field(min_length=1)


class DateRangeParams(BaseModel):
    startDate: date
    endDate: date


class FieldRef(BaseModel):
    name: str


class DataRequest(BaseModel):
    configParams: ConfigParams
    dateRange: DateRangeParams
    fields: List[FieldRef] = Field(min_length=1)


def _upstream_error_response(exc: UpstreamError) -> JSONResponse:
    UPSTREAM_ERRORS.labels(status_code=str(exc.status_code)).inc()
    return JSONResponse(
        status_code=502,
        content={
            "error": "UPSTREAM_ERROR",
            "upstream_status": exc.status_code,
            "details": exc.details,
            "user_message": exc.details,
        },
    )


# ---------------------------------------------------------------------------
# Auth routes
# ---------------------------------------------------------------------------

@app.get("/v1/auth/type")
async def get_auth_type():
    return {"type": "KEY", "helpUrl": _config.connector.help_url}


@app.put("/v1/auth/credentials")
async def set_credentials(
    request: CredentialsRequest,
    x_session_id: str = Header(..., description="Host platform user session"),
):
    """Probe the key and store it for the session if the upstream accepts it."""
    try:
        await _connector.probe_credential(request.key)
    except InvalidCredentialError as exc:
        logger.info("Rejected credential for session: %s", exc)
        return {"errorCode": "INVALID_CREDENTIALS"}
    except UpstreamError as exc:
        return _upstream_error_response(exc.redacted(request.key))

    await _store.put(x_session_id, request.key)
    return {"errorCode": "NONE"}


@app.get("/v1/auth/valid")
async def is_auth_valid(x_session_id: str = Header(...)):
    credential = await _store.get(x_session_id)
    if not credential:
        return {"valid": False}
    try:
        await _connector.probe_credential(credential)
    except InvalidCredentialError:
        return {"valid": False}
    except UpstreamError as exc:
        return _upstream_error_response(exc.redacted(credential))
    return {"valid": True}


@app.delete("/v1/auth/credentials")
async def reset_auth(x_session_id: str = Header(...)):
    await _store.delete(x_session_id)
    return {"reset": True}


# ---------------------------------------------------------------------------
# Connector contract
# ---------------------------------------------------------------------------

@app.get("/v1/config")
async def get_config():
    return {
        "configParams": [
            {
                "type": "INFO",
                "name": "instructions",
                "text": "Enter the Shortcut project to report on.",
            },
            {
                "type": "TEXTINPUT",
                "name": "project",
                "displayName": "Project name",
                "placeholder": "e.g. Mobile App",
            },
        ],
        "dateRangeRequired": True,
    }


@app.get("/v1/schema")
async def get_schema():
    return {"schema": _catalog.schema()}


@app.post("/v1/data")
async def get_data(request: DataRequest, x_session_id: str = Header(...)):
    """
    Fetch every story in the project completed within the date range and
    return one row per story with the requested columns.

    Returns 400 for unknown fields, 401 without a stored credential,
    502 for any upstream failure.
    """
    credential = await _store.get(x_session_id)
    if not credential:
        QUERY_COUNT.labels(status="401").inc()
        raise HTTPException(status_code=401, detail="NO_CREDENTIAL")

    start_time = time.time()
    orchestrator = QueryOrchestrator(_connector, _catalog)
    try:
        result = await orchestrator.run(
            credential,
            request.configParams.project,
            DateRange(
                start=request.dateRange.startDate.isoformat(),
                end=request.dateRange.endDate.isoformat(),
            ),
            [f.name for f in request.fields],
        )
    except UnknownFieldError as exc:
        QUERY_COUNT.labels(status="400").inc()
        return JSONResponse(
            status_code=400,
            content={"error": "UNKNOWN_FIELD", "fields": exc.field_ids, "details": str(exc)},
        )
    except UpstreamError as exc:
        QUERY_COUNT.labels(status="502").inc()
        logger.error("getData failed in state %s: %s", orchestrator.state.value, exc.details)
        return _upstream_error_response(exc)
    finally:
        QUERY_LATENCY.observe(time.time() - start_time)

    QUERY_COUNT.labels(status="200").inc()
    PAGES_FETCHED.inc(result.pages_fetched)
    return result.to_response()


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    """Kubernetes liveness/readiness probe."""
    checks: Dict[str, Any] = {
        "credential_store": _store.backend if _store else "uninitialized",
        "upstream": _config.connector.base_url if _config else "uninitialized",
    }
    store_ok = bool(_store) and await _store.ping()
    checks["credential_store_ok"] = store_ok
    return JSONResponse(
        status_code=200 if store_ok else 503,
        content={"status": "ok" if store_ok else "degraded", "checks": checks},
    )


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    cfg = load_config(os.environ.get("STORYBRIDGE_CONFIG") or None)
    uvicorn.run(app, host=cfg.host, port=cfg.port)
