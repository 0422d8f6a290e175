from __future__ import annotations
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field

from odoolink.connection.models import ConnectionCredentials, ConnectionProfile
from odoolink.connection.registry import ConnectionRegistry
from odoolink.metadata.loaders import MetadataLoader, OptionItem
from odoolink.rpc.client import JsonRpcClient
from odoolink.rpc.errors import (
    AuthenticationError,
    NotFoundError,
    OdooLinkError,
    RemoteFault,
    TransportError,
)
from odoolink.runner.batch import execute_batch, flatten

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
ITEM_COUNT = Counter(
    "odoolink_items_total",
    "Invocation items processed",
    ["status", "operation"],
)
BATCH_LATENCY = Histogram(
    "odoolink_batch_latency_seconds",
    "Batch execution latency",
    ["profile"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Shared process-level resources (populated in lifespan)
# ---------------------------------------------------------------------------
_registry: Optional[ConnectionRegistry] = None


def _init_tracing() -> None:
    """
    Initialize OpenTelemetry tracing.

    - OTEL_EXPORTER_OTLP_ENDPOINT set → OTLP HTTP exporter
    - Otherwise → ConsoleSpanExporter
    """
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import (
            SimpleSpanProcessor,
            BatchSpanProcessor,
            ConsoleSpanExporter,
        )
        from opentelemetry.sdk.resources import Resource

        resource = Resource.create({
            "service.name": "odoolink-gateway",
            "service.version": "0.1.0",
        })
        provider = TracerProvider(resource=resource)

        otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")
        if otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
            logger.info("OpenTelemetry: OTLP exporter → %s", otlp_endpoint)
        else:
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
            logger.info("OpenTelemetry: ConsoleSpanExporter (set OTEL_EXPORTER_OTLP_ENDPOINT for production)")

        trace.set_tracer_provider(provider)
    except Exception as exc:
        logger.warning("OpenTelemetry init failed (non-fatal): %s", exc)


# ---------------------------------------------------------------------------
# App lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _registry

    _init_tracing()

    config_dir = os.environ.get("ODOOLINK_CONFIG_DIR", "configs/connections")
    _registry = ConnectionRegistry(config_dir=config_dir)
    try:
        _registry.load_all()
    except FileNotFoundError:
        logger.warning("Connection config dir not found: %s; no profiles loaded", config_dir)

    logger.info("odoolink gateway started. Profiles: %s", _registry.all_names())
    yield
    logger.info("odoolink gateway shut down.")


app = FastAPI(title="odoolink Gateway", version="0.1.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ExecuteRequest(BaseModel):
    # items stay raw so each one is validated inside the batch fold
    profile: Optional[str] = None
    credentials: Optional[ConnectionCredentials] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)
    continue_on_fail: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _resolve_connection(
    profile_name: Optional[str], credentials: Optional[ConnectionCredentials]
) -> tuple[ConnectionCredentials, Optional[ConnectionProfile]]:
    if credentials is not None:
        return credentials, None
    profile = _registry.get(profile_name) if (_registry and profile_name) else None
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Unknown connection profile: {profile_name!r}")
    return profile.to_credentials(), profile


def _status_for(exc: OdooLinkError) -> int:
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, RemoteFault):
        return 502
    if isinstance(exc, TransportError):
        return 504
    return 500


def _client_for(credentials: ConnectionCredentials, profile: Optional[ConnectionProfile]) -> JsonRpcClient:
    timeout = profile.timeout_seconds if profile else 30.0
    return JsonRpcClient(credentials.url, timeout_seconds=timeout)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.post("/v1/execute")
async def execute(request: ExecuteRequest):
    """
    Run a batch of operation items against one connection.

    Returns 400 for malformed items, 401 for rejected credentials, 404 for
    missing records, 502 for remote faults, 504 for transport failures.
    With continue_on_fail, item failures come back as {"error": ...} records.
    """
    trace_id = request.metadata.get("trace_id", str(uuid.uuid4()))
    credentials, profile = _resolve_connection(request.profile, request.credentials)
    profile_label = profile.name if profile else "inline"

    start_time = time.time()
    client = _client_for(credentials, profile)
    try:
        outcomes = await execute_batch(
            credentials,
            request.items,
            continue_on_fail=request.continue_on_fail,
            client=client,
            page_size=profile.page_size if profile else 0,
        )
    except OdooLinkError as exc:
        ITEM_COUNT.labels(status=type(exc).__name__, operation="batch").inc()
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": type(exc).__name__, "details": str(exc), "trace_id": trace_id},
        )
    except ValueError as exc:
        ITEM_COUNT.labels(status="ValueError", operation="batch").inc()
        raise HTTPException(status_code=400, detail=str(exc))
    finally:
        await client.close()

    BATCH_LATENCY.labels(profile=profile_label).observe(time.time() - start_time)
    for outcome in outcomes:
        ITEM_COUNT.labels(status="ok" if outcome.ok else "error", operation=outcome.operation).inc()

    return {"data": flatten(outcomes), "trace_id": trace_id}


@app.get("/v1/options/{kind}")
async def options(
    kind: str,
    profile: str = Query(..., description="Connection profile name"),
    resource: str = Query("", description="Model name, for fields/actions"),
) -> List[OptionItem]:
    credentials, prof = _resolve_connection(profile, None)
    loader = MetadataLoader(credentials, client=_client_for(credentials, prof))
    listings = {
        "models": loader.list_models,
        "fields": lambda: loader.list_model_fields(resource),
        "actions": lambda: loader.list_actions(resource),
        "countries": loader.list_countries,
        "states": loader.list_states,
        "operations": lambda: loader.list_operations(prof.workflow_addon if prof else None),
    }
    if kind not in listings:
        await loader.close()
        raise HTTPException(status_code=404, detail=f"Unknown option list: {kind}")
    try:
        return await listings[kind]()
    except OdooLinkError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc))
    finally:
        await loader.close()


@app.get("/health")
async def health():
    """Liveness/readiness probe."""
    profiles = _registry.count() if _registry else 0
    return JSONResponse(status_code=200, content={"status": "ok", "checks": {"profiles": str(profiles)}})


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8002)
