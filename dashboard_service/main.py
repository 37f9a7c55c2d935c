"""
Sheet Fetcher Service - FastAPI Entry Point

Composition root and HTTP API around the fetch cycle.
Provides endpoints for:
- Latest series model and fetch status
- Manual refresh
- Remote file listing
- Endpoint reconfiguration (persisted to the secure store)
- Persisted log entries
- Health checks and Prometheus metrics (/metrics)
"""
import logging
import os
import sqlite3
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import BaseModel

from core import __version__
from core.config import AppConfig, load_config
from core.state import EndpointConfig
from shared.clients.retry import RetryPolicy
from shared.clients.transfer_client import TransferClient
from shared.clients.transport import FtpTransport, Transport
from shared.files.validator import FileValidator
from shared.observability.log_queue import HttpLogSink, LogQueue, LogQueueHandler
from shared.observability.logging_config import configure_logging
from shared.storage.credentials import SecureStore, load_endpoint, save_endpoint

from .presenters import FailureNotifier, LoggingRenderer
from .scheduler import RefreshScheduler

logger = logging.getLogger(__name__)

SERVICE_NAME = "sheet-fetcher"


# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

API_REQUESTS = Counter(
    "fetcher_api_requests_total",
    "Total fetcher API requests",
    ["endpoint", "method", "status"]
)

API_REQUEST_DURATION = Histogram(
    "fetcher_api_request_duration_seconds",
    "Fetcher API request duration in seconds",
    ["endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)


# =============================================================================
# COMPOSITION ROOT
# =============================================================================

@dataclass
class Components:
    """Every long-lived collaborator, constructed once per process."""
    config: AppConfig
    log_queue: LogQueue
    store: Optional[SecureStore]
    validator: FileValidator
    client: TransferClient
    renderer: LoggingRenderer
    notifier: FailureNotifier
    scheduler: RefreshScheduler


def _open_store(config: AppConfig) -> Optional[SecureStore]:
    try:
        return SecureStore(db_path=config.credential_db_path)
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Secure store unavailable, endpoint changes will not persist: {e}")
        return None


def build_components(
    config: AppConfig,
    transport: Optional[Transport] = None,
    store: Optional[SecureStore] = None,
) -> Components:
    """
    Wire the fetch pipeline for one configuration.

    Args:
        config: Tiered application configuration
        transport: Transport to drive (default: FtpTransport)
        store: Secure store for the saved endpoint (default: opened from config)
    """
    log_settings = config.logging
    sink = None
    if log_settings.enable_remote_logging and log_settings.sink_url:
        sink = HttpLogSink(log_settings.sink_url)
    log_queue = LogQueue(
        capacity=log_settings.queue_capacity,
        min_severity=log_settings.log_level,
        log_dir=log_settings.log_dir,
        sink=sink,
        flush_interval=log_settings.flush_interval,
    )

    store = store or _open_store(config)
    endpoint = load_endpoint(store) if store is not None else None
    if endpoint is None:
        endpoint = config.default_endpoint()
        logger.info(f"No saved endpoint, using {config.environment} defaults ({endpoint.host})")
    else:
        logger.info(f"Loaded saved endpoint for {endpoint.host}")

    validator = FileValidator(
        max_size=config.refresh.max_file_size,
        accepted_extensions=config.refresh.supported_file_types,
    )
    client = TransferClient(
        endpoint,
        transport if transport is not None else FtpTransport(),
        validator,
        retry_policy=RetryPolicy(max_attempts=config.ftp.retry_attempts),
        download_dir=config.refresh.download_dir,
        connection_timeout=config.ftp.connection_timeout,
        allow_synthetic_fallback=config.refresh.allow_synthetic_fallback,
    )
    renderer = LoggingRenderer()
    notifier = FailureNotifier()
    scheduler = RefreshScheduler(
        client,
        validator,
        renderer,
        notifier,
        interval=config.refresh.refresh_interval,
    )

    return Components(
        config=config,
        log_queue=log_queue,
        store=store,
        validator=validator,
        client=client,
        renderer=renderer,
        notifier=notifier,
        scheduler=scheduler,
    )


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    environment: str


class StatusResponse(BaseModel):
    """Fetch pipeline status."""
    connection_status: str
    in_progress: bool
    auto_refresh: bool
    last_updated: Optional[str] = None
    last_error: Optional[str] = None
    synthetic: bool = False
    synthetic_reason: Optional[str] = None
    failures: Dict[str, Any] = {}
    metrics: List[Dict[str, Any]] = []


class RefreshResponse(BaseModel):
    """Response from a manual refresh."""
    success: bool
    message: str
    synthetic: bool = False
    stage_durations_ms: Dict[str, float] = {}


class ConfigResponse(BaseModel):
    """Endpoint configuration without the password."""
    success: bool = True
    persisted: bool = False
    endpoint: Dict[str, Any]


# =============================================================================
# ROUTES
# =============================================================================

router = APIRouter()


def _components(request: Request) -> Components:
    return request.app.state.components


@router.get("/metrics", tags=["System"], include_in_schema=False)
async def prometheus_metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(request: Request):
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        version=__version__,
        environment=_components(request).config.environment,
    )


@router.get("/series", tags=["Data"])
async def get_series(request: Request):
    """Latest successfully built series model."""
    scheduler = _components(request).scheduler
    if scheduler.latest is None:
        raise HTTPException(status_code=404, detail="No series available yet")
    return scheduler.latest.to_dict()


@router.get("/status", response_model=StatusResponse, tags=["Data"])
async def get_status(request: Request):
    components = _components(request)
    scheduler = components.scheduler
    last = scheduler.last_result
    return StatusResponse(
        connection_status=components.client.status.value,
        in_progress=scheduler.in_progress,
        auto_refresh=scheduler.running,
        last_updated=scheduler.last_updated.isoformat() if scheduler.last_updated else None,
        last_error=scheduler.last_error,
        synthetic=last.synthetic if last else False,
        synthetic_reason=last.synthetic_reason if last else None,
        failures=components.notifier.to_dict(),
        metrics=[m.to_dict() for m in components.client.get_metrics()],
    )


@router.post("/refresh", response_model=RefreshResponse, tags=["Data"])
async def force_refresh(request: Request):
    """Run a fetch cycle now. 409 if one is already running."""
    scheduler = _components(request).scheduler
    if scheduler.in_progress:
        raise HTTPException(status_code=409, detail="A fetch cycle is already running")

    result = await scheduler.trigger("manual")
    if result is None:
        return RefreshResponse(
            success=False,
            message=f"Refresh failed: {scheduler.last_error}",
        )
    return RefreshResponse(
        success=True,
        message="Refresh completed with synthetic data" if result.synthetic else "Refresh completed",
        synthetic=result.synthetic,
        stage_durations_ms=result.stage_durations_ms,
    )


@router.get("/files", tags=["Remote"])
async def list_remote_files(request: Request, directory: str = Query("/")):
    files = await _components(request).client.list_files(directory)
    return {"directory": directory, "files": files}


@router.get("/config", response_model=ConfigResponse, tags=["Remote"])
async def get_endpoint_config(request: Request):
    return ConfigResponse(endpoint=_components(request).client.get_config().redacted())


@router.put("/config", response_model=ConfigResponse, tags=["Remote"])
async def update_endpoint_config(request: Request, endpoint: EndpointConfig):
    """Adopt a new endpoint and persist it to the secure store."""
    components = _components(request)
    await components.client.update_config(endpoint)
    persisted = False
    if components.store is not None:
        persisted = save_endpoint(components.store, endpoint)
    return ConfigResponse(persisted=persisted, endpoint=endpoint.redacted())


@router.get("/logs", tags=["System"])
async def get_logs(request: Request, days: int = Query(7, ge=1, le=90)):
    """Persisted log entries, newest first."""
    events = _components(request).log_queue.read_logs(days)
    return {"count": len(events), "logs": [e.to_dict() for e in events]}


# =============================================================================
# APPLICATION SETUP
# =============================================================================

def create_app(
    components: Optional[Components] = None,
    configure_logs: bool = True,
    start_background: bool = True,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        components: Pre-built components (default: built from load_config() at startup)
        configure_logs: Install structlog handlers and the log queue bridge
        start_background: Start the flush timer and auto-refresh in the lifespan
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        built = app.state.components or build_components(load_config())
        app.state.components = built
        config = built.config

        if configure_logs:
            configure_logging(
                SERVICE_NAME,
                log_level=config.logging.log_level,
                json_output=config.logging.json_output,
                console=config.logging.enable_console_logging,
                extra_handlers=[LogQueueHandler(built.log_queue)],
            )
        logger.info(f"Sheet Fetcher starting up ({config.environment})...")

        if start_background:
            built.log_queue.start()
            if config.refresh.auto_refresh:
                built.scheduler.start()

        yield

        logger.info("Sheet Fetcher shutting down...")
        await built.scheduler.stop()
        await built.client.disconnect()
        await built.log_queue.close()

    app = FastAPI(
        title="Sheet Fetcher",
        description="Periodic remote sheet fetch, parse and series service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.components = components

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request metrics for all endpoints."""
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        endpoint = request.url.path
        API_REQUESTS.labels(
            endpoint=endpoint,
            method=request.method,
            status=response.status_code
        ).inc()
        API_REQUEST_DURATION.labels(endpoint=endpoint).observe(time.time() - start_time)
        return response

    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))

    uvicorn.run(
        "dashboard_service.main:app",
        host=host,
        port=port,
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
