"""
telecall.main
=============
Entrypoint that stitches the signaling service together:

• config / CORS
• shared objects on `app.state` (transport, call coordinator, event relay)
• route registration (v1 router)
"""

from __future__ import annotations

import os

from utils.telemetry_config import setup_azure_monitor

# ---------------- Monitoring ------------------------------------------------
setup_azure_monitor(logger_name="telecall")

from utils.ml_logging import get_logger

logger = get_logger("main")

import asyncio
from contextlib import asynccontextmanager
import time
from typing import Awaitable, Callable, List, Optional, Tuple

StepCallable = Callable[[], Awaitable[None]]
LifecycleStep = Tuple[str, StepCallable, Optional[StepCallable]]

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from apps.telecall.backend.api.v1.router import v1_router
from apps.telecall.backend.config import (
    ALLOWED_ORIGINS,
    DEBUG_MODE,
    DOCS_URL,
    ENABLE_DOCS,
    ENVIRONMENT,
    OPENAPI_URL,
    REDIS_ACCESS_KEY,
    REDOC_URL,
    SUPPORTED_TRANSPORTS,
    AppConfig,
    validate_app_settings,
)
from src.signaling import CallCoordinator, EventStore, InMemoryLoopbackTransport
from src.signaling.types import CallTransport


# --------------------------------------------------------------------------- #
#  Developer startup dashboard
# --------------------------------------------------------------------------- #
def _build_startup_dashboard(
    app_config: AppConfig,
    startup_results: List[Tuple[str, float]],
) -> str:
    """Construct a concise ASCII dashboard for developers."""

    header = "=" * 68
    telemetry_disabled = os.getenv("DISABLE_CLOUD_TELEMETRY", "true").lower() == "true"
    telemetry_line = "DISABLED (DISABLE_CLOUD_TELEMETRY=true)" if telemetry_disabled else "ENABLED"
    ring = app_config.calls.ring_timeout_seconds

    lines = [
        "",
        header,
        " Telecall Signaling :: Developer Console",
        header,
        f" Environment : {ENVIRONMENT} | Debug: {'ON' if DEBUG_MODE else 'OFF'}",
        f" Transport   : {app_config.transport.kind}",
        f" Telemetry   : {telemetry_line}",
        f" Ring timeout: {f'{ring:.0f}s' if ring else 'disabled'}"
        f" | Purge delay: {app_config.calls.purge_delay_seconds:.1f}s",
        f" Relay tokens: {'verified' if app_config.security.verify_tokens else 'NOT verified (dev)'}",
        f" Docs        : {DOCS_URL if ENABLE_DOCS else 'DISABLED (set ENABLE_DOCS=true)'}",
        "",
        " Startup Stage Durations (sec):",
    ]
    for stage_name, stage_duration in startup_results:
        lines.append(f"   {stage_name:<13}{stage_duration:.2f}")
    lines.append(header)
    return "\n".join(lines)


def build_transport(app_config: AppConfig) -> CallTransport:
    """Create the transport selected by SIGNALING_TRANSPORT."""
    kind = app_config.transport.kind
    if kind not in SUPPORTED_TRANSPORTS:
        raise RuntimeError(
            f"Unsupported SIGNALING_TRANSPORT '{kind}' (expected one of {', '.join(SUPPORTED_TRANSPORTS)})"
        )
    if kind == "redis":
        from src.redis.manager import RedisManager
        from src.signaling.redis_transport import RedisCallTransport

        manager = RedisManager(
            host=app_config.transport.redis_host,
            port=app_config.transport.redis_port,
            access_key=REDIS_ACCESS_KEY or None,
            ssl=app_config.transport.redis_ssl,
        )
        # the service starts calls on behalf of users, so it follows their outcomes
        return RedisCallTransport(
            manager,
            channel_prefix=app_config.transport.channel_prefix,
            observe_calls=True,
        )
    return InMemoryLoopbackTransport(heartbeat_interval=app_config.transport.heartbeat_seconds)


# --------------------------------------------------------------------------- #
#  Lifecycle Management
# --------------------------------------------------------------------------- #
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage the application lifecycle: join the signaling transport, build the
    call coordinator and the event relay on startup, and tear them down in
    reverse order on shutdown.

    :param app: The FastAPI application instance requiring lifecycle management.
    :return: AsyncGenerator yielding control to the application runtime.
    :raises RuntimeError: If the transport cannot be created.
    """
    tracer = trace.get_tracer(__name__)

    startup_steps: List[LifecycleStep] = []
    executed_steps: List[LifecycleStep] = []
    startup_results: List[Tuple[str, float]] = []

    def add_step(name: str, start: StepCallable, shutdown: Optional[StepCallable] = None) -> None:
        startup_steps.append((name, start, shutdown))

    async def run_steps(steps: List[LifecycleStep], phase: str) -> None:
        for name, start_fn, shutdown_fn in steps:
            with tracer.start_as_current_span(f"{phase}.{name}") as step_span:
                step_start = time.perf_counter()
                logger.info(f"{phase} stage started", extra={"stage": name})
                try:
                    await start_fn()
                except Exception as exc:
                    step_span.record_exception(exc)
                    step_span.set_status(Status(StatusCode.ERROR, str(exc)))
                    logger.error(f"{phase} stage failed", extra={"stage": name, "error": str(exc)})
                    raise
                step_duration = time.perf_counter() - step_start
                step_span.set_attribute("duration_sec", step_duration)
                rounded = round(step_duration, 2)
                logger.info(f"{phase} stage completed", extra={"stage": name, "duration_sec": rounded})
                executed_steps.append((name, start_fn, shutdown_fn))
                startup_results.append((name, rounded))

    async def run_shutdown(steps: List[LifecycleStep]) -> None:
        for name, _, shutdown_fn in reversed(steps):
            if shutdown_fn is None:
                continue
            with tracer.start_as_current_span(f"shutdown.{name}") as step_span:
                logger.info("shutdown stage started", extra={"stage": name})
                try:
                    await shutdown_fn()
                except Exception as exc:
                    step_span.record_exception(exc)
                    step_span.set_status(Status(StatusCode.ERROR, str(exc)))
                    logger.error("shutdown stage failed", extra={"stage": name, "error": str(exc)})
                    continue
                logger.info("shutdown stage completed", extra={"stage": name})

    app_config = AppConfig()
    validation = validate_app_settings()
    for warning in validation["warnings"]:
        logger.warning(f"Config: {warning}")
    for issue in validation["issues"]:
        logger.error(f"Config: {issue}")

    async def start_transport() -> None:
        transport = build_transport(app_config)
        transport.connect(
            token="",
            user_id=app_config.transport.service_user_id,
            role=app_config.transport.service_role,
        )
        app.state.transport = transport
        app.state.transport_kind = app_config.transport.kind
        logger.info(
            "signaling transport ready",
            extra={"transport_kind": app_config.transport.kind, "transport_mock": transport.is_mock_mode()},
        )

    async def stop_transport() -> None:
        transport = getattr(app.state, "transport", None)
        if transport is not None:
            transport.disconnect()

    add_step("transport", start_transport, stop_transport)

    async def start_coordinator() -> None:
        app.state.coordinator = CallCoordinator(
            app.state.transport,
            purge_delay_seconds=app_config.calls.purge_delay_seconds,
            ring_timeout_seconds=app_config.calls.ring_timeout_seconds,
        )

    async def stop_coordinator() -> None:
        coordinator = getattr(app.state, "coordinator", None)
        if coordinator is not None:
            logger.info("call coordinator stats", extra={"call_stats": coordinator.get_stats()})
            coordinator.close()

    add_step("calls", start_coordinator, stop_coordinator)

    async def start_relay() -> None:
        store = EventStore()
        app.state.event_store = store

        async def cleanup_loop() -> None:
            while True:
                await asyncio.sleep(app_config.relay.cleanup_interval_seconds)
                store.clear_old_events(app_config.relay.retention_seconds)

        app.state.relay_cleanup_task = asyncio.create_task(cleanup_loop())

    async def stop_relay() -> None:
        task = getattr(app.state, "relay_cleanup_task", None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    add_step("relay", start_relay, stop_relay)

    with tracer.start_as_current_span("startup.lifespan") as startup_span:
        startup_span.set_attributes(
            {
                "service.name": "telecall-signaling",
                "service.version": "1.0.0",
                "startup.stage": "lifecycle",
            }
        )
        startup_begin = time.perf_counter()
        await run_steps(startup_steps, "startup")
        startup_duration = time.perf_counter() - startup_begin
        startup_span.set_attributes(
            {
                "startup.duration_sec": startup_duration,
                "startup.stage": "complete",
                "startup.success": True,
            }
        )
        logger.info("startup complete", extra={"duration_sec": round(startup_duration, 2)})

    logger.info(_build_startup_dashboard(app_config, startup_results))

    # ---- Run app ----
    yield

    with tracer.start_as_current_span("shutdown.lifespan") as shutdown_span:
        logger.info("shutdown…")
        shutdown_begin = time.perf_counter()
        await run_shutdown(executed_steps)
        shutdown_span.set_attribute("shutdown.duration_sec", time.perf_counter() - shutdown_begin)
        shutdown_span.set_attribute("shutdown.success", True)


# --------------------------------------------------------------------------- #
#  App factory
# --------------------------------------------------------------------------- #
def create_app() -> FastAPI:
    """Create FastAPI app with configurable documentation."""
    app = FastAPI(
        title="Telecall Signaling API",
        description="Call signaling and event relay for telehealth consultations",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=DOCS_URL,
        redoc_url=REDOC_URL,
        openapi_url=OPENAPI_URL,
    )
    logger.info(f"API documentation {'enabled' if ENABLE_DOCS else 'disabled'} for environment: {ENVIRONMENT}")
    return app


def setup_app_middleware_and_routes(app: FastAPI):
    """
    Configure CORS and register the v1 routers.

    :param app: The FastAPI application instance to configure with middleware and routes.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400,
    )

    app.include_router(v1_router)

    @app.get("/api/info", tags=["System"], include_in_schema=ENABLE_DOCS)
    async def get_system_info():
        """Get system environment and documentation status."""
        return {
            "environment": ENVIRONMENT,
            "debug_mode": DEBUG_MODE,
            "docs_enabled": ENABLE_DOCS,
            "docs_url": DOCS_URL,
            "redoc_url": REDOC_URL,
            "openapi_url": OPENAPI_URL,
        }


def initialize_app():
    """Initialize app with middleware and routes."""
    app = create_app()
    setup_app_middleware_and_routes(app)
    return app


app = initialize_app()


# --------------------------------------------------------------------------- #
#  Main entry point
# --------------------------------------------------------------------------- #
def main():
    """Entry point for the telecall-server script."""
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(
        app,
        host="0.0.0.0",  # nosec: B104
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
