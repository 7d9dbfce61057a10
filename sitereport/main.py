import asyncio
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from sitereport.config import Settings
from sitereport.config import settings as default_settings
from sitereport.logging_config import get_logger, setup_logging
from sitereport.routers import webhook
from sitereport.services.container import Container, build_container
from sitereport.services.session_store import sweep_idle_sessions

sweep_logger = get_logger("sweep_worker")


def _is_sweep_worker_enabled(settings: Settings) -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.sweep_enabled


async def _sweep_worker_loop(container: Container) -> None:
    interval_seconds = max(container.settings.sweep_interval_seconds, 0.1)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            evicted = await sweep_idle_sessions(container.sessions, container.settings.idle_timeout_seconds)
            if evicted:
                sweep_logger.info(
                    "Idle sessions evicted",
                    extra={"context": {"count": len(evicted), "reporter_keys": evicted}},
                )
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweep_logger.error(
                "Sweep worker loop failed",
                extra={"context": {"error": str(exc)}},
            )


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    settings = settings or (container.settings if container else default_settings)
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Site Report API",
        description="WhatsApp field report workflow service",
        version="0.1.0",
    )
    app.state.container = container or build_container(settings)
    app.state.sweep_task = None
    app.include_router(webhook.router)

    @app.on_event("startup")
    async def start_sweep_worker() -> None:
        if not _is_sweep_worker_enabled(settings):
            return
        task = app.state.sweep_task
        if task is None or task.done():
            app.state.sweep_task = asyncio.create_task(_sweep_worker_loop(app.state.container))
            sweep_logger.info(
                "Sweep worker started",
                extra={"context": {"interval_seconds": settings.sweep_interval_seconds}},
            )

    @app.on_event("shutdown")
    async def stop_sweep_worker() -> None:
        task = app.state.sweep_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            app.state.sweep_task = None
        await app.state.container.close()

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    async def ready():
        container: Container = app.state.container
        backend = container.settings.session_backend
        if not await container.sessions.ping():
            return JSONResponse(status_code=503, content={"status": "unavailable", "session_backend": backend})
        return {"status": "ok", "session_backend": backend}

    return app


app = create_app()
