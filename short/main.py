"""FastAPI application entry point for the short key service.

Application Lifecycle Diagram
=============================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_app()│
    │ + routes    │
    │ + /metrics  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ initialize  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ cleanup     │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn short.main:app --host 0.0.0.0 --port 8081

**Step 2 — Or with the bundled entry point**::
    short-server --http-port 8081

**Step 3 — Scrape metrics**::
    curl http://localhost:8081/metrics

Key Behaviours
===============
- The key store lives as long as the process; nothing is persisted.
- Unexpected exceptions are returned as 500 ``{"error": ...}``.
- Malformed or incomplete requests are returned as 422 ``{"error": ...}``.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from short import __version__
from short.config import Settings, get_settings
from short.dependencies import ServiceManager
from short.errors import ShortError
from short.routes import error_response, router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    app.state.service_manager.initialize()
    yield
    # Shutdown
    app.state.service_manager.cleanup()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    manager: ServiceManager = request.app.state.service_manager
    if manager.initialized:
        manager.logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return error_response(ShortError(f"invalid request: {details}"), status_code=422)


def create_app(settings: Optional[Settings] = None, instrument: bool = True) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.APP_NAME,
        version=__version__,
        description="Deterministic short keys for arbitrary strings",
        lifespan=lifespan,
    )
    app.state.service_manager = ServiceManager(settings)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    if instrument:
        Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=False,
            should_respect_env_var=False,
        ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
