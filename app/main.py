"""FastAPI application entry point for the short link service.

This module configures the FastAPI application with middleware, lifecycle
management, error mapping and route registration.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ init_db()   │
    │ services    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ cleanup()   │
    │ close_db()  │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn app.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/api/v1/urls \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com", "custom_alias": "demo"}'

    curl -i http://localhost:8080/r/demo

Error Mapping
=============
::
    AliasConflict     → 409
    LinkNotFound      → 404
    LinkExpired       → 410
    PersistenceError  → 500 (generic message)
"""

__all__ = ["app"]

import datetime
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import get_settings
from app.database import close_db, init_db
from app.dependencies import _service_manager
from app.exceptions import AliasConflict, LinkExpired, LinkNotFound, PersistenceError, ShortLinkError
from app.routes import router
from app.schemas import ErrorResponse

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short link service with expiry and access statistics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_ERROR: dict[type[ShortLinkError], int] = {
    AliasConflict: 409,
    LinkNotFound: 404,
    LinkExpired: 410,
}


def _error_response(status: int, message: str) -> JSONResponse:
    body = ErrorResponse(status=status, message=message, timestamp=datetime.datetime.now(datetime.timezone.utc))
    return JSONResponse(status_code=status, content=body.model_dump(mode="json"))


@app.exception_handler(ShortLinkError)
async def handle_short_link_error(request: Request, exc: ShortLinkError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        return _error_response(500, "Internal storage error")
    return _error_response(_STATUS_BY_ERROR.get(type(exc), 500), str(exc))


app.include_router(router)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)
