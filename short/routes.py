"""FastAPI route definitions for the short key REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api
        ├─ CreateBody {"v": ...} (request body)
        └─ CreateReply {"k": ...} (200) or ErrorReply (400/422/429/500/503)

    GET  /api/{key}
        └─ LookupReply {"v": ...} (200) or ErrorReply (400/404/429/500/503)

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Decode body │
    │ / path      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Endpoint    │
    │ (limiter,   │
    │  breaker)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ response.err│──── YES ──▶ {"error": ...} + mapped status
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ 200 JSON    │
    └─────────────┘

How to Use
===========
**Create a key**::
    curl -X POST http://localhost:8081/api -d '{"v": "12345"}'
    {"k":"gnzLDu"}

**Look it up**::
    curl http://localhost:8081/api/gnzLDu
    {"v":"12345"}

Key Behaviours
===============
- Domain errors map to 400 (too large) and 404 (not found).
- Rejected rate limits map to 429 and an open breaker to 503.
- A missing or malformed body maps to 422.
- Everything else is a 500 with the error message.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from short.dependencies import RequestContext, get_request_context
from short.endpoints import CreateRequest, LookupRequest
from short.enums import HealthStatus
from short.errors import ShortError, status_code_for
from short.schemas import CreateBody, CreateReply, ErrorReply, HealthResponse, LookupReply

__all__ = ["router", "error_response"]

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorReply},
    404: {"model": ErrorReply},
    422: {"model": ErrorReply},
    429: {"model": ErrorReply},
    500: {"model": ErrorReply},
    503: {"model": ErrorReply},
}


def error_response(err: BaseException, status_code: Optional[int] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or status_code_for(err),
        content=ErrorReply(error=str(err)).model_dump(),
    )


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    ctx.logger.debug("Health check requested")
    return HealthResponse(status=HealthStatus.HEALTHY, entries=len(ctx.store))


@router.post("/api", response_model=CreateReply, responses=ERROR_RESPONSES, tags=["keys"])
async def create_key(
    payload: CreateBody,
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        response = ctx.endpoints.create_endpoint(CreateRequest(v=payload.v))
    except ShortError as exc:
        ctx.logger.warning(f"Create rejected: {exc}", extra={"duration_ms": ctx.get_duration()})
        return error_response(exc)

    if response.failed() is not None:
        return error_response(response.err)
    return CreateReply(k=response.k)


@router.get("/api/{key}", response_model=LookupReply, responses=ERROR_RESPONSES, tags=["keys"])
async def lookup_key(
    key: str,
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        response = ctx.endpoints.lookup_endpoint(LookupRequest(k=key))
    except ShortError as exc:
        ctx.logger.warning(f"Lookup rejected: {exc}", extra={"duration_ms": ctx.get_duration()})
        return error_response(exc)

    if response.failed() is not None:
        return error_response(response.err)
    return LookupReply(v=response.v)
