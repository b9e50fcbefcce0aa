"""Pydantic schemas for the HTTP wire format of the short key service.

Schema Hierarchy
=================
::
    CreateBody (Input, POST /api)
    └─ v: str

    CreateReply (Output)
    └─ k: str

    LookupReply (Output, GET /api/{key})
    └─ v: str

    ErrorReply (Output, any failure)
    └─ error: str

    HealthResponse (Output, GET /health)
    ├─ status: HealthStatus
    └─ entries: int

Key Behaviours
===============
- Field names are single letters to match the wire format of existing clients.
- Length limits are enforced by the key store, not here, so that oversized
  values surface as a 400 ``{"error": ...}`` rather than a 422.
"""

from pydantic import BaseModel, Field

from short.enums import HealthStatus

__all__ = [
    "CreateBody",
    "CreateReply",
    "LookupReply",
    "ErrorReply",
    "HealthResponse",
]


class CreateBody(BaseModel):
    v: str = Field(..., description="Value to derive a short key for")


class CreateReply(BaseModel):
    k: str = Field(..., description="Short key, e.g. 'gnzLDu'")


class LookupReply(BaseModel):
    v: str


class ErrorReply(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: HealthStatus
    entries: int = Field(0, ge=0, description="Number of stored entries")
