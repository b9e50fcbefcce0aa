"""HTTP client library for the short key service.

``HTTPClient`` implements ``Service`` on top of a remote instance, so callers
use it exactly like the in-memory service::

    client = HTTPClient("localhost:8081")
    key = client.create("12345")
    value = client.lookup(key)

Calls go through a client-side rate limiter and circuit breaker. Not found
and too large replies come back as ``KeyNotFoundError`` and
``ValueTooLargeError``; any other failed reply is raised as the matching
``ShortError`` subclass and counts against the breaker.
"""

from typing import Optional
from urllib.parse import quote

import httpx

from short.config import Settings, get_settings
from short.endpoints import (
    CircuitBreaker,
    CreateRequest,
    CreateResponse,
    EndpointSet,
    LookupRequest,
    LookupResponse,
    TokenBucketLimiter,
    circuit_breaker,
    erroring_limiter,
)
from short.errors import KeyNotFoundError, ShortError, ValueTooLargeError, error_for_status

__all__ = ["HTTPClient", "normalize_instance"]

# Replies decoded into the response instead of raised.
DOMAIN_ERRORS = (KeyNotFoundError, ValueTooLargeError)


def normalize_instance(instance: str) -> str:
    """Return ``instance`` as a base URL, defaulting the scheme to http."""
    if not instance.startswith("http"):
        instance = "http://" + instance
    return instance.rstrip("/")


def _decode_error(response: httpx.Response) -> ShortError:
    try:
        message = response.json().get("error") or response.reason_phrase
    except ValueError:
        message = f"{response.status_code} {response.reason_phrase}"
    return error_for_status(response.status_code, message)


class HTTPClient:
    """Service backed by an HTTP server living at a remote instance.

    Args:
        instance: ``host:port`` or a full base URL.
        settings: Source of the client limiter, breaker and timeout values.
        http: Pre-built ``httpx.Client``; one is created (and owned) if omitted.
    """

    def __init__(
        self,
        instance: str,
        settings: Optional[Settings] = None,
        http: Optional[httpx.Client] = None,
    ) -> None:
        settings = settings or get_settings()
        self.base_url = normalize_instance(instance)
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=settings.CLIENT_TIMEOUT_SECONDS)

        limiter = erroring_limiter(TokenBucketLimiter(settings.CLIENT_RATE_LIMIT, settings.CLIENT_RATE_BURST))
        breaker = circuit_breaker(
            CircuitBreaker(
                settings.BREAKER_FAILURE_THRESHOLD,
                settings.CLIENT_BREAKER_RESET_TIMEOUT_SECONDS,
            )
        )
        self._endpoints = EndpointSet(
            create_endpoint=breaker(limiter(self._create)),
            lookup_endpoint=breaker(limiter(self._lookup)),
        )

    def _create(self, request: CreateRequest) -> CreateResponse:
        response = self._http.post(f"{self.base_url}/api", json={"v": request.v})
        if response.status_code != httpx.codes.OK:
            err = _decode_error(response)
            if isinstance(err, DOMAIN_ERRORS):
                return CreateResponse(err=err)
            raise err
        return CreateResponse(k=response.json()["k"])

    def _lookup(self, request: LookupRequest) -> LookupResponse:
        response = self._http.get(f"{self.base_url}/api/{quote(request.k, safe='')}")
        if response.status_code != httpx.codes.OK:
            err = _decode_error(response)
            if isinstance(err, DOMAIN_ERRORS):
                return LookupResponse(err=err)
            raise err
        return LookupResponse(v=response.json()["v"])

    def create(self, value: str) -> str:
        return self._endpoints.create(value)

    def lookup(self, key: str) -> str:
        return self._endpoints.lookup(key)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
