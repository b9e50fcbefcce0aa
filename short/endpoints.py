"""Endpoint layer wrapping the service with resilience and observability.

Each service operation becomes an endpoint: a callable taking a request
object and returning a response object. Domain errors travel inside the
response (``response.err``) so that only transport level failures, such as a
rejected rate limit or an unexpected exception, are raised and counted by the
circuit breaker.

Endpoint Stack
==============
::
    request
       │
       ▼
    ┌──────────────────────┐
    │ instrumenting        │  duration histogram (method, success)
    ├──────────────────────┤
    │ logging              │  transport_error + took
    ├──────────────────────┤
    │ circuit breaker      │  CircuitOpenError while open
    ├──────────────────────┤
    │ rate limiter         │  RateLimitExceededError when out of tokens
    ├──────────────────────┤
    │ make_*_endpoint(svc) │  calls Service, packs result/err
    └──────────────────────┘
       │
       ▼
    response

Circuit Breaker States
======================
::
    CLOSED ── failures > threshold ──▶ OPEN
      ▲                                  │
      │                          reset_timeout elapsed
      │                                  ▼
      └──────── trial succeeds ──── HALF_OPEN ── trial fails ──▶ OPEN

How to Use
===========
**Step 1 — Wire the set**::
    endpoints = EndpointSet.new(svc, settings, logger)

**Step 2 — Call endpoints directly**::
    resp = endpoints.create_endpoint(CreateRequest(v="12345"))
    if resp.failed():
        ...

**Step 3 — Or use the set as a Service**::
    key = endpoints.create("12345")

Key Behaviours
===============
- Rate limiters never block, they reject immediately.
- Only raised exceptions count as breaker failures.
- Every endpoint observes its duration, labelled by method and outcome.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from prometheus_client import Histogram

from short.config import Settings
from short.enums import Method, Outcome
from short.errors import CircuitOpenError, RateLimitExceededError, ShortError
from short.service import Service

__all__ = [
    "Endpoint",
    "EndpointMiddleware",
    "CreateRequest",
    "CreateResponse",
    "LookupRequest",
    "LookupResponse",
    "make_create_endpoint",
    "make_lookup_endpoint",
    "TokenBucketLimiter",
    "erroring_limiter",
    "BreakerState",
    "CircuitBreaker",
    "circuit_breaker",
    "logging_middleware",
    "instrumenting_middleware",
    "EndpointSet",
    "REQUEST_DURATION",
]

Endpoint = Callable[[Any], Any]
EndpointMiddleware = Callable[[Endpoint], Endpoint]
Clock = Callable[[], float]

REQUEST_DURATION = Histogram(
    "short_endpoint_request_duration_seconds",
    "Request duration in seconds",
    ["method", "success"],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


# ============================================================================
# REQUESTS AND RESPONSES
# ============================================================================


@dataclass
class CreateRequest:
    v: str


@dataclass
class CreateResponse:
    k: str = ""
    err: Optional[Exception] = field(default=None, repr=False)

    def failed(self) -> Optional[Exception]:
        return self.err


@dataclass
class LookupRequest:
    k: str


@dataclass
class LookupResponse:
    v: str = ""
    err: Optional[Exception] = field(default=None, repr=False)

    def failed(self) -> Optional[Exception]:
        return self.err


def make_create_endpoint(svc: Service) -> Endpoint:
    """Construct a create endpoint wrapping the service."""

    def endpoint(request: CreateRequest) -> CreateResponse:
        try:
            return CreateResponse(k=svc.create(request.v))
        except ShortError as exc:
            return CreateResponse(err=exc)

    return endpoint


def make_lookup_endpoint(svc: Service) -> Endpoint:
    """Construct a lookup endpoint wrapping the service."""

    def endpoint(request: LookupRequest) -> LookupResponse:
        try:
            return LookupResponse(v=svc.lookup(request.k))
        except ShortError as exc:
            return LookupResponse(err=exc)

    return endpoint


# ============================================================================
# RATE LIMITING
# ============================================================================


class TokenBucketLimiter:
    """Token bucket refilled at ``rate`` tokens per second up to ``burst``."""

    def __init__(self, rate: float, burst: int, clock: Clock = time.monotonic):
        assert rate > 0, f"rate must be positive, got {rate!r}"
        assert burst > 0, f"burst must be positive, got {burst!r}"
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """Take one token if available."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            self._last = now
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False


def erroring_limiter(limiter: TokenBucketLimiter) -> EndpointMiddleware:
    """Reject calls with ``RateLimitExceededError`` when the bucket is empty."""

    def middleware(next_endpoint: Endpoint) -> Endpoint:
        def endpoint(request: Any) -> Any:
            if not limiter.allow():
                raise RateLimitExceededError()
            return next_endpoint(request)

        return endpoint

    return middleware


# ============================================================================
# CIRCUIT BREAKING
# ============================================================================


class BreakerState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Circuit breaker tripping after repeated consecutive failures.

    The breaker opens once consecutive failures exceed ``failure_threshold``.
    After ``reset_timeout`` seconds a single trial call is let through; its
    outcome closes or re-opens the circuit.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Clock = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._refresh()
            return self._state

    def _refresh(self) -> None:
        if self._state is BreakerState.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False

    def before_call(self) -> None:
        with self._lock:
            self._refresh()
            if self._state is BreakerState.OPEN:
                raise CircuitOpenError()
            if self._state is BreakerState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError("too many requests while half-open")
                self._trial_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = BreakerState.CLOSED
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state is BreakerState.HALF_OPEN or self._failures > self.failure_threshold:
                self._state = BreakerState.OPEN
                self._opened_at = self._clock()
                self._failures = 0
                self._trial_in_flight = False

    def call(self, fn: Callable[[], Any]) -> Any:
        self.before_call()
        try:
            result = fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result


def circuit_breaker(breaker: CircuitBreaker) -> EndpointMiddleware:
    def middleware(next_endpoint: Endpoint) -> Endpoint:
        def endpoint(request: Any) -> Any:
            return breaker.call(lambda: next_endpoint(request))

        return endpoint

    return middleware


# ============================================================================
# OBSERVABILITY
# ============================================================================


def logging_middleware(logger: logging.Logger | logging.LoggerAdapter, method: Method) -> EndpointMiddleware:
    """Log the transport error (if any) and duration of each call."""

    def middleware(next_endpoint: Endpoint) -> Endpoint:
        def endpoint(request: Any) -> Any:
            start_time = time.perf_counter()
            err: Optional[Exception] = None
            try:
                return next_endpoint(request)
            except Exception as exc:
                err = exc
                raise
            finally:
                took = time.perf_counter() - start_time
                logger.info(
                    f"method={method} transport_error={err} took={took:.6f}s",
                    extra={"method": method.value, "transport_error": str(err) if err else None, "took": took},
                )

        return endpoint

    return middleware


def instrumenting_middleware(duration: Histogram, method: Method) -> EndpointMiddleware:
    """Observe call duration labelled by method and success."""

    def middleware(next_endpoint: Endpoint) -> Endpoint:
        def endpoint(request: Any) -> Any:
            start_time = time.perf_counter()
            err: Optional[Exception] = None
            try:
                response = next_endpoint(request)
                err = response.failed() if hasattr(response, "failed") else None
                return response
            except Exception as exc:
                err = exc
                raise
            finally:
                duration.labels(method=method.value, success=Outcome.of(err).value).observe(
                    time.perf_counter() - start_time
                )

        return endpoint

    return middleware


# ============================================================================
# ENDPOINT SET
# ============================================================================


@dataclass
class EndpointSet:
    """Collects all of the endpoints that compose the service.

    The set also implements ``Service``, which is what the HTTP client
    library returns to its callers.
    """

    create_endpoint: Endpoint
    lookup_endpoint: Endpoint

    @classmethod
    def new(
        cls,
        svc: Service,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
        duration: Histogram = REQUEST_DURATION,
        clock: Clock = time.monotonic,
    ) -> "EndpointSet":
        """Wrap ``svc`` and wire in the expected endpoint middlewares."""
        create_endpoint = make_create_endpoint(svc)
        create_endpoint = erroring_limiter(
            TokenBucketLimiter(settings.CREATE_RATE_LIMIT, settings.CREATE_RATE_BURST, clock=clock)
        )(create_endpoint)
        create_endpoint = circuit_breaker(
            CircuitBreaker(settings.BREAKER_FAILURE_THRESHOLD, settings.BREAKER_RESET_TIMEOUT_SECONDS, clock=clock)
        )(create_endpoint)
        create_endpoint = logging_middleware(logger, Method.CREATE)(create_endpoint)
        create_endpoint = instrumenting_middleware(duration, Method.CREATE)(create_endpoint)

        lookup_endpoint = make_lookup_endpoint(svc)
        lookup_endpoint = erroring_limiter(
            TokenBucketLimiter(settings.LOOKUP_RATE_LIMIT, settings.LOOKUP_RATE_BURST, clock=clock)
        )(lookup_endpoint)
        lookup_endpoint = circuit_breaker(
            CircuitBreaker(settings.BREAKER_FAILURE_THRESHOLD, settings.BREAKER_RESET_TIMEOUT_SECONDS, clock=clock)
        )(lookup_endpoint)
        lookup_endpoint = logging_middleware(logger, Method.LOOKUP)(lookup_endpoint)
        lookup_endpoint = instrumenting_middleware(duration, Method.LOOKUP)(lookup_endpoint)

        return cls(create_endpoint=create_endpoint, lookup_endpoint=lookup_endpoint)

    def create(self, value: str) -> str:
        response: CreateResponse = self.create_endpoint(CreateRequest(v=value))
        if response.err is not None:
            raise response.err
        return response.k

    def lookup(self, key: str) -> str:
        response: LookupResponse = self.lookup_endpoint(LookupRequest(k=key))
        if response.err is not None:
            raise response.err
        return response.v
