"""Service layer for short key creation and lookup.

This module defines the ``Service`` interface shared by the in-memory
implementation, the endpoint set and the HTTP client, plus the service
middlewares that add logging and prometheus counters around any ``Service``.

Middleware Stack
================
::
    ┌──────────────────────────┐
    │ InstrumentingMiddleware  │  inserts / lookups counters
    │  ┌────────────────────┐  │
    │  │ LoggingMiddleware  │  │  one log line per call
    │  │  ┌──────────────┐  │  │
    │  │  │   KeyStore   │  │  │  derivation + mapping
    │  │  └──────────────┘  │  │
    │  └────────────────────┘  │
    └──────────────────────────┘

How to Use
===========
**Step 1 — Build the wired service**::
    svc = new_inmem_service(get_settings(), logging.getLogger("short"))

**Step 2 — Call it**::
    key = svc.create("https://example.com")
    value = svc.lookup(key)

Key Behaviours
===============
- Middlewares never change results or errors, they only observe them.
- Counters are incremented on success and failure, labelled by outcome.
- Collisions are counted from the key store's create listener.
"""

import logging
from typing import Callable, Optional, Protocol

from prometheus_client import Counter

from short.config import Settings
from short.enums import Method, Outcome
from short.store import KeyStore

__all__ = [
    "Service",
    "Middleware",
    "LoggingMiddleware",
    "InstrumentingMiddleware",
    "new_inmem_service",
    "record_create",
    "INSERTS_TOTAL",
    "LOOKUPS_TOTAL",
    "COLLISIONS_TOTAL",
    "NEW_KEYS_TOTAL",
]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

INSERTS_TOTAL = Counter(
    "short_service_inserts_total",
    "Total count of inserts",
    ["method", "success"],
)
LOOKUPS_TOTAL = Counter(
    "short_service_lookups_total",
    "Total count of lookups",
    ["method", "success"],
)
COLLISIONS_TOTAL = Counter(
    "short_service_collisions_total",
    "Total key collisions resolved while probing the digest",
)
NEW_KEYS_TOTAL = Counter(
    "short_service_new_keys_total",
    "Total keys claimed by create, excluding idempotent re-creates",
)


# ============================================================================
# INTERFACE
# ============================================================================


class Service(Protocol):
    """Generates and stores URL safe short keys for strings."""

    def create(self, value: str) -> str: ...

    def lookup(self, key: str) -> str: ...


Middleware = Callable[[Service], Service]


# ============================================================================
# MIDDLEWARES
# ============================================================================


class LoggingMiddleware:
    """Logs every call with its input, output and error."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, next_svc: Service):
        self._logger = logger
        self._next = next_svc

    @classmethod
    def wrap(cls, logger: logging.Logger | logging.LoggerAdapter) -> Middleware:
        return lambda svc: cls(logger, svc)

    def create(self, value: str) -> str:
        key, err = "", None
        try:
            key = self._next.create(value)
            return key
        except Exception as exc:
            err = exc
            raise
        finally:
            self._logger.info(
                f"method={Method.CREATE} v={value!r} k={key!r} err={err}",
                extra={"method": Method.CREATE.value, "v": value, "k": key, "err": str(err) if err else None},
            )

    def lookup(self, key: str) -> str:
        value, err = "", None
        try:
            value = self._next.lookup(key)
            return value
        except Exception as exc:
            err = exc
            raise
        finally:
            self._logger.info(
                f"method={Method.LOOKUP} k={key!r} v={value!r} err={err}",
                extra={"method": Method.LOOKUP.value, "k": key, "v": value, "err": str(err) if err else None},
            )


class InstrumentingMiddleware:
    """Counts creations and lookups over the lifetime of the service."""

    def __init__(self, inserts: Counter, lookups: Counter, next_svc: Service):
        self._inserts = inserts
        self._lookups = lookups
        self._next = next_svc

    @classmethod
    def wrap(cls, inserts: Counter = INSERTS_TOTAL, lookups: Counter = LOOKUPS_TOTAL) -> Middleware:
        return lambda svc: cls(inserts, lookups, svc)

    def create(self, value: str) -> str:
        try:
            key = self._next.create(value)
        except Exception:
            self._inserts.labels(method=Method.CREATE.value, success=Outcome.FAILURE.value).inc()
            raise
        self._inserts.labels(method=Method.CREATE.value, success=Outcome.SUCCESS.value).inc()
        return key

    def lookup(self, key: str) -> str:
        try:
            value = self._next.lookup(key)
        except Exception:
            self._lookups.labels(method=Method.LOOKUP.value, success=Outcome.FAILURE.value).inc()
            raise
        self._lookups.labels(method=Method.LOOKUP.value, success=Outcome.SUCCESS.value).inc()
        return value


def record_create(key: str, collisions: int, created: bool) -> None:
    if collisions:
        COLLISIONS_TOTAL.inc(collisions)
    if created:
        NEW_KEYS_TOTAL.inc()


# ============================================================================
# FACTORY
# ============================================================================


def new_inmem_service(
    settings: Settings,
    logger: logging.Logger | logging.LoggerAdapter,
    store: Optional[KeyStore] = None,
) -> Service:
    """Return a memory backed Service with all of the expected middlewares wired in.

    Args:
        settings: Source of ``MAX_LEN`` and ``MIN_KEY_SIZE``.
        logger: Logger used by the logging middleware.
        store: Pre-built key store; built from settings when omitted.
    """
    if store is None:
        store = KeyStore(
            max_len=settings.MAX_LEN,
            min_key_size=settings.MIN_KEY_SIZE,
            listener=record_create,
        )
    svc: Service = store
    svc = LoggingMiddleware.wrap(logger)(svc)
    svc = InstrumentingMiddleware.wrap()(svc)
    return svc
