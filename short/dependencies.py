"""Dependency injection for the HTTP transport.

This module owns the shared resources of a running service (settings, logger,
key store, service and endpoint set) and hands them to FastAPI routes through
a lightweight per-request context.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request

from short.config import Settings, get_settings
from short.endpoints import EndpointSet
from short.service import Service, record_create, new_inmem_service
from short.store import KeyStore

__all__ = [
    "ServiceManager",
    "RequestContext",
    "setup_logger",
    "get_service_manager",
    "get_request_context",
]

LOGGER_NAME = "short"


def setup_logger(level: str = "INFO") -> logging.Logger:
    """Configure the package logger once."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Holds the resources shared by every request of one application.

    Resources are built on first use, so an application served without its
    lifespan (for instance through ``ASGITransport``) still works.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings
        self._initialized = False
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Initialize shared resources once."""
        with self._lock:
            if not self._initialized:
                self._build()

    def _build(self) -> None:
        self.settings = self._settings or get_settings()
        self.logger = setup_logger(self.settings.LOG_LEVEL)
        self.store = KeyStore(
            max_len=self.settings.MAX_LEN,
            min_key_size=self.settings.MIN_KEY_SIZE,
            listener=record_create,
        )
        self.service: Service = new_inmem_service(self.settings, self.logger, store=self.store)
        self.endpoints = EndpointSet.new(self.service, self.settings, self.logger)
        self._initialized = True
        self.logger.info(
            f"Service initialized: store=inmem max_len={self.settings.MAX_LEN} "
            f"min_key_size={self.settings.MIN_KEY_SIZE}"
        )

    def cleanup(self) -> None:
        """Drop shared resources; the in-memory store does not outlive this."""
        if self._initialized:
            self.logger.info(f"Service shutting down with {len(self.store)} entries")
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view of the shared resources.

    Attributes:
        service_manager: Manager with shared resources
        request_id: Unique identifier for this request
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())

    @property
    def endpoints(self) -> EndpointSet:
        return self.service_manager.endpoints

    @property
    def store(self) -> KeyStore:
        return self.service_manager.store

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {"request_id": self.request_id, "client_ip": self.client_ip},
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager = request.app.state.service_manager
    if not manager.initialized:
        manager.initialize()
    return manager


def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    client_ip = request.client.host if request.client else None
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    return RequestContext(service_manager=manager, request_id=request_id, client_ip=client_ip)
