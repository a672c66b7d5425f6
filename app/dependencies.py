"""Dependency injection with a singleton service manager.

This module provides a centralized way to inject the database session, shared
logger, introspection client and lifecycle engine into API endpoints, using a
singleton for resources that outlive a request.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import httpx
from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database import get_db
from app.identity import Identity, IdentityResolver
from app.lifecycle import ShortLinkService


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Holds the settings, the configured logger and the pooled HTTP client used
    for token introspection.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.settings = get_settings()
            self.logger = self._setup_logger()
            self.auth_client = self._setup_auth_client()
            self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlinks")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    def _setup_auth_client(self) -> httpx.AsyncClient:
        """Setup the introspection client once."""
        return httpx.AsyncClient(
            base_url=self.settings.AUTH_SERVICE_URL,
            timeout=self.settings.AUTH_TIMEOUT_SECONDS,
        )

    @property
    def identity_resolver(self) -> IdentityResolver:
        return IdentityResolver(self.auth_client, logger=self.logger)

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if hasattr(self, "auth_client"):
            await self.auth_client.aclose()
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and shared resource access.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    database: AsyncSession
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    @property
    def settings(self) -> Settings:
        """Get shared settings."""
        return self.service_manager.settings

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    client_ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    trace_id = request.headers.get("x-trace-id")

    return RequestContext(
        database=db,
        service_manager=manager,
        trace_id=trace_id,
        user_agent=user_agent,
        client_ip=client_ip,
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> ShortLinkService:
    return ShortLinkService.from_context(ctx)


async def get_identity_resolver(manager: ServiceManager = Depends(get_service_manager)) -> IdentityResolver:
    return manager.identity_resolver


async def get_optional_identity(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[Identity]:
    """Resolve the caller from a ``Bearer`` token; ``None`` means anonymous."""
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return await resolver.introspect(token.strip())


async def require_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
