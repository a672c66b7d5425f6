"""Caller identity resolution through the external auth service.

Bearer tokens are never inspected locally. ``IdentityResolver`` posts them to
the auth service's introspection endpoint and turns an active response into
an ``Identity``. Anything else (inactive token, HTTP error, unreachable
service, malformed body) means the caller is anonymous.

How to Use
===========
::
    async with httpx.AsyncClient(base_url=settings.AUTH_SERVICE_URL) as client:
        resolver = IdentityResolver(client)
        identity = await resolver.introspect(token)
        if identity:
            print(identity.owner_id, identity.tenant_id)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

__all__ = ["Identity", "IdentityResolver", "IntrospectionResponse", "INTROSPECT_PATH"]

INTROSPECT_PATH = "/api/v1/auth/introspect"


@dataclass(frozen=True)
class Identity:
    owner_id: str
    tenant_id: Optional[str] = None


class IntrospectionResponse(BaseModel):
    """Payload returned by the auth service for a token."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    active: bool
    user_id: Optional[str] = Field(None, alias="userId")
    tenant_id: Optional[str] = Field(None, alias="tenantId")
    tenant_slug: Optional[str] = Field(None, alias="tenantSlug")
    email: Optional[str] = None
    roles: list[str] = Field(default_factory=list)


class IdentityResolver:
    def __init__(self, client: httpx.AsyncClient, logger: Optional[logging.Logger | logging.LoggerAdapter] = None):
        self._client = client
        self._logger = logger or logging.getLogger("shortlinks.identity")

    async def introspect(self, token: str) -> Optional[Identity]:
        if not token:
            return None

        try:
            response = await self._client.post(INTROSPECT_PATH, json={"token": token})
            response.raise_for_status()
            payload = IntrospectionResponse.model_validate(response.json())
        except httpx.HTTPError as exc:
            self._logger.warning(f"Token introspection failed: {exc}")
            return None
        except (ValueError, ValidationError) as exc:
            self._logger.warning(f"Token introspection returned an invalid body: {exc}")
            return None

        if not payload.active or not payload.user_id:
            return None
        return Identity(owner_id=str(payload.user_id), tenant_id=payload.tenant_id)
