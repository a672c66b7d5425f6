"""FastAPI route definitions for the short link REST API.

This module maps HTTP endpoints onto the lifecycle engine. Lifecycle errors
are not caught here; the handlers registered in ``app.main`` turn them into
status codes.

API Endpoint Overview
=====================
::
    GET    /health                        └─ HealthResponse (200)

    POST   /api/v1/urls                   └─ ShortUrlResponse (201) or 409/422
    GET    /api/v1/urls/:code/stats       └─ UrlStatsResponse (200) or 404
    DELETE /api/v1/urls/:code             └─ 204 or 404

    GET    /api/v1/my-urls                └─ [ShortUrlResponse] (200) or 401
    POST   /api/v1/my-urls                └─ ShortUrlResponse (201) or 401/409/422
    GET    /api/v1/my-urls/:code/stats    └─ UrlStatsResponse (200) or 401/404
    DELETE /api/v1/my-urls/:code          └─ 204 or 401/404

    GET    /r/:code                       └─ 302 Redirect, 404 or 410

Key Behaviours
===============
- /api/v1/urls endpoints are anonymous; /api/v1/my-urls require a Bearer token.
- Owner-scoped endpoints answer 404 for codes owned by someone else.
- Expired codes answer 410 on redirect but remain visible to stats.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse

from app.dependencies import RequestContext, get_link_service, get_request_context, require_identity
from app.enums import HealthStatus
from app.exceptions import PersistenceError
from app.identity import Identity
from app.lifecycle import ShortLinkService
from app.schemas import HealthResponse, LinkCreate, ShortUrlResponse, UrlStatsResponse
from app.store import SQLAlchemyRecordStore

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await SQLAlchemyRecordStore(ctx.database, logger=ctx.logger).ping()
    except PersistenceError as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    return HealthResponse(status=db_status, database=db_status)


# ============================================================================
# ANONYMOUS LINKS
# ============================================================================


@router.post("/api/v1/urls", response_model=ShortUrlResponse, status_code=201, tags=["urls"])
async def create_url(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_link_service),
) -> ShortUrlResponse:
    link = await service.create(payload.url, alias=payload.custom_alias, expires_at=payload.expires_at)
    ctx.logger.info(f"URL shortened: {link.code} in {ctx.get_duration():.1f}ms")
    return ShortUrlResponse.from_model(link, ctx.settings.BASE_URL)


@router.get("/api/v1/urls/{short_code}/stats", response_model=UrlStatsResponse, tags=["urls"])
async def get_stats(
    short_code: str,
    service: ShortLinkService = Depends(get_link_service),
) -> UrlStatsResponse:
    link = await service.stats(short_code)
    return UrlStatsResponse.from_model(link)


@router.delete("/api/v1/urls/{short_code}", status_code=204, tags=["urls"])
async def delete_url(
    short_code: str,
    service: ShortLinkService = Depends(get_link_service),
) -> Response:
    await service.delete(short_code)
    return Response(status_code=204)


# ============================================================================
# OWNER-SCOPED LINKS
# ============================================================================


@router.get("/api/v1/my-urls", response_model=list[ShortUrlResponse], tags=["my-urls"])
async def list_my_urls(
    identity: Identity = Depends(require_identity),
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_link_service),
) -> list[ShortUrlResponse]:
    links = await service.list_by_owner(identity.owner_id)
    return [ShortUrlResponse.from_model(link, ctx.settings.BASE_URL) for link in links]


@router.post("/api/v1/my-urls", response_model=ShortUrlResponse, status_code=201, tags=["my-urls"])
async def create_my_url(
    payload: LinkCreate,
    identity: Identity = Depends(require_identity),
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_link_service),
) -> ShortUrlResponse:
    link = await service.create(
        payload.url,
        alias=payload.custom_alias,
        expires_at=payload.expires_at,
        owner_id=identity.owner_id,
        tenant_id=identity.tenant_id,
    )
    return ShortUrlResponse.from_model(link, ctx.settings.BASE_URL)


@router.get("/api/v1/my-urls/{short_code}/stats", response_model=UrlStatsResponse, tags=["my-urls"])
async def get_my_url_stats(
    short_code: str,
    identity: Identity = Depends(require_identity),
    service: ShortLinkService = Depends(get_link_service),
) -> UrlStatsResponse:
    link = await service.stats(short_code, owner_id=identity.owner_id)
    return UrlStatsResponse.from_model(link)


@router.delete("/api/v1/my-urls/{short_code}", status_code=204, tags=["my-urls"])
async def delete_my_url(
    short_code: str,
    identity: Identity = Depends(require_identity),
    service: ShortLinkService = Depends(get_link_service),
) -> Response:
    await service.delete(short_code, owner_id=identity.owner_id)
    return Response(status_code=204)


# ============================================================================
# REDIRECT
# ============================================================================


@router.get("/r/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    service: ShortLinkService = Depends(get_link_service),
) -> RedirectResponse:
    destination = await service.resolve(short_code)
    return RedirectResponse(url=destination, status_code=302)
