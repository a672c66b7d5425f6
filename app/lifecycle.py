"""Short link lifecycle engine.

``ShortLinkService`` orchestrates the five operations over a ``RecordStore``:
creation (alias or generated code), resolution (expiry check and atomic
access bookkeeping), stats, deletion and listing by owner. It keeps no shared
mutable state and takes no locks; the store serializes conflicting writes.

Flow Diagram — create()
=======================
::
    ┌─────────────┐
    │ Uniqueness   │
    │ Resolver     │
    └──────┬──────┘
           ▼
    ┌─────────────┐   CodeTaken (generated)
    │ store.create │──────────────┐
    └──────┬──────┘              │ redraw, bounded
           │ CodeTaken (alias)   ▼
           ├──────────────► AliasConflict
           ▼
        ShortLink

Flow Diagram — resolve()
========================
::
    find_by_code ──► None ──────────────► LinkNotFound
         │
         ▼
    now > expires_at ──► yes ───────────► LinkExpired (no mutation)
         │
         ▼
    increment_access ──► no row ────────► LinkNotFound (deleted meanwhile)
         │
         ▼
    destination_url

Key Behaviours
===============
- Owner-scoped lookups report foreign-owned codes as LinkNotFound, exactly
  like codes that do not exist.
- Expired links stay stored; they are only unresolvable.
- A failed counter write fails the resolution; the URL is not returned.

Classes:
    ShortLinkService:  The lifecycle engine.
"""

import datetime
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Optional

from prometheus_client import Counter, Histogram

from app.codes import CodeGenerator, UniquenessResolver
from app.config import Settings, get_settings
from app.enums import OutcomeStatus
from app.exceptions import AliasConflict, CodeTaken, LinkExpired, LinkNotFound, PersistenceError
from app.models import ShortLink, as_utc, utcnow
from app.store import RecordStore, SQLAlchemyRecordStore

if TYPE_CHECKING:
    from app.dependencies import RequestContext

__all__ = ["ShortLinkService"]


LINK_CREATIONS_TOTAL = Counter(
    "shortlinks_creations_total",
    "Short link creation attempts",
    ["status"],
)
LINK_RESOLUTIONS_TOTAL = Counter(
    "shortlinks_resolutions_total",
    "Short code resolutions",
    ["status"],
)
LINK_DELETIONS_TOTAL = Counter(
    "shortlinks_deletions_total",
    "Short link deletion attempts",
    ["status"],
)
RESOLUTION_DURATION = Histogram(
    "shortlinks_resolution_duration_seconds",
    "Time taken to resolve a short code",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


class ShortLinkService:
    """Lifecycle engine for short links.

    Args:
        store: Record store holding every link
        settings: Code length, retry bounds and delete policy
        resolver: Uniqueness resolver; built from ``settings`` when omitted
        logger: Logger or request-scoped adapter
        clock: Source of "now"; must return aware UTC datetimes
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[Settings] = None,
        resolver: Optional[UniquenessResolver] = None,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("shortlinks")
        self._resolver = resolver or UniquenessResolver(
            store,
            CodeGenerator(self._settings.SHORT_CODE_LENGTH),
            max_attempts=self._settings.MAX_CODE_GENERATION_ATTEMPTS,
            logger=self._logger,
        )
        self._clock = clock

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "ShortLinkService":
        store = SQLAlchemyRecordStore(ctx.database, logger=ctx.logger)
        return cls(store, settings=ctx.settings, logger=ctx.logger)

    async def create(
        self,
        destination_url: str,
        alias: Optional[str] = None,
        expires_at: Optional[datetime.datetime] = None,
        owner_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> ShortLink:
        """Create a link under a custom alias or a freshly generated code.

        Raises:
            AliasConflict: If ``alias`` is already in use
            PersistenceError: If the store fails or no free code can be found
            ValueError: If ``tenant_id`` is given without ``owner_id``
        """
        if tenant_id is not None and owner_id is None:
            raise ValueError("tenant_id requires owner_id")

        try:
            link = await self._insert(destination_url, alias, as_utc(expires_at), owner_id, tenant_id)
        except AliasConflict:
            LINK_CREATIONS_TOTAL.labels(status=OutcomeStatus.CONFLICT).inc()
            raise
        except PersistenceError:
            LINK_CREATIONS_TOTAL.labels(status=OutcomeStatus.ERROR).inc()
            raise

        LINK_CREATIONS_TOTAL.labels(status=OutcomeStatus.SUCCESS).inc()
        self._logger.info(f"Created short link {link.code} -> {link.destination_url}")
        return link

    async def resolve(self, code: str) -> str:
        """Return the destination of ``code`` and record the access.

        Raises:
            LinkNotFound: If no link has ``code``
            LinkExpired: If the link's expiry lies in the past
            PersistenceError: If the store fails, including the counter write
        """
        start_time = time.perf_counter()
        try:
            link = await self._store.find_by_code(code)
            if link is None:
                self._logger.warning(f"Resolution failed, code not found: {code}")
                raise LinkNotFound(code)

            now = self._clock()
            if link.is_expired(now):
                self._logger.warning(f"Resolution refused, code expired: {code}")
                raise LinkExpired(code)

            if not await self._store.increment_access(code, now):
                self._logger.warning(f"Code deleted during resolution: {code}")
                raise LinkNotFound(code)
        except LinkNotFound:
            LINK_RESOLUTIONS_TOTAL.labels(status=OutcomeStatus.NOT_FOUND).inc()
            raise
        except LinkExpired:
            LINK_RESOLUTIONS_TOTAL.labels(status=OutcomeStatus.EXPIRED).inc()
            raise
        except PersistenceError:
            LINK_RESOLUTIONS_TOTAL.labels(status=OutcomeStatus.ERROR).inc()
            raise
        finally:
            RESOLUTION_DURATION.observe(time.perf_counter() - start_time)

        LINK_RESOLUTIONS_TOTAL.labels(status=OutcomeStatus.SUCCESS).inc()
        self._logger.debug(f"Resolved {code} -> {link.destination_url}")
        return link.destination_url

    async def stats(self, code: str, owner_id: Optional[str] = None) -> ShortLink:
        link = await self._lookup(code, owner_id)
        if link is None:
            self._logger.warning(f"Stats not found for code: {code}")
            raise LinkNotFound(code)
        return link

    async def delete(self, code: str, owner_id: Optional[str] = None) -> None:
        link = await self._lookup(code, owner_id)
        if link is None or (
            owner_id is None and link.owner_id is not None and not self._settings.ANONYMOUS_DELETE_OWNED_LINKS
        ):
            LINK_DELETIONS_TOTAL.labels(status=OutcomeStatus.NOT_FOUND).inc()
            self._logger.warning(f"Delete failed, code not found: {code}")
            raise LinkNotFound(code)

        await self._store.delete_by_code(code)
        LINK_DELETIONS_TOTAL.labels(status=OutcomeStatus.SUCCESS).inc()
        self._logger.info(f"Deleted short link {code}")

    async def list_by_owner(self, owner_id: str) -> list[ShortLink]:
        links = await self._store.list_by_owner(owner_id)
        self._logger.debug(f"Listed {len(links)} links for owner {owner_id}")
        return links

    async def _lookup(self, code: str, owner_id: Optional[str]) -> Optional[ShortLink]:
        if owner_id is None:
            return await self._store.find_by_code(code)
        return await self._store.find_by_code_and_owner(code, owner_id)

    async def _insert(
        self,
        destination_url: str,
        alias: Optional[str],
        expires_at: Optional[datetime.datetime],
        owner_id: Optional[str],
        tenant_id: Optional[str],
    ) -> ShortLink:
        retries = self._settings.CREATE_RETRY_LIMIT
        while True:
            code = await self._resolver.resolve(alias)
            link = ShortLink(
                code=code,
                destination_url=destination_url,
                owner_id=owner_id,
                tenant_id=tenant_id,
                created_at=self._clock(),
                expires_at=expires_at,
                access_count=0,
                last_accessed_at=None,
            )
            try:
                return await self._store.create(link)
            except CodeTaken as exc:
                if alias:
                    self._logger.warning(f"Custom alias claimed concurrently: {alias}")
                    raise AliasConflict(alias) from exc
                if retries <= 0:
                    self._logger.error(f"Generated code kept colliding on insert, last: {code}")
                    raise PersistenceError("Unable to store a unique short code") from exc
                retries -= 1
                self._logger.warning(f"Generated code {code} claimed concurrently, redrawing")
