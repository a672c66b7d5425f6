"""Record Store interface and its SQLAlchemy adapter.

The lifecycle engine only talks to a ``RecordStore``. The SQLAlchemy adapter
wraps a single ``AsyncSession`` (one per request) and turns every database
failure into ``PersistenceError``, except a unique-code violation on insert,
which becomes ``CodeTaken`` so the engine can decide whether to retry.

Store Call Map
==============
::
    create ──────────────► INSERT            (IntegrityError → CodeTaken)
    find_by_code ────────► SELECT ... WHERE code
    exists_by_code ──────► SELECT EXISTS
    find_by_code_and_owner SELECT ... WHERE code AND owner_id
    list_by_owner ───────► SELECT ... WHERE owner_id
    delete_by_code ──────► DELETE            (idempotent)
    save ────────────────► MERGE             (full overwrite)
    increment_access ────► UPDATE SET access_count = access_count + 1

Classes:
    RecordStore:  Abstract async store interface.
    SQLAlchemyRecordStore:  Relational adapter over an AsyncSession.
"""

import datetime
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import delete, exists, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import CodeTaken, PersistenceError
from app.models import ShortLink

__all__ = ["RecordStore", "SQLAlchemyRecordStore"]


class RecordStore(ABC):
    """Durable mapping from short code to ``ShortLink``."""

    @abstractmethod
    async def create(self, link: ShortLink) -> ShortLink:
        """Insert a new link and return it with ``id`` assigned.

        Raises:
            CodeTaken: If another record already holds ``link.code``
            PersistenceError: On any other store failure
        """

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[ShortLink]:
        ...

    @abstractmethod
    async def exists_by_code(self, code: str) -> bool:
        ...

    @abstractmethod
    async def find_by_code_and_owner(self, code: str, owner_id: str) -> Optional[ShortLink]:
        ...

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[ShortLink]:
        ...

    @abstractmethod
    async def delete_by_code(self, code: str) -> None:
        """Delete the link with ``code``; a missing code is not an error."""

    @abstractmethod
    async def save(self, link: ShortLink) -> ShortLink:
        """Overwrite the full stored record with ``link``."""

    @abstractmethod
    async def increment_access(self, code: str, accessed_at: datetime.datetime) -> bool:
        """Atomically add one to ``access_count`` and stamp ``last_accessed_at``.

        Returns:
            bool: False if no record with ``code`` exists
        """

    @abstractmethod
    async def ping(self) -> None:
        ...


class SQLAlchemyRecordStore(RecordStore):
    def __init__(self, session: AsyncSession, logger: Optional[logging.Logger | logging.LoggerAdapter] = None):
        self._session = session
        self._logger = logger or logging.getLogger("shortlinks.store")

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            await self._session.rollback()
            self._logger.error(f"Store operation {operation} failed: {exc}")
            raise PersistenceError(f"Store operation {operation} failed") from exc

    async def create(self, link: ShortLink) -> ShortLink:
        try:
            self._session.add(link)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            # Only a row now holding the code means we lost a uniqueness race.
            if await self.exists_by_code(link.code):
                raise CodeTaken(link.code) from exc
            self._logger.error(f"Insert rejected for code {link.code}: {exc}")
            raise PersistenceError(f"Insert rejected for code {link.code}") from exc
        except SQLAlchemyError as exc:
            await self._session.rollback()
            self._logger.error(f"Insert failed for code {link.code}: {exc}")
            raise PersistenceError(f"Insert failed for code {link.code}") from exc

        async with self._guard("create"):
            await self._session.refresh(link)
        return link

    async def find_by_code(self, code: str) -> Optional[ShortLink]:
        async with self._guard("find_by_code"):
            result = await self._session.execute(
                select(ShortLink).where(ShortLink.code == code).execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def exists_by_code(self, code: str) -> bool:
        async with self._guard("exists_by_code"):
            result = await self._session.execute(select(exists().where(ShortLink.code == code)))
            return bool(result.scalar())

    async def find_by_code_and_owner(self, code: str, owner_id: str) -> Optional[ShortLink]:
        async with self._guard("find_by_code_and_owner"):
            result = await self._session.execute(
                select(ShortLink)
                .where(ShortLink.code == code, ShortLink.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def list_by_owner(self, owner_id: str) -> list[ShortLink]:
        async with self._guard("list_by_owner"):
            result = await self._session.execute(
                select(ShortLink)
                .where(ShortLink.owner_id == owner_id)
                .order_by(ShortLink.created_at.desc(), ShortLink.id.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def delete_by_code(self, code: str) -> None:
        async with self._guard("delete_by_code"):
            # Default session sync evicts the deleted object from the identity map.
            await self._session.execute(delete(ShortLink).where(ShortLink.code == code))
            await self._session.commit()

    async def save(self, link: ShortLink) -> ShortLink:
        async with self._guard("save"):
            merged = await self._session.merge(link)
            await self._session.commit()
            return merged

    async def increment_access(self, code: str, accessed_at: datetime.datetime) -> bool:
        async with self._guard("increment_access"):
            result = await self._session.execute(
                update(ShortLink)
                .where(ShortLink.code == code)
                .values(access_count=ShortLink.access_count + 1, last_accessed_at=accessed_at)
                .execution_options(synchronize_session=False)
            )
            await self._session.commit()
            return result.rowcount > 0

    async def ping(self) -> None:
        async with self._guard("ping"):
            await self._session.execute(text("SELECT 1"))
