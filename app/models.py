"""SQLAlchemy ORM models for the short link service.

This module defines the database schema using SQLAlchemy declarative models
with the indexes and constraints the lifecycle engine relies on.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ destination_url (TEXT NOT NULL)
    ├─ owner_id (VARCHAR(64), INDEXED, NULL = anonymous)
    ├─ tenant_id (VARCHAR(64), NULL, requires owner_id)
    ├─ created_at (TIMESTAMPTZ NOT NULL)
    ├─ expires_at (TIMESTAMPTZ, NULL = never expires)
    ├─ access_count (INTEGER DEFAULT 0)
    └─ last_accessed_at (TIMESTAMPTZ, NULL until first resolution)

Key Behaviours
===============
- The UNIQUE constraint on code is the final arbiter of code uniqueness.
- A CHECK constraint rejects tenant-scoped rows without an owner.
- All timestamps come back timezone-aware (UTC), even from SQLite.

Classes:
    UTCDateTime:  Column type normalizing datetimes to aware UTC.
    ShortLink:  A short code mapped to a destination URL with access stats.
"""

import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from app.database import Base

__all__ = ["ShortLink", "UTCDateTime", "utcnow", "as_utc"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class UTCDateTime(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class ShortLink(Base):
    __tablename__ = "short_links"
    __table_args__ = (
        CheckConstraint("tenant_id IS NULL OR owner_id IS NOT NULL", name="ck_short_links_tenant_owner"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    destination_url: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    expires_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime(), nullable=True)
    access_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_accessed_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime(), nullable=True)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, code='{self.code}', access_count={self.access_count})>"
