"""Pydantic schemas for request/response validation in the short link API.

This module defines Pydantic models for API input validation and output serialization,
ensuring type safety and automatic OpenAPI documentation generation.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ url: str (validated URL)
    ├─ custom_alias: str | None (optional, validated)
    └─ expires_at: datetime | None

    ShortUrlResponse (Output)
    ├─ short_url: str (computed)
    ├─ short_code: str
    ├─ original_url: str
    ├─ created_at: datetime
    └─ expires_at: datetime | None

    UrlStatsResponse (Output)
    ├─ short_code, original_url
    ├─ access_count: int
    └─ created_at, last_accessed_at, expires_at

    HealthResponse (Output)
    ├─ status
    └─ database

    ErrorResponse (Output)
    ├─ status: int
    ├─ message: str
    └─ timestamp: datetime

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- Custom aliases must be alphanumeric and 3-20 characters long.
- Blank aliases are treated as absent.
- All datetime fields are timezone-aware.
"""

import datetime

import validators
from pydantic import BaseModel, field_validator

from app.enums import HealthStatus
from app.models import ShortLink, as_utc

__all__ = [
    "LinkCreate",
    "ShortUrlResponse",
    "UrlStatsResponse",
    "HealthResponse",
    "ErrorResponse",
]


class LinkCreate(BaseModel):
    url: str
    custom_alias: str | None = None
    expires_at: datetime.datetime | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not validators.url(v):
            raise ValueError("Invalid URL format")
        return v

    @field_validator("custom_alias")
    @classmethod
    def validate_custom_alias(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        if len(v) < 3 or len(v) > 20:
            raise ValueError("Custom alias must be between 3 and 20 characters")
        if not v.isascii() or not v.isalnum():
            raise ValueError("Custom alias must be alphanumeric")
        return v

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v)


class ShortUrlResponse(BaseModel):
    short_url: str
    short_code: str
    original_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    @classmethod
    def from_model(cls, link: ShortLink, base_url: str) -> "ShortUrlResponse":
        return cls(
            short_url=f"{base_url.rstrip('/')}/r/{link.code}",
            short_code=link.code,
            original_url=link.destination_url,
            created_at=link.created_at,
            expires_at=link.expires_at,
        )


class UrlStatsResponse(BaseModel):
    short_code: str
    original_url: str
    access_count: int
    created_at: datetime.datetime
    last_accessed_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None

    @classmethod
    def from_model(cls, link: ShortLink) -> "UrlStatsResponse":
        return cls(
            short_code=link.code,
            original_url=link.destination_url,
            access_count=link.access_count,
            created_at=link.created_at,
            last_accessed_at=link.last_accessed_at,
            expires_at=link.expires_at,
        )


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus


class ErrorResponse(BaseModel):
    status: int
    message: str
    timestamp: datetime.datetime
