"""Error taxonomy for the short link lifecycle.

Every engine operation either returns a value or raises exactly one of
``AliasConflict``, ``LinkNotFound``, ``LinkExpired`` or ``PersistenceError``.
``CodeTaken`` is raised by store adapters on a unique-code violation and is
always translated by the engine before reaching a caller.
"""

from typing import Optional

__all__ = [
    "ShortLinkError",
    "AliasConflict",
    "LinkNotFound",
    "LinkExpired",
    "PersistenceError",
    "CodeTaken",
]


class ShortLinkError(Exception):
    """Base class for lifecycle errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class AliasConflict(ShortLinkError):
    def __init__(self, code: str):
        super().__init__(f"Custom alias already exists: {code}", code)


class LinkNotFound(ShortLinkError):
    def __init__(self, code: str):
        super().__init__(f"Short URL not found: {code}", code)


class LinkExpired(ShortLinkError):
    def __init__(self, code: str):
        super().__init__(f"Short URL has expired: {code}", code)


class PersistenceError(ShortLinkError):
    pass


class CodeTaken(ShortLinkError):
    def __init__(self, code: str):
        super().__init__(f"Short code already stored: {code}", code)
