"""Short code generation and uniqueness resolution.

``CodeGenerator`` is a pure candidate source: every symbol is drawn
independently and uniformly from the 62-symbol alphabet by ``nanoid``, which
reads from ``os.urandom``. ``UniquenessResolver`` turns a custom alias or a
generated candidate into a code that is free in the store at check time.

Flow Diagram — resolve()
========================
::
    ┌─────────────┐
    │ alias given? │
    └──────┬──────┘
    ┌──────┴──────┐
    │ YES          │ NO
    ▼              ▼
┌──────────┐  ┌──────────────┐
│ exists?  │  │ draw candidate│◄──┐
└────┬─────┘  └──────┬───────┘   │
 YES │ NO       exists? │ YES ────┘ (bounded)
     ▼  ▼            NO ▼
AliasConflict  alias   candidate

The check and the later insert are separate store calls; the store's unique
constraint settles any race (see ``app.lifecycle``).
"""

import logging
import string
from typing import Optional

from nanoid import generate
from prometheus_client import Counter

from app.exceptions import AliasConflict, PersistenceError
from app.store import RecordStore

__all__ = ["ALPHABET", "CodeGenerator", "UniquenessResolver", "CODE_COLLISIONS_TOTAL"]

ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

CODE_COLLISIONS_TOTAL = Counter(
    "shortlinks_code_collisions_total",
    "Generated short codes rejected because they already exist",
)


class CodeGenerator:
    def __init__(self, length: int):
        assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
        self.length = length

    def generate(self) -> str:
        return generate(ALPHABET, self.length)


class UniquenessResolver:
    """Pick a code that no stored record currently uses.

    Args:
        store: Record store used for existence checks
        generator: Candidate source for generated codes
        max_attempts: Consecutive collisions tolerated before giving up
    """

    def __init__(
        self,
        store: RecordStore,
        generator: CodeGenerator,
        max_attempts: int = 10,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ):
        assert max_attempts > 0, f"max_attempts must be positive, got {max_attempts!r}"
        self._store = store
        self._generator = generator
        self._max_attempts = max_attempts
        self._logger = logger or logging.getLogger("shortlinks.codes")

    async def resolve(self, alias: Optional[str] = None) -> str:
        if alias:
            return await self.claim_alias(alias)
        return await self.generate_unique()

    async def claim_alias(self, alias: str) -> str:
        if await self._store.exists_by_code(alias):
            self._logger.warning(f"Custom alias already taken: {alias}")
            raise AliasConflict(alias)
        return alias

    async def generate_unique(self) -> str:
        for attempt in range(1, self._max_attempts + 1):
            candidate = self._generator.generate()
            if not await self._store.exists_by_code(candidate):
                if attempt > 1:
                    self._logger.debug(f"Generated code {candidate} after {attempt} attempts")
                return candidate
            CODE_COLLISIONS_TOTAL.inc()
            self._logger.debug(f"Generated code collision: {candidate}")

        self._logger.error(f"No free short code after {self._max_attempts} attempts")
        raise PersistenceError(f"Unable to allocate a unique short code after {self._max_attempts} attempts")
