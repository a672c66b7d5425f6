"""Lifecycle engine tests: creation, resolution, expiry, ownership and races."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.codes import ALPHABET, CodeGenerator, UniquenessResolver
from app.config import Settings
from app.exceptions import AliasConflict, CodeTaken, LinkExpired, LinkNotFound, PersistenceError
from app.lifecycle import ShortLinkService
from app.models import ShortLink
from app.store import RecordStore, SQLAlchemyRecordStore


class SequenceGenerator(CodeGenerator):
    def __init__(self, codes: list[str]):
        super().__init__(len(codes[0]))
        self._codes = iter(codes)

    def generate(self) -> str:
        return next(self._codes)


@pytest.fixture
def mock_store() -> AsyncMock:
    store = AsyncMock(spec=RecordStore)
    store.exists_by_code = AsyncMock(return_value=False)
    return store


# ============================================================================
# CREATION
# ============================================================================


@pytest.mark.asyncio
async def test_demo_scenario(service: ShortLinkService) -> None:
    link = await service.create("https://example.org", alias="demo")
    assert link.code == "demo"
    assert link.access_count == 0
    assert link.last_accessed_at is None
    assert link.id is not None

    for _ in range(3):
        assert await service.resolve("demo") == "https://example.org"
    assert (await service.stats("demo")).access_count == 3

    with pytest.raises(AliasConflict):
        await service.create("https://example.com/other", alias="demo")

    await service.delete("demo")
    with pytest.raises(LinkNotFound):
        await service.resolve("demo")


@pytest.mark.asyncio
async def test_generated_code_shape(service: ShortLinkService) -> None:
    link = await service.create("https://example.org/long/path?q=1")
    assert len(link.code) == 7
    assert all(c in ALPHABET for c in link.code)


@pytest.mark.asyncio
async def test_created_at_comes_from_clock(service: ShortLinkService, clock) -> None:
    link = await service.create("https://example.org")
    assert link.created_at == clock.now


@pytest.mark.asyncio
async def test_sequential_creations_are_unique(service: ShortLinkService) -> None:
    codes = {(await service.create(f"https://example.org/{i}")).code for i in range(25)}
    assert len(codes) == 25


@pytest.mark.asyncio
async def test_tenant_requires_owner(service: ShortLinkService) -> None:
    with pytest.raises(ValueError):
        await service.create("https://example.org", tenant_id="acme")


@pytest.mark.asyncio
async def test_owned_creation_keeps_owner_and_tenant(service: ShortLinkService) -> None:
    link = await service.create("https://example.org", owner_id="alice", tenant_id="acme")
    snapshot = await service.stats(link.code, owner_id="alice")
    assert snapshot.owner_id == "alice"
    assert snapshot.tenant_id == "acme"


@pytest.mark.asyncio
async def test_generated_code_race_is_retried(mock_store: AsyncMock, settings: Settings) -> None:
    attempted: list[str] = []

    async def create(link: ShortLink) -> ShortLink:
        attempted.append(link.code)
        if len(attempted) == 1:
            raise CodeTaken(link.code)
        link.id = 42
        return link

    mock_store.create.side_effect = create
    resolver = UniquenessResolver(mock_store, SequenceGenerator(["AAAAAAA", "BBBBBBB"]))
    service = ShortLinkService(mock_store, settings=settings, resolver=resolver)

    link = await service.create("https://example.org")
    assert link.code == "BBBBBBB"
    assert attempted == ["AAAAAAA", "BBBBBBB"]


@pytest.mark.asyncio
async def test_generated_code_race_gives_up(mock_store: AsyncMock, settings: Settings) -> None:
    mock_store.create.side_effect = CodeTaken("taken00")
    limited = settings.model_copy(update={"CREATE_RETRY_LIMIT": 2})
    service = ShortLinkService(mock_store, settings=limited)

    with pytest.raises(PersistenceError):
        await service.create("https://example.org")
    assert mock_store.create.await_count == 3


@pytest.mark.asyncio
async def test_custom_alias_race_is_alias_conflict(mock_store: AsyncMock, settings: Settings) -> None:
    mock_store.create.side_effect = CodeTaken("demo")
    service = ShortLinkService(mock_store, settings=settings)

    with pytest.raises(AliasConflict):
        await service.create("https://example.org", alias="demo")
    assert mock_store.create.await_count == 1


@pytest.mark.asyncio
async def test_store_failure_on_create_propagates(mock_store: AsyncMock, settings: Settings) -> None:
    mock_store.create.side_effect = PersistenceError("connection reset")
    service = ShortLinkService(mock_store, settings=settings)

    with pytest.raises(PersistenceError):
        await service.create("https://example.org")


@pytest.mark.asyncio
async def test_concurrent_creations_are_unique(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> None:
    async def create_one(i: int) -> str:
        async with session_factory() as session:
            service = ShortLinkService(SQLAlchemyRecordStore(session), settings=settings)
            return (await service.create(f"https://example.org/{i}")).code

    codes = await asyncio.gather(*(create_one(i) for i in range(10)))
    assert len(set(codes)) == 10


# ============================================================================
# RESOLUTION & EXPIRY
# ============================================================================


@pytest.mark.asyncio
async def test_resolve_unknown_code(service: ShortLinkService) -> None:
    with pytest.raises(LinkNotFound):
        await service.resolve("missing")


@pytest.mark.asyncio
async def test_access_monotonicity(service: ShortLinkService, clock) -> None:
    link = await service.create("https://example.org", alias="mono")
    for _ in range(2):
        clock.advance(seconds=5)
        await service.resolve("mono")
    start = (await service.stats("mono")).access_count
    assert start == 2

    for _ in range(5):
        last_call = clock.advance(minutes=1)
        await service.resolve(link.code)

    snapshot = await service.stats("mono")
    assert snapshot.access_count == start + 5
    assert snapshot.last_accessed_at == last_call


@pytest.mark.asyncio
async def test_expired_link_is_refused(service: ShortLinkService, clock) -> None:
    await service.create("https://example.org", alias="past", expires_at=clock.now - datetime.timedelta(seconds=1))

    with pytest.raises(LinkExpired):
        await service.resolve("past")

    snapshot = await service.stats("past")
    assert snapshot.access_count == 0
    assert snapshot.last_accessed_at is None


@pytest.mark.asyncio
async def test_not_yet_expired_link_resolves(service: ShortLinkService, clock) -> None:
    await service.create("https://example.org", alias="future", expires_at=clock.now + datetime.timedelta(seconds=1))

    assert await service.resolve("future") == "https://example.org"
    assert (await service.stats("future")).access_count == 1


@pytest.mark.asyncio
async def test_link_expires_as_time_passes(service: ShortLinkService, clock) -> None:
    await service.create("https://example.org", alias="ttl", expires_at=clock.now + datetime.timedelta(hours=1))
    await service.resolve("ttl")

    clock.advance(hours=2)
    with pytest.raises(LinkExpired):
        await service.resolve("ttl")
    # Expired links stay stored until deleted.
    assert (await service.stats("ttl")).access_count == 1


@pytest.mark.asyncio
async def test_link_without_expiry_never_expires(service: ShortLinkService, clock) -> None:
    await service.create("https://example.org", alias="forever")
    clock.advance(days=3650)
    assert await service.resolve("forever") == "https://example.org"


@pytest.mark.asyncio
async def test_naive_expiry_is_treated_as_utc(service: ShortLinkService, clock) -> None:
    naive_past = (clock.now - datetime.timedelta(minutes=1)).replace(tzinfo=None)
    await service.create("https://example.org", alias="naive", expires_at=naive_past)
    with pytest.raises(LinkExpired):
        await service.resolve("naive")


@pytest.mark.asyncio
async def test_failed_counter_write_fails_resolution(mock_store: AsyncMock, settings: Settings, clock) -> None:
    mock_store.find_by_code.return_value = ShortLink(
        code="abc1234", destination_url="https://example.org", access_count=0, created_at=clock.now
    )
    mock_store.increment_access.side_effect = PersistenceError("write failed")
    service = ShortLinkService(mock_store, settings=settings, clock=clock)

    with pytest.raises(PersistenceError):
        await service.resolve("abc1234")


@pytest.mark.asyncio
async def test_delete_during_resolution_is_not_found(mock_store: AsyncMock, settings: Settings, clock) -> None:
    mock_store.find_by_code.return_value = ShortLink(
        code="abc1234", destination_url="https://example.org", access_count=0, created_at=clock.now
    )
    mock_store.increment_access.return_value = False
    service = ShortLinkService(mock_store, settings=settings, clock=clock)

    with pytest.raises(LinkNotFound):
        await service.resolve("abc1234")


@pytest.mark.asyncio
async def test_concurrent_resolutions_lose_no_increment(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> None:
    async with session_factory() as session:
        await ShortLinkService(SQLAlchemyRecordStore(session), settings=settings).create(
            "https://example.org", alias="busy"
        )

    async def resolve_once() -> str:
        async with session_factory() as session:
            return await ShortLinkService(SQLAlchemyRecordStore(session), settings=settings).resolve("busy")

    results = await asyncio.gather(*(resolve_once() for _ in range(10)))
    assert results == ["https://example.org"] * 10

    async with session_factory() as session:
        snapshot = await ShortLinkService(SQLAlchemyRecordStore(session), settings=settings).stats("busy")
    assert snapshot.access_count == 10


# ============================================================================
# OWNERSHIP, STATS & DELETE
# ============================================================================


@pytest.mark.asyncio
async def test_ownership_isolation(service: ShortLinkService) -> None:
    await service.create("https://example.org", alias="mine", owner_id="alice", tenant_id="acme")

    with pytest.raises(LinkNotFound):
        await service.stats("mine", owner_id="bob")
    with pytest.raises(LinkNotFound):
        await service.delete("mine", owner_id="bob")

    assert (await service.stats("mine", owner_id="alice")).code == "mine"
    await service.delete("mine", owner_id="alice")
    with pytest.raises(LinkNotFound):
        await service.stats("mine", owner_id="alice")


@pytest.mark.asyncio
async def test_foreign_and_missing_codes_are_indistinguishable(service: ShortLinkService) -> None:
    await service.create("https://example.org", alias="hidden", owner_id="alice")

    with pytest.raises(LinkNotFound) as foreign:
        await service.stats("hidden", owner_id="bob")
    with pytest.raises(LinkNotFound) as missing:
        await service.stats("absent", owner_id="bob")
    assert type(foreign.value) is type(missing.value)


@pytest.mark.asyncio
async def test_owner_scoped_delete_of_anonymous_link(service: ShortLinkService) -> None:
    await service.create("https://example.org", alias="anon")
    with pytest.raises(LinkNotFound):
        await service.delete("anon", owner_id="alice")
    assert (await service.stats("anon")).code == "anon"


@pytest.mark.asyncio
async def test_anonymous_delete_of_owned_link(service: ShortLinkService) -> None:
    await service.create("https://example.org", alias="owned", owner_id="alice")
    await service.delete("owned")
    with pytest.raises(LinkNotFound):
        await service.stats("owned", owner_id="alice")


@pytest.mark.asyncio
async def test_anonymous_delete_of_owned_link_can_be_disabled(
    store: SQLAlchemyRecordStore, settings: Settings, clock
) -> None:
    strict = settings.model_copy(update={"ANONYMOUS_DELETE_OWNED_LINKS": False})
    service = ShortLinkService(store, settings=strict, clock=clock)
    await service.create("https://example.org", alias="guarded", owner_id="alice")
    await service.create("https://example.org", alias="loose")

    with pytest.raises(LinkNotFound):
        await service.delete("guarded")
    await service.delete("loose")
    assert (await service.stats("guarded")).owner_id == "alice"


@pytest.mark.asyncio
async def test_delete_visibility(service: ShortLinkService) -> None:
    await service.create("https://example.org", alias="bye")
    await service.delete("bye")

    with pytest.raises(LinkNotFound):
        await service.resolve("bye")
    with pytest.raises(LinkNotFound):
        await service.stats("bye")
    with pytest.raises(LinkNotFound):
        await service.delete("bye")


@pytest.mark.asyncio
async def test_deleted_alias_can_be_reused(service: ShortLinkService) -> None:
    await service.create("https://example.org/old", alias="again")
    await service.delete("again")
    link = await service.create("https://example.org/new", alias="again")
    assert await service.resolve(link.code) == "https://example.org/new"


@pytest.mark.asyncio
async def test_stats_is_read_only(service: ShortLinkService) -> None:
    await service.create("https://example.org", alias="peek")
    for _ in range(3):
        await service.stats("peek")
    assert (await service.stats("peek")).access_count == 0


@pytest.mark.asyncio
async def test_list_by_owner(service: ShortLinkService) -> None:
    await service.create("https://example.org/1", owner_id="alice")
    await service.create("https://example.org/2", owner_id="alice", tenant_id="acme")
    await service.create("https://example.org/3", owner_id="bob")
    await service.create("https://example.org/4")

    links = await service.list_by_owner("alice")
    assert sorted(link.destination_url for link in links) == ["https://example.org/1", "https://example.org/2"]
    assert await service.list_by_owner("nobody") == []
