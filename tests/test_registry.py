import asyncio

import pytest

from core.errors import ConnectionTimeout
from core.state import SessionRegistry
from fakes import FakeContext, FakeLink, FakeResolver, make_settings


@pytest.fixture
def registry():
    return SessionRegistry(FakeResolver(), make_settings())


async def test_concurrent_creates_share_one_session(registry):
    ctx = FakeContext(link=FakeLink(connect_delay=0.05))

    first, second = await asyncio.gather(
        registry.get_or_create(1, ctx),
        registry.get_or_create(1, ctx),
    )

    assert first is second
    assert ctx.links_opened == 1
    assert ctx.link.connect_calls == 1
    assert len(registry) == 1
    await registry.close_all()


async def test_guilds_are_independent(registry):
    a = await registry.get_or_create(1, FakeContext(guild_id=1))
    b = await registry.get_or_create(2, FakeContext(guild_id=2))

    assert a is not b
    await a.stop()
    assert 1 not in registry
    assert registry.get(2) is b
    await registry.close_all()


async def test_stopped_session_is_forgotten(registry):
    ctx = FakeContext()
    session = await registry.get_or_create(1, ctx)
    await session.stop()

    assert registry.get(1) is None
    assert len(registry) == 0

    replacement = await registry.get_or_create(1, FakeContext())
    assert replacement is not session
    await registry.close_all()


async def test_remove_ignores_a_different_session(registry):
    session = await registry.get_or_create(1, FakeContext())
    other = await SessionRegistry(FakeResolver(), make_settings()).get_or_create(1, FakeContext())

    registry.remove(1, other)
    assert registry.get(1) is session

    registry.remove(1, session)
    assert registry.get(1) is None
    await session.stop()
    await other.stop()


async def test_failed_handshake_leaves_no_session():
    registry = SessionRegistry(FakeResolver(), make_settings(connect_timeout=0.02))
    ctx = FakeContext(link=FakeLink(connect_delay=1))

    with pytest.raises(ConnectionTimeout):
        await registry.get_or_create(1, ctx)
    assert registry.get(1) is None
    assert len(registry) == 0


async def test_close_all_stops_every_session(registry):
    links = [FakeLink(), FakeLink()]
    for guild_id, link in enumerate(links, start=1):
        await registry.get_or_create(guild_id, FakeContext(guild_id=guild_id, link=link))

    await registry.close_all()
    assert len(registry) == 0
    assert [link.disconnect_calls for link in links] == [1, 1]
