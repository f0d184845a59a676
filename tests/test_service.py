import asyncio

import pytest

from core.errors import FailureReason, NoPlayableCandidate
from core.models import SessionStatus
from core.service import MusicService
from core.session import NoticeKind
from core.state import SessionRegistry
from fakes import FakeContext, FakeLink, FakeResolver, make_settings, wait_until


class FailingResolver(FakeResolver):
    async def resolve(self, query, max_candidates=None, requested_by="", progress=None):
        raise NoPlayableCandidate(f"nothing playable for {query!r}")


@pytest.fixture
def service():
    resolver = FakeResolver()
    svc = MusicService(resolver, SessionRegistry(resolver, make_settings()))
    return svc


@pytest.fixture
async def cleanup(service):
    yield
    await service.registry.close_all()


class TestPlay:
    async def test_play_queues_and_starts(self, service, cleanup):
        ctx = FakeContext()
        outcome = await service.play(ctx, "lofi hip hop")

        assert outcome.ok
        assert outcome.position == 1
        assert outcome.track.requested_by == "tester"
        await wait_until(lambda: ctx.notices_of(NoticeKind.NOW_PLAYING))
        assert ctx.link.played == ["stream://lofi hip hop"]

    async def test_concurrent_plays_share_one_connection(self, service, cleanup):
        ctx = FakeContext(link=FakeLink(connect_delay=0.05))

        first, second = await asyncio.gather(service.play(ctx, "first"), service.play(ctx, "second"))

        assert first.ok and second.ok
        assert sorted([first.position, second.position]) == [1, 2]
        assert ctx.links_opened == 1
        assert ctx.link.connect_calls == 1
        assert len(service.show_queue(ctx).queue) == 2

    async def test_requires_voice_channel(self, service):
        outcome = await service.play(FakeContext(voice_channel_id=None), "song")
        assert not outcome.ok
        assert outcome.reason is FailureReason.NO_VOICE_CHANNEL
        assert len(service.registry) == 0

    async def test_requires_permissions(self, service):
        outcome = await service.play(FakeContext(can_connect=False), "song")
        assert outcome.reason is FailureReason.MISSING_PERMISSIONS

    async def test_rejects_blank_query(self, service):
        outcome = await service.play(FakeContext(), "   ")
        assert outcome.reason is FailureReason.EMPTY_QUERY

    async def test_resolution_failure_opens_no_session(self):
        resolver = FailingResolver()
        service = MusicService(resolver, SessionRegistry(resolver, make_settings()))
        ctx = FakeContext()

        outcome = await service.play(ctx, "doesnotexist")

        assert outcome.reason is FailureReason.NO_PLAYABLE_CANDIDATE
        assert "doesnotexist" in outcome.detail
        assert ctx.links_opened == 0

    async def test_connect_failure_is_reported(self):
        resolver = FakeResolver()
        service = MusicService(resolver, SessionRegistry(resolver, make_settings(connect_timeout=0.02)))

        outcome = await service.play(FakeContext(link=FakeLink(connect_delay=1)), "song")

        assert outcome.reason is FailureReason.CONNECTION_FAILED
        assert len(service.registry) == 0

    async def test_play_after_stop_opens_new_session(self, service, cleanup):
        ctx = FakeContext()
        await service.play(ctx, "one")
        first = service.registry.get(1)
        await service.stop(ctx)

        ctx.link = FakeLink()
        outcome = await service.play(ctx, "two")

        assert outcome.ok and outcome.position == 1
        assert service.registry.get(1) is not first
        assert ctx.links_opened == 2


class TestControls:
    async def test_controls_without_session(self, service):
        ctx = FakeContext()
        assert (await service.pause(ctx)).reason is FailureReason.NO_SESSION
        assert (await service.resume(ctx)).reason is FailureReason.NO_SESSION
        assert (await service.skip(ctx)).reason is FailureReason.NOTHING_QUEUED
        assert (await service.stop(ctx)).reason is FailureReason.NO_SESSION
        assert service.show_queue(ctx).queue == ()

    async def test_pause_resume_skip(self, service, cleanup):
        ctx = FakeContext()
        await service.play(ctx, "one")
        await service.play(ctx, "two")
        session = service.registry.get(1)
        await wait_until(lambda: session.status is SessionStatus.PLAYING)

        assert (await service.resume(ctx)).reason is FailureReason.NOT_PAUSED
        paused = await service.pause(ctx)
        assert paused.ok and paused.track.title == "one"
        assert (await service.pause(ctx)).reason is FailureReason.NOT_PLAYING
        assert (await service.resume(ctx)).ok

        skipped = await service.skip(ctx)
        assert skipped.track.title == "one"
        await wait_until(lambda: ctx.link.played == ["stream://one", "stream://two"])

    async def test_show_queue_is_a_snapshot(self, service, cleanup):
        ctx = FakeContext()
        await service.play(ctx, "one")
        snapshot = service.show_queue(ctx).queue
        await service.play(ctx, "two")

        assert isinstance(snapshot, tuple)
        assert [t.title for t in snapshot] == ["one"]
        assert [t.title for t in service.show_queue(ctx).queue] == ["one", "two"]

    async def test_stop_clears_everything(self, service):
        ctx = FakeContext()
        await service.play(ctx, "one")
        await service.play(ctx, "two")

        assert (await service.stop(ctx)).ok
        assert service.show_queue(ctx).queue == ()
        assert ctx.link.disconnect_calls == 1
        assert (await service.stop(ctx)).reason is FailureReason.NO_SESSION
