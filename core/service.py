import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from core.errors import FailureReason, InputError, MusicBotError, SessionClosed
from core.models import Track
from core.resolver import ProgressCallback, Resolver
from core.session import Notice, VoiceLink
from core.state import SessionRegistry


class GuildContext(Protocol):
    """What the platform layer hands the core for one command invocation."""

    guild_id: int
    requested_by: str
    voice_channel_id: Optional[int]
    can_connect: bool

    def open_link(self) -> VoiceLink: ...

    async def notify(self, notice: Notice) -> None: ...


@dataclass(frozen=True)
class Outcome:
    ok: bool
    reason: Optional[FailureReason] = None
    track: Optional[Track] = None
    position: Optional[int] = None
    queue: tuple[Track, ...] = ()
    detail: str = ""

    @classmethod
    def fail(cls, reason: FailureReason, detail: str = "") -> "Outcome":
        return cls(ok=False, reason=reason, detail=detail)


class MusicService:
    """The operations chat commands (or anything else) call into."""

    def __init__(self, resolver: Resolver, registry: SessionRegistry):
        self.resolver = resolver
        self.registry = registry

    async def play(self, ctx: GuildContext, query: str, progress: ProgressCallback | None = None) -> Outcome:
        try:
            if ctx.voice_channel_id is None:
                raise InputError("requester is not in a voice channel", FailureReason.NO_VOICE_CHANNEL)
            if not ctx.can_connect:
                raise InputError("cannot connect or speak in that channel", FailureReason.MISSING_PERMISSIONS)
            if not (query or "").strip():
                raise InputError("empty query", FailureReason.EMPTY_QUERY)

            track = await self.resolver.resolve(query, requested_by=ctx.requested_by, progress=progress)

            # the session can be stopped between lookup and enqueue; retry once with a new one
            for attempt in range(2):
                session = await self.registry.get_or_create(ctx.guild_id, ctx)
                try:
                    position = await session.enqueue(track)
                    break
                except SessionClosed:
                    if attempt:
                        raise
            return Outcome(ok=True, track=track, position=position)
        except MusicBotError as e:
            logging.warning(f"[play] guild {ctx.guild_id}: {type(e).__name__}: {e}")
            return Outcome.fail(e.reason, str(e))
        except Exception as e:
            logging.exception(f"[play] guild {ctx.guild_id}: unexpected error")
            return Outcome.fail(FailureReason.UNKNOWN, str(e))

    async def pause(self, ctx: GuildContext) -> Outcome:
        session = self.registry.get(ctx.guild_id)
        if session is None:
            return Outcome.fail(FailureReason.NO_SESSION)
        if not await session.pause():
            return Outcome.fail(FailureReason.NOT_PLAYING)
        return Outcome(ok=True, track=session.current)

    async def resume(self, ctx: GuildContext) -> Outcome:
        session = self.registry.get(ctx.guild_id)
        if session is None:
            return Outcome.fail(FailureReason.NO_SESSION)
        if not await session.resume():
            return Outcome.fail(FailureReason.NOT_PAUSED)
        return Outcome(ok=True, track=session.current)

    async def skip(self, ctx: GuildContext) -> Outcome:
        session = self.registry.get(ctx.guild_id)
        if session is None:
            return Outcome.fail(FailureReason.NOTHING_QUEUED)
        skipped = session.current
        if not await session.skip():
            return Outcome.fail(FailureReason.NOTHING_QUEUED)
        return Outcome(ok=True, track=skipped)

    async def stop(self, ctx: GuildContext) -> Outcome:
        session = self.registry.get(ctx.guild_id)
        if session is None:
            return Outcome.fail(FailureReason.NO_SESSION)
        try:
            await session.stop()
        except Exception as e:
            logging.exception(f"[stop] guild {ctx.guild_id}: teardown failed")
            return Outcome.fail(FailureReason.UNKNOWN, str(e))
        return Outcome(ok=True)

    def show_queue(self, ctx: GuildContext) -> Outcome:
        session = self.registry.get(ctx.guild_id)
        if session is None:
            return Outcome(ok=True, queue=())
        return Outcome(ok=True, queue=session.snapshot())
