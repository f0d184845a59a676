"""Per-guild playback state machine.

Every transition runs under the session's lock. Player and connection events
arrive from discord's audio thread, are posted onto the session's event queue
with `call_soon_threadsafe` and are consumed by a single control task. Each
playback gets a generation number; anything that refers to an older
generation is discarded.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from core.audio import ProcessStream
from core.config import Settings
from core.errors import (
    ConnectionTimeout,
    FailureReason,
    InputError,
    MusicBotError,
    PlaybackError,
    SessionClosed,
    VoiceConnectionError,
    reason_for,
)
from core.models import Playable, SessionStatus, Track


class VoiceLink(Protocol):
    """The voice connection plus audio player a session owns."""

    async def connect(self, timeout: float) -> None: ...

    async def reconnect(self) -> bool: ...

    async def play(self, playable: Playable, after: Callable[[Optional[Exception]], None]) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...

    def is_playing(self) -> bool: ...

    def is_paused(self) -> bool: ...

    async def disconnect(self) -> None: ...


class NoticeKind(Enum):
    NOW_PLAYING = "now_playing"
    TRACK_FAILED = "track_failed"
    DISCONNECTED = "disconnected"
    LEFT_INACTIVE = "left_inactive"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    guild_id: int
    track: Optional[Track] = None
    reason: Optional[FailureReason] = None


@dataclass(frozen=True)
class _Event:
    kind: str  # finished, failed, connection_lost
    generation: int
    error: Optional[BaseException] = None


NotifyFn = Callable[[Notice], Awaitable[None]]


def _release(playable):
    if isinstance(playable, ProcessStream):
        playable.close()


class GuildPlaybackSession:
    def __init__(
        self,
        guild_id: int,
        link: VoiceLink,
        resolver,
        settings: Settings,
        *,
        notify: Optional[NotifyFn] = None,
        on_closed: Optional[Callable[["GuildPlaybackSession"], None]] = None,
    ):
        self.guild_id = guild_id
        self.status = SessionStatus.CONNECTING
        self.queue: list[Track] = []
        self._link = link
        self._resolver = resolver
        self._settings = settings
        self._notify = notify
        self._on_closed = on_closed

        self._lock = asyncio.Lock()
        self._events: asyncio.Queue[_Event] = asyncio.Queue()
        self._generation = 0
        self._current: Playable | None = None
        self._vacated = False
        self._closed = False

        self._connect_task: asyncio.Task | None = None
        self._control_task: asyncio.Task | None = None
        self._start_task: asyncio.Task | None = None
        self._inactivity_task: asyncio.Task | None = None

    def __repr__(self):
        return f"<GuildPlaybackSession guild={self.guild_id} status={self.status.name} queued={len(self.queue)}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def current(self) -> Track | None:
        return self.queue[0] if self.queue else None

    def snapshot(self) -> tuple[Track, ...]:
        return tuple(self.queue)

    # ─── Connection ──────────────────────────────────────────────────────────

    async def connect(self):
        """Open the voice link. Concurrent callers share one handshake."""
        if self._closed:
            raise SessionClosed(f"session for guild {self.guild_id} is closed")
        if self._connect_task is None:
            self._connect_task = asyncio.create_task(self._connect())
        try:
            await asyncio.shield(self._connect_task)
        except asyncio.CancelledError:
            # a stop() during the handshake cancels the shared task, not the caller
            if self._connect_task.cancelled():
                raise SessionClosed(f"session for guild {self.guild_id} was stopped while connecting")
            raise

    async def _connect(self):
        timeout = self._settings.connect_timeout
        try:
            await asyncio.wait_for(self._link.connect(timeout), timeout)
        except asyncio.TimeoutError:
            logging.error(f"[session] guild {self.guild_id}: voice handshake timed out after {timeout}s")
            await self._shutdown_after_failed_connect()
            raise ConnectionTimeout(f"voice connection not ready within {timeout}s")
        except VoiceConnectionError:
            await self._shutdown_after_failed_connect()
            raise
        except Exception as e:
            logging.error(f"[session] guild {self.guild_id}: voice connect failed: {e}")
            await self._shutdown_after_failed_connect()
            raise VoiceConnectionError(str(e)) from e
        logging.info(f"[session] guild {self.guild_id}: voice connected")
        self._control_task = asyncio.create_task(self._run())

    async def _shutdown_after_failed_connect(self):
        async with self._lock:
            await self._teardown_locked(None)

    def connection_lost(self):
        """Platform signal: the voice connection dropped."""
        if not self._closed:
            self._events.put_nowait(_Event("connection_lost", self._generation))

    def channel_vacated(self):
        """Platform signal: no listeners left in the voice channel."""
        if self._closed or self._vacated:
            return
        logging.info(f"[session] guild {self.guild_id}: channel vacated, leaving in {self._settings.inactivity_timeout}s")
        self._vacated = True
        self._schedule_inactivity()

    def channel_occupied(self):
        if self._closed or not self._vacated:
            return
        self._vacated = False
        self._cancel(self._inactivity_task)
        if self.status is SessionStatus.IDLE:
            self._schedule_inactivity()

    # ─── Commands ────────────────────────────────────────────────────────────

    async def enqueue(self, track: Track) -> int:
        async with self._lock:
            if self._closed or self.status is SessionStatus.TERMINATING:
                raise SessionClosed(f"session for guild {self.guild_id} is closed")
            if len(self.queue) >= self._settings.max_queue_size:
                raise InputError(f"queue is full ({self._settings.max_queue_size})", FailureReason.QUEUE_FULL)

            self.queue.append(track)
            position = len(self.queue)
            logging.info(f"[session] guild {self.guild_id}: queued {track.title!r} at {position}")
            if not self._vacated:
                self._cancel(self._inactivity_task)
            if position == 1 and self.status in (SessionStatus.IDLE, SessionStatus.CONNECTING):
                self._start_playback_locked()
            return position

    async def pause(self) -> bool:
        async with self._lock:
            if self.status is not SessionStatus.PLAYING or not self._link.is_playing():
                return False
            self._link.pause()
            self.status = SessionStatus.PAUSED
            return True

    async def resume(self) -> bool:
        async with self._lock:
            if self.status is not SessionStatus.PAUSED:
                return False
            self._link.resume()
            self.status = SessionStatus.PLAYING
            return True

    async def skip(self) -> bool:
        async with self._lock:
            if self._closed or not self.queue:
                return False
            logging.info(f"[session] guild {self.guild_id}: skipping {self.queue[0].title!r}")
            self._cancel(self._start_task)
            if self._link.is_playing() or self._link.is_paused():
                self._link.stop()
            # advance here; the stopped track's after-callback is stale once the generation moves
            await self._advance_locked(failed=False)
            return True

    async def stop(self, reason: FailureReason | None = None):
        async with self._lock:
            await self._teardown_locked(reason)

    # ─── Playback ────────────────────────────────────────────────────────────

    def _start_playback_locked(self):
        self._generation += 1
        track = self.queue[0]
        self._start_task = asyncio.create_task(self._acquire_and_play(track, self._generation))

    async def _acquire_and_play(self, track: Track, generation: int):
        try:
            playable = await self._resolver.acquire_stream(track)
        except MusicBotError as e:
            logging.warning(f"[session] guild {self.guild_id}: no stream for {track.title!r}: {e}")
            self._events.put_nowait(_Event("failed", generation, e))
            return
        except Exception as e:
            logging.exception(f"[session] guild {self.guild_id}: stream acquisition crashed for {track.title!r}")
            self._events.put_nowait(_Event("failed", generation, PlaybackError(str(e))))
            return

        try:
            async with self._lock:
                await self._hand_to_player_locked(track, generation, playable)
        except asyncio.CancelledError:
            if self._current is not playable:
                _release(playable)
            raise

    async def _hand_to_player_locked(self, track: Track, generation: int, playable: Playable):
        if generation != self._generation or self._closed:
            logging.info(f"[session] guild {self.guild_id}: discarding late stream for {track.title!r}")
            _release(playable)
            return
        try:
            await self._link.play(playable, after=self._after_callback(generation))
        except Exception as e:
            logging.error(f"[session] guild {self.guild_id}: player refused {track.title!r}: {e}")
            _release(playable)
            error = e if isinstance(e, MusicBotError) else PlaybackError(str(e))
            self._events.put_nowait(_Event("failed", generation, error))
            return

        self._current = playable
        self.status = SessionStatus.PLAYING
        logging.info(f"[session] guild {self.guild_id}: now playing {track.title!r}")
        await self._emit(Notice(NoticeKind.NOW_PLAYING, self.guild_id, track=track))

    def _after_callback(self, generation: int):
        loop = asyncio.get_running_loop()

        def _after_play(err):
            kind = "failed" if err else "finished"
            if err:
                logging.error(f"[session] playback error: {err}")
            try:
                loop.call_soon_threadsafe(self._events.put_nowait, _Event(kind, generation, err))
            except RuntimeError:
                logging.warning("[session] event loop closed before the player finished")

        return _after_play

    async def _run(self):
        while not self._closed:
            event = await self._events.get()
            if event.kind == "connection_lost":
                await self._handle_connection_lost()
                continue

            async with self._lock:
                if self._closed:
                    return
                if event.generation != self._generation:
                    logging.debug(f"[session] guild {self.guild_id}: stale {event.kind} event ignored")
                    continue
                failed = event.kind == "failed"
                if failed:
                    await self._emit(Notice(
                        NoticeKind.TRACK_FAILED,
                        self.guild_id,
                        track=self.current,
                        reason=self._failure_class(event.error),
                    ))
                await self._advance_locked(failed=failed)

    @staticmethod
    def _failure_class(error) -> FailureReason:
        reason = reason_for(error) if error is not None else FailureReason.UNKNOWN
        if reason in (FailureReason.UNAVAILABLE, FailureReason.BLOCKED):
            return reason
        return FailureReason.UNKNOWN

    async def _advance_locked(self, failed: bool):
        _release(self._current)
        self._current = None
        if self.queue:
            finished = self.queue.pop(0)
            logging.info(f"[session] guild {self.guild_id}: done with {finished.title!r}")
        self._generation += 1

        if self.queue:
            self._start_playback_locked()
            return
        if failed:
            logging.info(f"[session] guild {self.guild_id}: queue empty after a failure, closing")
            await self._teardown_locked(None)
            return
        self.status = SessionStatus.IDLE
        if self._vacated and self._inactivity_task is not None and not self._inactivity_task.done():
            # the vacated-channel countdown keeps running
            return
        self._schedule_inactivity()

    async def _handle_connection_lost(self):
        if self._closed:
            return
        logging.warning(f"[session] guild {self.guild_id}: voice disconnected, trying to reconnect")
        try:
            ok = await asyncio.wait_for(self._link.reconnect(), self._settings.reconnect_timeout)
        except asyncio.TimeoutError:
            ok = False
        except Exception as e:
            logging.warning(f"[session] guild {self.guild_id}: reconnect failed: {e}")
            ok = False
        if ok:
            logging.info(f"[session] guild {self.guild_id}: reconnected")
            return
        async with self._lock:
            await self._teardown_locked(FailureReason.CONNECTION_LOST)

    # ─── Teardown ────────────────────────────────────────────────────────────

    def _schedule_inactivity(self):
        self._cancel(self._inactivity_task)
        self._inactivity_task = asyncio.create_task(self._inactivity_countdown())

    async def _inactivity_countdown(self):
        await asyncio.sleep(self._settings.inactivity_timeout)
        logging.info(f"[session] guild {self.guild_id}: inactive, leaving voice")
        async with self._lock:
            if self._closed:
                return
            await self._teardown_locked(None)
            await self._emit(Notice(NoticeKind.LEFT_INACTIVE, self.guild_id))

    @staticmethod
    def _cancel(task: asyncio.Task | None):
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _teardown_locked(self, reason: FailureReason | None):
        if self._closed:
            return
        logging.info(f"[session] guild {self.guild_id}: tearing down ({reason.value if reason else 'stop'})")
        self.status = SessionStatus.TERMINATING
        self._generation += 1
        self.queue.clear()

        self._cancel(self._start_task)
        self._cancel(self._inactivity_task)
        self._cancel(self._connect_task)
        try:
            self._link.stop()
        except Exception as e:
            logging.warning(f"[session] guild {self.guild_id}: stopping player failed: {e}")
        _release(self._current)
        self._current = None
        try:
            await self._link.disconnect()
        except Exception as e:
            logging.warning(f"[session] guild {self.guild_id}: disconnect failed: {e}")

        self._closed = True
        if self._on_closed is not None:
            self._on_closed(self)
        self._cancel(self._control_task)
        if reason is not None:
            await self._emit(Notice(NoticeKind.DISCONNECTED, self.guild_id, reason=reason))

    async def _emit(self, notice: Notice):
        if self._notify is None:
            return
        try:
            await self._notify(notice)
        except Exception as e:
            logging.error(f"[session] guild {self.guild_id}: notice {notice.kind.value} failed: {e}")
