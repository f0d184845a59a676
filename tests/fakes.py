import asyncio

from core.config import Settings
from core.errors import Unavailable
from core.models import CandidateRef, Track, TrackMetadata


def make_settings(**overrides) -> Settings:
    defaults = dict(
        retry_backoff=0.0,
        retry_backoff_max=0.0,
        search_timeout=0.5,
        stream_timeout=0.5,
        resolution_timeout=2.0,
        connect_timeout=1.0,
        reconnect_timeout=0.05,
        inactivity_timeout=60.0,
        piped_instances=("https://a.example", "https://b.example", "https://c.example"),
    )
    defaults.update(overrides)
    return Settings(**defaults)


def make_track(title: str, requested_by: str = "tester", **kwargs) -> Track:
    kwargs.setdefault("audio_locator", f"https://audio.example/{title}")
    kwargs.setdefault("duration_seconds", 200)
    return Track(
        title=title,
        source_url=f"https://www.youtube.com/watch?v={title:_<11.11}",
        requested_by=requested_by,
        **kwargs,
    )


def candidate(ref: str, title: str | None = None) -> CandidateRef:
    return CandidateRef(title=title or f"Video {ref}", reference=ref, url=f"https://www.youtube.com/watch?v={ref}")


def metadata(title: str, ref: str = "abcdefghijk", **kwargs) -> TrackMetadata:
    kwargs.setdefault("audio_url", f"https://audio.example/{ref}")
    kwargs.setdefault("duration_seconds", 180)
    return TrackMetadata(title=title, source_url=f"https://www.youtube.com/watch?v={ref}", **kwargs)


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition was not met in time")
        await asyncio.sleep(0.001)


class FakeStrategy:
    """Extraction strategy driven by fixture tables.

    `outcomes` maps a reference to TrackMetadata, an exception instance, or an
    async callable taking the endpoint.
    """

    def __init__(self, name="fake", endpoints=("https://a.example", "https://b.example", "https://c.example"),
                 search_results=None, outcomes=None):
        self.name = name
        self._endpoints = tuple(endpoints)
        self.search_results = search_results if search_results is not None else []
        self.outcomes = outcomes or {}
        self.calls = []
        self.closed = False

    @property
    def endpoints(self):
        return self._endpoints

    def resolve_calls(self, ref=None):
        return [c for c in self.calls if c[0] == "resolve" and (ref is None or c[2] == ref)]

    def search_calls(self):
        return [c for c in self.calls if c[0] == "search"]

    async def search(self, text, limit, *, endpoint):
        self.calls.append(("search", endpoint, text))
        if isinstance(self.search_results, BaseException):
            raise self.search_results
        return list(self.search_results)[:limit]

    async def resolve_direct(self, reference, *, endpoint):
        self.calls.append(("resolve", endpoint, reference))
        outcome = self.outcomes.get(reference)
        if outcome is None:
            raise Unavailable(f"{reference} not in fixtures")
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(endpoint)
        return outcome

    async def close(self):
        self.closed = True


class FakeStream:
    """Stands in for ProcessStream: single use, opened at playback time."""

    def __init__(self, fail: BaseException | None = None):
        self.consumed = False
        self.closed = False
        self.fail = fail

    async def open(self, timeout):
        self.consumed = True
        if self.fail:
            raise self.fail
        return self

    def close(self):
        self.closed = True


class FakeLink:
    def __init__(self, connect_delay: float = 0.0, connect_error: BaseException | None = None,
                 reconnect_ok: bool = False):
        self.connect_delay = connect_delay
        self.connect_error = connect_error
        self.reconnect_ok = reconnect_ok
        self.connect_calls = 0
        self.reconnect_calls = 0
        self.disconnect_calls = 0
        self.played = []
        self._after = None
        self._playing = False
        self._paused = False

    async def connect(self, timeout):
        self.connect_calls += 1
        await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error

    async def reconnect(self):
        self.reconnect_calls += 1
        return self.reconnect_ok

    async def play(self, playable, after):
        self.played.append(playable)
        self._after = after
        self._playing = True
        self._paused = False

    def pause(self):
        if self._playing:
            self._playing, self._paused = False, True

    def resume(self):
        if self._paused:
            self._playing, self._paused = True, False

    def stop(self):
        if self._playing or self._paused:
            self._end(None)

    def finish(self, error=None):
        """Simulate the audio thread reporting the end of the current track."""
        self._end(error)

    def _end(self, error):
        after, self._after = self._after, None
        self._playing = self._paused = False
        if after is not None:
            after(error)

    def is_playing(self):
        return self._playing

    def is_paused(self):
        return self._paused

    async def disconnect(self):
        self.disconnect_calls += 1


class FakeResolver:
    """Resolver stand-in for session tests: tracks resolve to themselves."""

    def __init__(self):
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, BaseException] = {}
        self.acquired = []

    async def resolve(self, query, max_candidates=None, requested_by="", progress=None):
        return make_track(query, requested_by=requested_by)

    async def acquire_stream(self, track):
        self.acquired.append(track.title)
        gate = self.gates.get(track.title)
        if gate is not None:
            await gate.wait()
        if track.title in self.failures:
            raise self.failures[track.title]
        return f"stream://{track.title}"


class FakeContext:
    def __init__(self, guild_id: int = 1, link: FakeLink | None = None, voice_channel_id: int | None = 10,
                 can_connect: bool = True, requested_by: str = "tester"):
        self.guild_id = guild_id
        self.requested_by = requested_by
        self.voice_channel_id = voice_channel_id
        self.can_connect = can_connect
        self.link = link or FakeLink()
        self.links_opened = 0
        self.notices = []

    def open_link(self):
        self.links_opened += 1
        return self.link

    async def notify(self, notice):
        self.notices.append(notice)

    def notices_of(self, kind):
        return [n for n in self.notices if n.kind is kind]
