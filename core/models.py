import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from core.audio import ProcessStream


class SessionStatus(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    PLAYING = "playing"
    PAUSED = "paused"
    TERMINATING = "terminating"


@dataclass(frozen=True)
class CandidateRef:
    """A search hit that has not been confirmed playable yet."""

    title: str
    reference: str
    url: str
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    uploader: Optional[str] = None


@dataclass(frozen=True)
class TrackMetadata:
    """What an extraction backend returns for a single video.

    Eager backends fill `audio_url`; the local-process backend leaves it empty
    and hands back a lazy, single-use `stream` instead.
    """

    title: str
    source_url: str
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    uploader: Optional[str] = None
    audio_url: Optional[str] = None
    stream: Optional["ProcessStream"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Track:
    title: str
    source_url: str
    audio_locator: Optional[str] = None
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    requested_by: str = ""
    uploader: Optional[str] = None
    resolved_at: float = field(default_factory=time.monotonic, compare=False)
    stream: Optional["ProcessStream"] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_metadata(cls, meta: TrackMetadata, requested_by: str = "") -> "Track":
        return cls(
            title=meta.title,
            source_url=meta.source_url,
            audio_locator=meta.audio_url,
            duration_seconds=normalise_duration(meta.duration_seconds),
            thumbnail_url=meta.thumbnail_url or None,
            requested_by=requested_by,
            uploader=meta.uploader,
            stream=meta.stream,
        )

    def age(self) -> float:
        return time.monotonic() - self.resolved_at


# A locator URL for ffmpeg to fetch, or an opened local-process stream.
Playable = Union[str, "ProcessStream"]


@dataclass
class ExtractionAttempt:
    endpoint: str
    operation: str
    latency: float = 0.0
    outcome: str = "pending"  # success, soft-fail, hard-fail
    error: Optional[BaseException] = None


def normalise_duration(value) -> Optional[int]:
    """Durations are whole seconds; anything missing or negative is unknown."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None
