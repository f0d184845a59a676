import re
import logging
from typing import Protocol, Sequence, runtime_checkable

from core.config import Settings
from core.models import CandidateRef, TrackMetadata

# match youtube.com/watch?v={id}, youtu.be/{id}, /shorts/{id}, /embed/{id}
YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?|shorts|live)/|.*[?&]v=)|youtu\.be/)([A-Za-z0-9_-]{11})"
)
# Piped hands back relative links: /watch?v={id}
RELATIVE_WATCH_RE = re.compile(r"^/watch\?(?:.*&)?v=([A-Za-z0-9_-]{11})")
YOUTUBE_HOST_RE = re.compile(r"^(?:https?://)?(?:www\.|m\.|music\.)?(?:youtube\.com|youtu\.be)(?:/|$)", re.I)


def looks_like_youtube(query: str) -> bool:
    return bool(YOUTUBE_HOST_RE.match(query.strip()))


def extract_video_id(url: str) -> str | None:
    m = YOUTUBE_ID_RE.search(url or "") or RELATIVE_WATCH_RE.match(url or "")
    return m.group(1) if m else None


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


@runtime_checkable
class ExtractionStrategy(Protocol):
    """Anything that can search for videos and resolve one into playable audio.

    `endpoints` lists interchangeable places the same capability lives; the
    resolver rotates through them and passes the chosen one to each call.
    """

    name: str

    @property
    def endpoints(self) -> Sequence[str]: ...

    async def search(self, text: str, limit: int, *, endpoint: str) -> list[CandidateRef]: ...

    async def resolve_direct(self, reference: str, *, endpoint: str) -> TrackMetadata: ...

    async def close(self) -> None: ...


def build_strategies(settings: Settings) -> tuple[ExtractionStrategy, ExtractionStrategy | None]:
    """Build the primary strategy and the optional fallback search strategy."""
    from core.piped import PipedBackend
    from core.ytdlp import YtDlpBackend

    if settings.extraction_backend == "ytdlp":
        primary = YtDlpBackend(settings)
    elif settings.extraction_backend == "piped":
        primary = PipedBackend(settings)
    else:
        raise ValueError(f"Unknown EXTRACTION_BACKEND: {settings.extraction_backend!r}")

    fallback = None
    if settings.fallback_search == "ytdlp" and primary.name != "ytdlp":
        fallback = YtDlpBackend(settings)
    elif settings.fallback_search not in ("ytdlp", "none", ""):
        logging.warning(f"[extraction] Unknown FALLBACK_SEARCH {settings.fallback_search!r}, disabled")

    logging.info(
        f"[extraction] primary={primary.name} ({len(primary.endpoints)} endpoints) "
        f"fallback_search={fallback.name if fallback else 'none'}"
    )
    return primary, fallback
