import asyncio
import logging

import yt_dlp
from yt_dlp.utils import DownloadError, YoutubeDLError

from core.audio import ProcessStream
from core.config import Settings
from core.errors import BackendError, ExtractionError, Forbidden, Malformed, RateLimited, Unavailable
from core.extraction import extract_video_id, watch_url
from core.models import CandidateRef, TrackMetadata, normalise_duration

# Suppress noise about console usage from yt-dlp
yt_dlp.utils.bug_reports_message = lambda *args, **kwargs: ''

AUDIO_FORMAT = "bestaudio[ext=webm]/bestaudio[ext=m4a]/bestaudio"

UNAVAILABLE_PHRASES = (
    "private video",
    "video unavailable",
    "this video is unavailable",
    "has been removed",
    "account associated with this video has been terminated",
    "not available in your country",
    "members-only",
    "join this channel",
    "live event",
    "is live",
    "premieres in",
    "copyright",
)
RATE_LIMIT_PHRASES = (
    "http error 429",
    "too many requests",
    "not a bot",
    "rate-limited",
)


def classify_download_error(message: str) -> ExtractionError:
    text = (message or "").lower()
    if "http error 403" in text or "forbidden" in text:
        return Forbidden(message)
    if any(p in text for p in RATE_LIMIT_PHRASES):
        return RateLimited(message)
    if any(p in text for p in UNAVAILABLE_PHRASES):
        return Unavailable(message)
    if "unable to extract" in text or "unsupported url" in text:
        return Malformed(message)
    return BackendError(message)


def _thumbnail(entry: dict) -> str | None:
    if entry.get("thumbnail"):
        return entry["thumbnail"]
    thumbs = entry.get("thumbnails") or []
    return thumbs[-1].get("url") if thumbs else None


class YtDlpBackend:
    """Local-process backend: yt-dlp for metadata, the yt-dlp executable for audio."""

    name = "ytdlp"

    def __init__(self, settings: Settings):
        self._executable = settings.ytdlp_executable
        self._cookie_file = settings.cookie_file
        self._ydl_opts = {
            "format": AUDIO_FORMAT,
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
            "source_address": "0.0.0.0",
        }
        if self._cookie_file:
            self._ydl_opts["cookiefile"] = self._cookie_file

    @property
    def endpoints(self):
        return (self._executable,)

    def _extract(self, arg: str, **extra) -> dict:
        opts = dict(self._ydl_opts, **extra)
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(arg, download=False)
        except DownloadError as e:
            raise classify_download_error(str(e)) from e
        except YoutubeDLError as e:
            raise BackendError(str(e)) from e
        if not isinstance(info, dict):
            raise Malformed(f"yt-dlp returned nothing for {arg!r}")
        return info

    async def search(self, text: str, limit: int, *, endpoint: str) -> list[CandidateRef]:
        logging.info(f"[ytdlp] Searching for {text!r} (limit {limit})")
        # Run yt-dlp off the main thread
        info = await asyncio.to_thread(self._extract, f"ytsearch{limit}:{text}", extract_flat="in_playlist")

        out = []
        for e in info.get("entries") or []:
            if not e:
                continue
            video_id = e.get("id") or extract_video_id(e.get("url") or "")
            if not video_id or not e.get("title"):
                continue
            out.append(CandidateRef(
                title=e["title"],
                reference=video_id,
                url=watch_url(video_id),
                duration_seconds=normalise_duration(e.get("duration")),
                thumbnail_url=_thumbnail(e),
                uploader=e.get("channel") or e.get("uploader"),
            ))
        return out[:limit]

    async def resolve_direct(self, reference: str, *, endpoint: str) -> TrackMetadata:
        video_id = extract_video_id(reference) or reference
        url = watch_url(video_id)
        info = await asyncio.to_thread(self._extract, url)

        if info.get("is_live") or info.get("live_status") in ("is_live", "is_upcoming"):
            raise Unavailable(f"{video_id} is a live stream")
        if not info.get("title"):
            raise Malformed(f"no title for {video_id}")

        return TrackMetadata(
            title=info["title"],
            source_url=info.get("webpage_url") or url,
            duration_seconds=normalise_duration(info.get("duration")),
            thumbnail_url=_thumbnail(info),
            uploader=info.get("uploader") or info.get("channel"),
            stream=ProcessStream(self.stream_args(endpoint, url), label=info["title"]),
        )

    def stream_args(self, executable: str, url: str) -> list[str]:
        args = [
            executable or self._executable,
            "-f", AUDIO_FORMAT,
            "--no-playlist",
            "--quiet",
            "--no-warnings",
            "-o", "-",
        ]
        if self._cookie_file:
            args += ["--cookies", self._cookie_file]
        args.append(url)
        return args

    async def close(self):
        return None
