import logging

import aiohttp

from core.config import Settings
from core.errors import BackendError, Forbidden, Malformed, RateLimited, Unavailable
from core.extraction import extract_video_id, watch_url
from core.models import CandidateRef, TrackMetadata, normalise_duration

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

UNAVAILABLE_MARKERS = (
    "unavailable",
    "private",
    "removed",
    "terminated",
    "not available in your country",
    "age restricted",
    "members-only",
    "copyright",
)


class PipedBackend:
    """Rotating-instance backend talking to Piped API mirrors."""

    name = "piped"

    def __init__(self, settings: Settings, session: aiohttp.ClientSession | None = None):
        if not settings.piped_instances:
            raise ValueError("PipedBackend needs at least one instance")
        self._instances = tuple(settings.piped_instances)
        self._session = session
        self._owns_session = session is None

    @property
    def endpoints(self):
        return self._instances

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT, "Accept": "application/json,*/*;q=0.9"}
            )
            self._owns_session = True
        return self._session

    async def _get_json(self, url: str, params: dict | None = None):
        session = self._get_session()
        invalid_json = False
        try:
            async with session.get(url, params=params) as resp:
                status = resp.status
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data, invalid_json = None, True
        except aiohttp.ClientError as e:
            raise BackendError(f"{url}: {e}") from e
        return check_response(url, status, data, invalid_json=invalid_json)

    async def search(self, text: str, limit: int, *, endpoint: str) -> list[CandidateRef]:
        logging.info(f"[piped] Searching {endpoint} for {text!r}")
        data = await self._get_json(f"{endpoint}/search", params={"q": text, "filter": "videos"})
        return parse_search(data, limit)

    async def resolve_direct(self, reference: str, *, endpoint: str) -> TrackMetadata:
        video_id = extract_video_id(reference) or reference
        logging.info(f"[piped] Getting streams for {video_id} from {endpoint}")
        data = await self._get_json(f"{endpoint}/streams/{video_id}")
        return parse_streams(video_id, data)

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


def check_response(url: str, status: int, data, invalid_json: bool = False):
    """Classify an HTTP response and return its decoded JSON payload.

    `data` is the decoded body (None when empty); `invalid_json` is set when the
    body was not JSON at all.
    """
    if status == 403:
        raise Forbidden(f"{url} answered 403")
    if status == 429:
        raise RateLimited(f"{url} answered 429")
    if status in (404, 410):
        raise Unavailable(f"{url} answered {status}")

    if invalid_json:
        if 200 <= status < 300:
            raise Malformed(f"{url} returned invalid JSON")
        raise BackendError(f"{url} answered {status}")

    if isinstance(data, dict) and data.get("error"):
        message = str(data.get("message") or data["error"])
        if any(marker in message.lower() for marker in UNAVAILABLE_MARKERS):
            raise Unavailable(message[:200])
        if "sign in" in message.lower() or "not a bot" in message.lower():
            raise RateLimited(message[:200])
        raise BackendError(message[:200])

    if not 200 <= status < 300:
        raise BackendError(f"{url} answered {status}")
    if data is None:
        raise Malformed(f"{url} returned an empty body")
    return data


def parse_search(data, limit: int) -> list[CandidateRef]:
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise Malformed("search response has no items list")

    out = []
    for item in data["items"]:
        if not isinstance(item, dict):
            continue
        video_id = extract_video_id(item.get("url") or "")
        if not video_id or not item.get("title"):
            continue
        out.append(CandidateRef(
            title=item["title"],
            reference=video_id,
            url=watch_url(video_id),
            duration_seconds=normalise_duration(item.get("duration")),
            thumbnail_url=item.get("thumbnail"),
            uploader=item.get("uploaderName"),
        ))
        if len(out) >= limit:
            break
    return out


def parse_streams(video_id: str, data) -> TrackMetadata:
    if not isinstance(data, dict) or not data.get("title"):
        raise Malformed(f"stream response for {video_id} has no title")
    if data.get("livestream"):
        raise Unavailable(f"{video_id} is a live stream")

    streams = [
        s for s in (data.get("audioStreams") or [])
        if isinstance(s, dict) and s.get("url")
    ]
    if not streams:
        raise Unavailable(f"{video_id} has no audio streams")
    best = max(streams, key=lambda s: s.get("bitrate") or 0)

    return TrackMetadata(
        title=data["title"],
        source_url=watch_url(video_id),
        duration_seconds=normalise_duration(data.get("duration")),
        thumbnail_url=data.get("thumbnailUrl"),
        uploader=data.get("uploader"),
        audio_url=best["url"],
    )
