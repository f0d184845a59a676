"""Turns a user query into a playable Track.

Every network call goes through `Resolver._call`. It retries on the same
endpoint with exponential backoff and jitter, and rotates to the next endpoint
between independent attempts. Each attempt has its own timeout and the whole
resolution is bounded by a wall-clock budget.
"""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional

from core.config import Settings
from core.errors import (
    ExtractionError,
    FailureReason,
    InputError,
    NoPlayableCandidate,
    PlaybackError,
    ResolutionTimeout,
    Unavailable,
)
from core.extraction import ExtractionStrategy, build_strategies, extract_video_id, looks_like_youtube
from core.models import CandidateRef, ExtractionAttempt, Playable, Track, TrackMetadata
from utils.spotify import SpotifyLookup, is_spotify_track

ProgressCallback = Callable[[CandidateRef], Awaitable[None]]


class EndpointRotation:
    """Round-robin cursor over a strategy's endpoints.

    Not locked: two concurrent callers may get the same endpoint.
    """

    def __init__(self, endpoints):
        self._endpoints = tuple(endpoints)
        if not self._endpoints:
            raise ValueError("at least one endpoint is required")
        self._cursor = 0

    def __len__(self):
        return len(self._endpoints)

    def next(self) -> str:
        endpoint = self._endpoints[self._cursor % len(self._endpoints)]
        self._cursor = (self._cursor + 1) % len(self._endpoints)
        return endpoint


class Resolver:
    def __init__(
        self,
        strategy: ExtractionStrategy,
        settings: Settings,
        *,
        fallback_search: ExtractionStrategy | None = None,
        spotify: SpotifyLookup | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.strategy = strategy
        self.fallback_search = fallback_search
        self.settings = settings
        self._spotify = spotify
        self._sleep = sleep
        self._rng = rng
        self._rotation = EndpointRotation(strategy.endpoints)
        self._fallback_rotation = EndpointRotation(fallback_search.endpoints) if fallback_search else None

    # ─── Public API ──────────────────────────────────────────────────────────

    async def resolve(
        self,
        query: str,
        max_candidates: int | None = None,
        requested_by: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> Track:
        query = (query or "").strip()
        if not query:
            raise InputError("empty query", FailureReason.EMPTY_QUERY)
        limit = max(1, max_candidates or self.settings.max_candidates)

        started = time.monotonic()
        try:
            track = await asyncio.wait_for(
                self._resolve(query, limit, requested_by, progress),
                self.settings.resolution_timeout,
            )
        except asyncio.TimeoutError:
            logging.warning(f"[resolver] Gave up on {query!r} after {self.settings.resolution_timeout}s")
            raise ResolutionTimeout(f"resolution of {query!r} timed out")
        logging.info(f"[resolver] Resolved {query!r} -> {track.title!r} in {time.monotonic() - started:.1f}s")
        return track

    async def acquire_stream(self, track: Track) -> Playable:
        """Hand back something the player can consume for `track`.

        An unused fused stream is opened, a fresh locator is reused, anything
        else is re-resolved from the track's source URL.
        """
        timeout = self.settings.stream_timeout
        if track.stream is not None and not track.stream.consumed:
            return await track.stream.open(timeout)

        if track.audio_locator and track.age() < self.settings.locator_max_age:
            logging.info(f"[resolver] Using cached locator for {track.title!r} (age: {track.age():.1f}s)")
            return track.audio_locator

        logging.info(f"[resolver] Refreshing locator for {track.title!r}")
        try:
            meta = await asyncio.wait_for(
                self._resolve_reference(extract_video_id(track.source_url) or track.source_url, []),
                self.settings.resolution_timeout,
            )
        except asyncio.TimeoutError:
            raise ResolutionTimeout(f"refreshing {track.title!r} timed out")
        except ExtractionError as e:
            raise PlaybackError(f"could not refresh {track.title!r}: {e}", reason=e.reason) from e

        if meta.stream is not None:
            return await meta.stream.open(timeout)
        if meta.audio_url:
            return meta.audio_url
        raise PlaybackError(f"no audio for {track.title!r}")

    async def close(self):
        await self.strategy.close()
        if self.fallback_search is not None:
            await self.fallback_search.close()

    # ─── Resolution ──────────────────────────────────────────────────────────

    async def _resolve(self, query, limit, requested_by, progress) -> Track:
        attempts: list[ExtractionAttempt] = []

        if looks_like_youtube(query):
            video_id = extract_video_id(query)
            if not video_id:
                raise InputError(f"not a video link: {query}", FailureReason.INVALID_URL)
            try:
                meta = await self._resolve_reference(video_id, attempts)
                return Track.from_metadata(meta, requested_by)
            except ExtractionError as e:
                if not self.settings.url_search_fallback:
                    reason = e.reason if e.reason is not FailureReason.UNKNOWN else FailureReason.NO_PLAYABLE_CANDIDATE
                    raise NoPlayableCandidate(f"could not extract {query}: {e}", reason=reason) from e
                logging.info(f"[resolver] Direct extraction of {video_id} failed, searching instead")
                query = video_id
        elif self._spotify is not None and is_spotify_track(query):
            terms = await self._spotify.search_terms(query)
            if not terms:
                raise InputError(f"could not resolve Spotify link {query}", FailureReason.INVALID_URL)
            logging.info(f"[resolver] Spotify link -> {terms!r}")
            query = terms

        candidates = await self._search(query, limit, attempts)
        if not candidates:
            raise NoPlayableCandidate(f"no search results for {query!r}")

        for idx, candidate in enumerate(candidates[:limit], start=1):
            if progress is not None:
                await self._report(progress, candidate)
            try:
                meta = await self._resolve_reference(candidate.reference, attempts)
            except ExtractionError as e:
                logging.info(f"[resolver] Candidate {idx} {candidate.title!r} skipped: {type(e).__name__}: {e}")
                continue
            return Track.from_metadata(meta, requested_by)

        failures = sum(1 for a in attempts if a.outcome != "success")
        raise NoPlayableCandidate(
            f"none of {min(len(candidates), limit)} candidates for {query!r} were playable "
            f"({failures} failed attempts)"
        )

    async def _search(self, query, limit, attempts) -> list[CandidateRef]:
        candidates: list[CandidateRef] = []
        try:
            candidates = await self._call(
                self._rotation,
                "search",
                lambda endpoint: self.strategy.search(query, limit, endpoint=endpoint),
                self.settings.search_timeout,
                attempts,
            )
        except ExtractionError as e:
            logging.warning(f"[resolver] {self.strategy.name} search failed: {e}")

        if not candidates and self.fallback_search is not None:
            logging.info(f"[resolver] Falling back to {self.fallback_search.name} search for {query!r}")
            try:
                candidates = await self._call(
                    self._fallback_rotation,
                    "search",
                    lambda endpoint: self.fallback_search.search(query, limit, endpoint=endpoint),
                    self.settings.search_timeout,
                    attempts,
                )
            except ExtractionError as e:
                logging.warning(f"[resolver] {self.fallback_search.name} search failed: {e}")
        return list(candidates)[:limit]

    async def _resolve_reference(self, reference: str, attempts) -> TrackMetadata:
        return await self._call(
            self._rotation,
            "resolve",
            lambda endpoint: self.strategy.resolve_direct(reference, endpoint=endpoint),
            self.settings.stream_timeout,
            attempts,
        )

    @staticmethod
    async def _report(progress, candidate):
        try:
            await progress(candidate)
        except Exception as e:
            logging.warning(f"[resolver] progress update failed: {e}")

    # ─── Retry policy ────────────────────────────────────────────────────────

    def _backoff(self, retry: int) -> float:
        delay = min(self.settings.retry_backoff_max, self.settings.retry_backoff * (2 ** retry))
        return delay / 2 + self._rng() * delay / 2

    async def _call(self, rotation: EndpointRotation, operation: str, fn, timeout: float, attempts: list):
        last_error: ExtractionError | None = None
        endpoints_to_try = max(1, min(self.settings.endpoint_attempts, len(rotation)))

        for _ in range(endpoints_to_try):
            endpoint = rotation.next()
            for retry in range(self.settings.extraction_retries + 1):
                attempt = ExtractionAttempt(endpoint=endpoint, operation=operation)
                attempts.append(attempt)
                started = time.monotonic()
                try:
                    result = await asyncio.wait_for(fn(endpoint), timeout)
                except asyncio.TimeoutError:
                    error = ExtractionError(f"{operation} on {endpoint} timed out after {timeout}s")
                except ExtractionError as e:
                    error = e
                else:
                    attempt.latency = time.monotonic() - started
                    attempt.outcome = "success"
                    return result

                attempt.latency = time.monotonic() - started
                attempt.error = error
                attempt.outcome = "soft-fail" if error.retryable else "hard-fail"
                last_error = error
                logging.warning(
                    f"[resolver] {operation} on {endpoint} failed (try {retry + 1}, "
                    f"{attempt.latency:.1f}s): {type(error).__name__}: {error}"
                )

                if isinstance(error, Unavailable):
                    raise error
                if not error.retryable:
                    break
                if retry < self.settings.extraction_retries:
                    await self._sleep(self._backoff(retry))

        raise last_error or ExtractionError(f"{operation} had no endpoint to try")


def build_resolver(settings: Settings) -> Resolver:
    primary, fallback = build_strategies(settings)
    spotify = None
    if settings.spotify_enabled:
        spotify = SpotifyLookup(settings.spotify_client_id, settings.spotify_client_secret)
    else:
        logging.info("[resolver] Spotify credentials missing, Spotify links disabled")
    return Resolver(primary, settings, fallback_search=fallback, spotify=spotify)
