from enum import Enum


class FailureReason(str, Enum):
    NO_VOICE_CHANNEL = "no_voice_channel"
    MISSING_PERMISSIONS = "missing_permissions"
    EMPTY_QUERY = "empty_query"
    QUEUE_FULL = "queue_full"
    INVALID_URL = "invalid_url"
    NO_PLAYABLE_CANDIDATE = "no_playable_candidate"
    RESOLUTION_TIMEOUT = "resolution_timeout"
    CONNECTION_FAILED = "connection_failed"
    CONNECTION_LOST = "connection_lost"
    UNAVAILABLE = "unavailable"
    BLOCKED = "blocked"
    PLAYBACK_FAILED = "playback_failed"
    NOT_PLAYING = "not_playing"
    NOT_PAUSED = "not_paused"
    NOTHING_QUEUED = "nothing_queued"
    NO_SESSION = "no_session"
    UNKNOWN = "unknown"


class MusicBotError(Exception):
    """Base class for every failure the music core reports."""

    reason = FailureReason.UNKNOWN

    def __init__(self, message: str = "", reason: FailureReason | None = None):
        super().__init__(message or self.__class__.__name__)
        if reason is not None:
            self.reason = reason


# ─── User-correctable input ──────────────────────────────────────────────────

class InputError(MusicBotError):
    reason = FailureReason.EMPTY_QUERY


# ─── Resolution ──────────────────────────────────────────────────────────────

class ResolutionError(MusicBotError):
    reason = FailureReason.NO_PLAYABLE_CANDIDATE


class NoPlayableCandidate(ResolutionError):
    reason = FailureReason.NO_PLAYABLE_CANDIDATE


class ResolutionTimeout(ResolutionError):
    reason = FailureReason.RESOLUTION_TIMEOUT


# ─── Voice connection ────────────────────────────────────────────────────────

class VoiceConnectionError(MusicBotError):
    reason = FailureReason.CONNECTION_FAILED


class ConnectionTimeout(VoiceConnectionError):
    reason = FailureReason.CONNECTION_FAILED


class ConnectionLost(VoiceConnectionError):
    reason = FailureReason.CONNECTION_LOST


class SessionClosed(VoiceConnectionError):
    """The session was torn down between lookup and use."""

    reason = FailureReason.CONNECTION_LOST


# ─── Playback ────────────────────────────────────────────────────────────────

class PlaybackError(MusicBotError):
    reason = FailureReason.PLAYBACK_FAILED


# ─── Extraction backends ─────────────────────────────────────────────────────

class ExtractionError(MusicBotError):
    """A single backend call failed. `retryable` drives the resolver's policy."""

    reason = FailureReason.UNKNOWN
    retryable = True


class Unavailable(ExtractionError):
    """Deleted, private, region-blocked, members-only or a live stream."""

    reason = FailureReason.UNAVAILABLE
    retryable = False


class RateLimited(ExtractionError):
    reason = FailureReason.BLOCKED
    retryable = True


class Forbidden(ExtractionError):
    """403 from an endpoint: give up on that endpoint immediately."""

    reason = FailureReason.BLOCKED
    retryable = False


class Malformed(ExtractionError):
    reason = FailureReason.UNKNOWN
    retryable = False


class BackendError(ExtractionError):
    reason = FailureReason.UNKNOWN
    retryable = True


def reason_for(exc: BaseException) -> FailureReason:
    if isinstance(exc, MusicBotError):
        return exc.reason
    return FailureReason.UNKNOWN
