import discord

from core.errors import FailureReason
from core.models import Track
from core.session import Notice, NoticeKind

EMBED_COLOR = 0x1DB954
QUEUE_PREVIEW = 10

FAILURE_MESSAGES = {
    FailureReason.NO_VOICE_CHANNEL: "You need to be in a voice channel to play music.",
    FailureReason.MISSING_PERMISSIONS: "I need permission to join and speak in your voice channel.",
    FailureReason.EMPTY_QUERY: "Please provide a song name or YouTube URL.",
    FailureReason.QUEUE_FULL: "The queue is full.",
    FailureReason.INVALID_URL: "That link doesn't point to a playable video.",
    FailureReason.NO_PLAYABLE_CANDIDATE: "No playable result found. Try a different search term.",
    FailureReason.RESOLUTION_TIMEOUT: "Searching took too long. Please try again.",
    FailureReason.CONNECTION_FAILED: "Failed to join the voice channel. Check my permissions and try again.",
    FailureReason.CONNECTION_LOST: "Lost the voice connection. Playback stopped.",
    FailureReason.UNAVAILABLE: "That video is unavailable (private, removed, region-locked or live).",
    FailureReason.BLOCKED: "The video source is blocking requests right now. Try again later.",
    FailureReason.PLAYBACK_FAILED: "Playback failed.",
    FailureReason.NOT_PLAYING: "Nothing is playing.",
    FailureReason.NOT_PAUSED: "Nothing is paused.",
    FailureReason.NOTHING_QUEUED: "There is nothing to skip.",
    FailureReason.NO_SESSION: "There is no music playing.",
    FailureReason.UNKNOWN: "Something went wrong.",
}


def describe(reason: FailureReason | None) -> str:
    return FAILURE_MESSAGES.get(reason, FAILURE_MESSAGES[FailureReason.UNKNOWN])


def format_duration(seconds: int | None) -> str:
    if seconds is None:
        return "Unknown"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def queue_lines(tracks) -> list[str]:
    lines = []
    for idx, track in enumerate(tracks[:QUEUE_PREVIEW]):
        marker = "🎵" if idx == 0 else f"`{idx}.`"
        lines.append(f"{marker} **{track.title}** [{format_duration(track.duration_seconds)}] ({track.requested_by})")
    if len(tracks) > QUEUE_PREVIEW:
        lines.append(f"\n... and {len(tracks) - QUEUE_PREVIEW} more songs")
    return lines


def queue_embed(tracks) -> discord.Embed:
    embed = discord.Embed(title="Current Queue", color=EMBED_COLOR)
    embed.description = "\n".join(queue_lines(tracks)) if tracks else "The queue is empty."
    return embed


def _track_embed(title: str, track: Track) -> discord.Embed:
    embed = discord.Embed(title=title, description=f"**{track.title}**", color=EMBED_COLOR)
    if track.thumbnail_url:
        embed.set_thumbnail(url=track.thumbnail_url)
    embed.add_field(name="Duration", value=format_duration(track.duration_seconds), inline=True)
    if track.requested_by:
        embed.add_field(name="Requested by", value=track.requested_by, inline=True)
    return embed


def now_playing_embed(track: Track) -> discord.Embed:
    return _track_embed("Now Playing", track)


def queued_embed(track: Track, position: int) -> discord.Embed:
    embed = _track_embed("Added to Queue", track)
    embed.add_field(name="Position in queue", value=str(position), inline=True)
    return embed


def render_notice(notice: Notice) -> dict:
    """Keyword arguments for `channel.send` describing a session notice."""
    if notice.kind is NoticeKind.NOW_PLAYING:
        return {"embed": now_playing_embed(notice.track)}
    if notice.kind is NoticeKind.TRACK_FAILED:
        title = notice.track.title if notice.track else "this track"
        return {"content": f"Couldn't play **{title}**: {describe(notice.reason)}"}
    if notice.kind is NoticeKind.LEFT_INACTIVE:
        return {"content": "Left the voice channel after being inactive."}
    return {"content": describe(notice.reason)}
