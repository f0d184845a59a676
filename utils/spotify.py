import re
import asyncio
import logging

import spotipy
from spotipy.oauth2 import SpotifyClientCredentials

# match open.spotify.com/track/{id}
SPOTIFY_TRACK_RE = re.compile(
    r"https://open\.spotify\.com/(?:intl-[a-z]+/)?track/([A-Za-z0-9]+)"
)


def is_spotify_track(query: str) -> bool:
    return bool(SPOTIFY_TRACK_RE.search(query))


class SpotifyLookup:
    """Turns a Spotify track link into YouTube search terms via the Web API."""

    def __init__(self, client_id: str, client_secret: str, client: spotipy.Spotify | None = None):
        # app-only Spotify client
        self._sp = client or spotipy.Spotify(
            client_credentials_manager=SpotifyClientCredentials(
                client_id=client_id,
                client_secret=client_secret
            )
        )

    async def search_terms(self, query: str) -> str | None:
        m = SPOTIFY_TRACK_RE.search(query)
        if not m:
            return None
        try:
            data = await asyncio.to_thread(self._sp.track, m.group(1))
        except spotipy.SpotifyException as e:
            logging.warning(f"[spotify] lookup failed for {m.group(1)}: {e}")
            return None
        artists = data.get("artists") or []
        artist = artists[0]["name"] if artists else ""
        return f"{data['name']} {artist}".strip()
