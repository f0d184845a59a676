import logging

from core.config import Settings
from core.session import GuildPlaybackSession


class SessionRegistry:
    """guild id -> live GuildPlaybackSession, one per guild.

    `get_or_create` looks up and inserts without a suspension point in
    between, so concurrent play requests for a new guild share one session
    and one voice handshake.
    """

    def __init__(self, resolver, settings: Settings):
        self._resolver = resolver
        self._settings = settings
        self._sessions: dict[int, GuildPlaybackSession] = {}

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, guild_id):
        return self.get(guild_id) is not None

    def get(self, guild_id: int) -> GuildPlaybackSession | None:
        session = self._sessions.get(guild_id)
        if session is not None and session.closed:
            return None
        return session

    async def get_or_create(self, guild_id: int, context) -> GuildPlaybackSession:
        session = self.get(guild_id)
        if session is None:
            session = GuildPlaybackSession(
                guild_id,
                context.open_link(),
                self._resolver,
                self._settings,
                notify=context.notify,
                on_closed=self._forget,
            )
            self._sessions[guild_id] = session
            logging.info(f"[registry] created session for guild {guild_id}")
        await session.connect()
        return session

    def remove(self, guild_id: int, session: GuildPlaybackSession | None = None):
        current = self._sessions.get(guild_id)
        if current is None or (session is not None and current is not session):
            return
        del self._sessions[guild_id]
        logging.info(f"[registry] removed session for guild {guild_id}")

    def _forget(self, session: GuildPlaybackSession):
        self.remove(session.guild_id, session)

    async def close_all(self):
        for session in list(self._sessions.values()):
            await session.stop()
