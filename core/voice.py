import asyncio
import logging

import discord

from core.audio import build_source
from core.errors import ConnectionTimeout, PlaybackError, VoiceConnectionError
from utils.messages import render_notice


class DiscordVoiceLink:
    """A guild's discord.VoiceClient, owned by exactly one session."""

    def __init__(self, channel: discord.VoiceChannel):
        self._channel = channel
        self._vc: discord.VoiceClient | None = None

    async def connect(self, timeout: float):
        existing = self._channel.guild.voice_client
        try:
            if existing and existing.is_connected():
                if existing.channel != self._channel:
                    await existing.move_to(self._channel)
                self._vc = existing
                return
            self._vc = await self._channel.connect(timeout=timeout, reconnect=True, self_deaf=True)
        except asyncio.TimeoutError as e:
            raise ConnectionTimeout(f"could not join {self._channel.name} within {timeout}s") from e
        except discord.DiscordException as e:
            raise VoiceConnectionError(f"could not join {self._channel.name}: {e}") from e
        logging.info(f"[voice] connected to {self._channel.name} in {self._channel.guild.name}")

    async def reconnect(self) -> bool:
        vc = self._channel.guild.voice_client
        if vc and vc.is_connected():
            self._vc = vc
            return True
        if vc:
            await vc.disconnect(force=True)
        self._vc = await self._channel.connect(reconnect=True, self_deaf=True)
        return self._vc.is_connected()

    async def play(self, playable, after):
        if self._vc is None or not self._vc.is_connected():
            raise PlaybackError("not connected to a voice channel")
        source = await build_source(playable)
        if self._vc.is_playing() or self._vc.is_paused():
            self._vc.stop()
        self._vc.play(source, after=after)

    def pause(self):
        if self._vc:
            self._vc.pause()

    def resume(self):
        if self._vc:
            self._vc.resume()

    def stop(self):
        if self._vc and (self._vc.is_playing() or self._vc.is_paused()):
            self._vc.stop()

    def is_playing(self) -> bool:
        return bool(self._vc and self._vc.is_playing())

    def is_paused(self) -> bool:
        return bool(self._vc and self._vc.is_paused())

    async def disconnect(self):
        if self._vc is not None:
            await self._vc.disconnect(force=True)
            self._vc = None


class InteractionContext:
    """GuildContext built from a slash-command interaction."""

    def __init__(self, interaction: discord.Interaction):
        self.guild_id = interaction.guild.id
        self.requested_by = interaction.user.display_name
        voice = getattr(interaction.user, "voice", None)
        self.voice_channel = voice.channel if voice else None
        self.voice_channel_id = self.voice_channel.id if self.voice_channel else None
        if self.voice_channel is not None:
            perms = self.voice_channel.permissions_for(interaction.guild.me)
            self.can_connect = perms.connect and perms.speak
        else:
            self.can_connect = False
        self._text_channel = interaction.channel

    def open_link(self) -> DiscordVoiceLink:
        return DiscordVoiceLink(self.voice_channel)

    async def notify(self, notice):
        if self._text_channel is None:
            return
        try:
            await self._text_channel.send(**render_notice(notice))
        except discord.HTTPException as e:
            logging.error(f"[voice] could not send {notice.kind.value} notice: {e}")
