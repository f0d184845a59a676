import logging

import discord

from core.service import MusicService
from core.voice import InteractionContext


def listeners_in(channel) -> int:
    return sum(1 for m in channel.members if not m.bot)


def setup_voice_commands(bot, service: MusicService):
    @bot.tree.command(name="leave", description="Leave the voice channel")
    async def leave(interaction: discord.Interaction):
        outcome = await service.stop(InteractionContext(interaction))
        if not outcome.ok:
            return await interaction.response.send_message("Not connected to voice.", ephemeral=True)
        await interaction.response.send_message("👋 Left voice channel.", ephemeral=True)

    @bot.listen("on_voice_state_update")
    async def on_voice_state_update(member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        session = service.registry.get(member.guild.id)
        if session is None:
            return

        if bot.user and member.id == bot.user.id:
            if before.channel is not None and after.channel is None:
                logging.warning(f"[voice] bot was disconnected in guild {member.guild.id}")
                session.connection_lost()
            return

        vc = member.guild.voice_client
        if vc is None or vc.channel is None:
            return
        if before.channel != vc.channel and after.channel != vc.channel:
            return
        if listeners_in(vc.channel) == 0:
            session.channel_vacated()
        else:
            session.channel_occupied()
