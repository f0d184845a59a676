import discord

from core.service import MusicService
from core.voice import InteractionContext
from utils.messages import describe


def setup_control_commands(bot, service: MusicService):
    @bot.tree.command(name="pause", description="Pause the current song")
    async def pause(interaction: discord.Interaction):
        outcome = await service.pause(InteractionContext(interaction))
        if not outcome.ok:
            return await interaction.response.send_message(describe(outcome.reason), ephemeral=True)
        await interaction.response.send_message("⏸ Paused.", ephemeral=True)

    @bot.tree.command(name="resume", description="Resume playback")
    async def resume(interaction: discord.Interaction):
        outcome = await service.resume(InteractionContext(interaction))
        if not outcome.ok:
            return await interaction.response.send_message(describe(outcome.reason), ephemeral=True)
        await interaction.response.send_message("▶️ Resumed.", ephemeral=True)

    @bot.tree.command(name="skip", description="Skip the current song")
    async def skip(interaction: discord.Interaction):
        outcome = await service.skip(InteractionContext(interaction))
        if not outcome.ok:
            return await interaction.response.send_message(describe(outcome.reason), ephemeral=True)
        title = outcome.track.title if outcome.track else "current song"
        await interaction.response.send_message(f"⏭ Skipped **{title}**.", ephemeral=True)

    @bot.tree.command(name="stop", description="Stop playback, clear the queue and leave voice")
    async def stop(interaction: discord.Interaction):
        outcome = await service.stop(InteractionContext(interaction))
        if not outcome.ok:
            return await interaction.response.send_message(describe(outcome.reason), ephemeral=True)
        await interaction.response.send_message("⏹ Stopped and cleared the queue.", ephemeral=True)
