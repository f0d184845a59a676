import discord

from core.service import MusicService
from core.voice import InteractionContext
from utils.messages import queue_embed


def setup_queue_commands(bot, service: MusicService):
    @bot.tree.command(name="queue", description="Show the current queue")
    async def queue(interaction: discord.Interaction):
        outcome = service.show_queue(InteractionContext(interaction))
        await interaction.response.send_message(embed=queue_embed(list(outcome.queue)), ephemeral=True)
