import logging

import discord
from discord import app_commands

from core.service import MusicService
from core.voice import InteractionContext
from utils.messages import describe, queued_embed


def setup_play_commands(bot, service: MusicService):
    @bot.tree.command(name="play", description="Play a song by search, YouTube, or Spotify URL")
    @app_commands.describe(query="Search terms, YouTube URL, or Spotify URL")
    async def play(interaction: discord.Interaction, query: str):
        if interaction.guild is None:
            return await interaction.response.send_message("This only works in a server.", ephemeral=True)

        ctx = InteractionContext(interaction)
        await interaction.response.defer(ephemeral=True)
        status = await interaction.followup.send("🔍 Searching...", ephemeral=True, wait=True)

        async def progress(candidate):
            await status.edit(content=f"🔍 Trying: {candidate.title[:50]}...")

        outcome = await service.play(ctx, query, progress=progress)
        if not outcome.ok:
            logging.info(f"[/play] {query!r} failed: {outcome.reason} {outcome.detail}")
            return await status.edit(content=f"❌ {describe(outcome.reason)}")

        logging.info(f"[/play] queued {outcome.track.title!r} at {outcome.position}")
        await status.edit(content=f"✅ Found: **{outcome.track.title}**")
        if outcome.position and outcome.position > 1:
            await interaction.followup.send(embed=queued_embed(outcome.track, outcome.position))
