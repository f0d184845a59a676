import sys
import asyncio
import logging

import discord
from discord.ext import commands

from commands.controls import setup_control_commands
from commands.play import setup_play_commands
from commands.queue import setup_queue_commands
from commands.voice import setup_voice_commands
from core.config import Settings
from core.resolver import build_resolver
from core.service import MusicService
from core.state import SessionRegistry

settings = Settings.from_env()

# ─── Logging Configuration ─────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

# ─── Environment & Token ───────────────────────────────────────────────────────
logging.info(f"TOKEN loaded: {settings.masked_token()}")
if not settings.discord_token:
    logging.critical("DISCORD_TOKEN missing in .env")
    sys.exit(1)

# ─── Bot & Intents ─────────────────────────────────────────────────────────────
intents = discord.Intents.default()
intents.voice_states = True

bot = commands.Bot(command_prefix=settings.command_prefix, intents=intents)

# ─── Music Core ────────────────────────────────────────────────────────────────
resolver = build_resolver(settings)
registry = SessionRegistry(resolver, settings)
service = MusicService(resolver, registry)

setup_play_commands(bot, service)
setup_control_commands(bot, service)
setup_queue_commands(bot, service)
setup_voice_commands(bot, service)


# ─── Startup & Command Sync ───────────────────────────────────────────────────
@bot.event
async def on_ready():
    logging.info(f"Logged in as {bot.user}")
    await bot.tree.sync()
    logging.info("Slash commands synced.")


async def main():
    async with bot:
        try:
            await bot.start(settings.discord_token)
        finally:
            logging.info("Shutting down, closing voice sessions")
            await registry.close_all()
            await resolver.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
