import asyncio
import os
import sys
import time

import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv

from config.config_loader import ConfigLoader
from helpers.embeds import PANEL_TITLE, create_panel_embed
from helpers.error_reporter import ErrorReporter
from utils.logging import get_logger
from utils.tasks import run_periodically, spawn

# Initialize logger
logger = get_logger(__name__)

# Load environment variables
load_dotenv()

# Load configuration using ConfigLoader
config = ConfigLoader.load_config()

RATE_LIMIT_CLEANUP_SECONDS = 60
STALE_LOCK_CLEANUP_SECONDS = 300
METRICS_RETENTION_SECONDS = 24 * 60 * 60
PANEL_HISTORY_SCAN = 25

# Configure intents - start from none and enable only what's required
intents = discord.Intents.none()
intents.guilds = True  # Required: Guild events, channels, roles
intents.members = True  # Required: member lookups for trust/block/transfer targets
intents.voice_states = True  # Required: Voice channel join/leave for temp channels

# List of initial extensions to load
initial_extensions = [
    "cogs.voice.events",
    "cogs.voice.commands",
    "cogs.admin.commands",
]


class MyBot(commands.Bot):
    """Bot with project-specific attributes and helpers."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        # Assign the entire config to the bot instance
        self.config = config
        self.settings = ConfigLoader.voice_settings()

        # Initialize uptime tracking
        self.start_time = time.monotonic()

        self.services = None
        self.internal_api = None
        self.error_reporter = ErrorReporter(self.settings.error_webhook_url)
        self._background_tasks: set[asyncio.Task] = set()
        self._ready_once = False

    def _track_task(self, task: asyncio.Task, label: str | None = None) -> None:
        """Track a background task for clean shutdown."""
        name = label or task.get_name()
        self._background_tasks.add(task)

        def _cleanup(done: asyncio.Task) -> None:
            self._background_tasks.discard(done)
            if done.cancelled():
                logger.debug("Background task %s cancelled", name)

        task.add_done_callback(_cleanup)

    async def setup_hook(self) -> None:
        """Initialize storage and services, load cogs, and sync commands."""
        # Initialize the database; a failure here stops startup
        from services.db.database import Database

        await Database.initialize(ConfigLoader.get("database.path"))

        # Initialize services container (restores channel owners from storage)
        from services.service_container import ServiceContainer

        self.services = ServiceContainer(self, settings=self.settings)
        await self.services.initialize()
        logger.info("ServiceContainer initialized")

        # Start internal API server for the dashboard
        if ConfigLoader.get("internal_api.enabled", False):
            from services.internal_api import InternalAPIServer

            try:
                self.internal_api = InternalAPIServer(self.services)
                await self.internal_api.start()
            except OSError as e:
                # Don't fail bot startup if internal API fails
                logger.exception("Failed to start internal API server", exc_info=e)
                self.internal_api = None

        for ext in initial_extensions:
            await self.load_extension(ext)
            logger.info(f"Loaded extension: {ext}")

        self.tree.on_error = self.on_app_command_error

        # Register persistent views (must happen every startup for persistence to work)
        # Import here to avoid circular import issues
        from helpers.views import ControlPanelView

        self.add_view(ControlPanelView(self))

        # Sync the command tree after loading all cogs
        try:
            await self.tree.sync()
            logger.info("All commands synced globally.")
        except discord.HTTPException as e:
            logger.exception("Failed to sync commands", exc_info=e)

        logger.info("Registered commands: ")
        for command in self.tree.walk_commands():
            logger.info(f"- Command: {command.qualified_name}")

    async def on_ready(self) -> None:
        """Called when the bot is ready (and again after every reconnect)."""
        if not self.user:
            logger.warning("Bot user is not initialized")
            return
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")

        if self._ready_once:
            return
        self._ready_once = True

        removed = await self.services.voice.reconcile(self.guilds)
        logger.info(f"Startup reconcile removed {removed} stale channel(s)")

        await self.post_control_panel()
        self._start_periodic_tasks()
        logger.info("Bot is ready and online!")

    def _start_periodic_tasks(self) -> None:
        services = self.services

        async def cleanup_rate_limits() -> None:
            services.limiter.cleanup()
            services.guard.cleanup()

        async def cleanup_cache() -> None:
            services.store.cache.cleanup()
            services.voice.purge_markers()
            services.operations.executed_interactions.purge()

        async def cleanup_locks() -> None:
            services.store.locks.cleanup_stale(STALE_LOCK_CLEANUP_SECONDS)

        periodic = (
            ("orphan_sweep", self.settings.sweep_interval_seconds, services.voice.sweep_all),
            ("rate_limit_cleanup", RATE_LIMIT_CLEANUP_SECONDS, cleanup_rate_limits),
            ("cache_cleanup", self.settings.cache_cleanup_interval_seconds, cleanup_cache),
            ("stale_lock_cleanup", STALE_LOCK_CLEANUP_SECONDS, cleanup_locks),
            ("metrics_retention", METRICS_RETENTION_SECONDS, services.analytics.purge_old_metrics),
        )
        for label, interval, func in periodic:
            self._track_task(
                spawn(
                    run_periodically(label, interval, func, is_closed=self.is_closed),
                    name=label,
                ),
                label,
            )

    async def post_control_panel(self) -> None:
        """Post the control panel, replacing any panel this bot posted before."""
        from helpers.views import ControlPanelView

        channel_id = self.settings.panel_channel_id
        if channel_id is None:
            logger.warning("No panel channel configured; control panel not posted")
            return
        channel = self.get_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            logger.warning(f"Panel channel {channel_id} not found or not messageable")
            return

        try:
            async for message in channel.history(limit=PANEL_HISTORY_SCAN):
                if message.author == self.user and any(
                    embed.title == PANEL_TITLE for embed in message.embeds
                ):
                    await message.delete()
        except discord.HTTPException as e:
            logger.warning(f"Could not clear old control panels: {e}")

        outcome, _ = await self.services.api.send_message(
            channel,
            embed=create_panel_embed(self.settings.lobby_channel_id),
            view=ControlPanelView(self),
        )
        if outcome.ok:
            logger.info("Control panel posted", extra={"channel_id": channel_id})
        else:
            logger.warning(
                f"Failed to post control panel: {outcome.value}",
                extra={"channel_id": channel_id},
            )

    async def on_error(self, event_method: str, *args, **kwargs) -> None:
        error = sys.exc_info()[1]
        if error is None:
            return
        await self.error_reporter.report(error, context=event_method)

    async def on_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            from helpers.discord_reply import send_user_error
            from helpers.error_messages import format_user_error

            await send_user_error(interaction, format_user_error("PERMISSION"))
            return
        original = getattr(error, "original", error)
        await self.error_reporter.report(original, interaction=interaction, context="app_command")

    async def close(self) -> None:
        """
        Closes the bot and cleans up all resources.
        """
        logger.info("Shutting down the bot.")

        # Stop internal API server if running
        if self.internal_api:
            await self.internal_api.stop()

        # Cancel and await tracked background tasks
        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
            self._background_tasks.clear()

        # Cleanup services
        if self.services:
            await self.services.cleanup()
            logger.info("Services cleaned up")

        await self.error_reporter.close()

        # Call parent close
        await super().close()


def main() -> None:
    # Load sensitive information from .env
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        logger.critical("DISCORD_TOKEN not found in environment variables.")
        raise SystemExit("DISCORD_TOKEN not set.")

    bot = MyBot(command_prefix=commands.when_mentioned, intents=intents)
    bot.run(token, log_handler=None)


if __name__ == "__main__":
    main()
