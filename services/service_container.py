"""
Service Container

Central registry for all bot services providing dependency injection and service lifecycle management.
"""

from typing import TYPE_CHECKING, Optional

from config.config_loader import ConfigLoader, VoiceSettings
from helpers.discord_api import DiscordVoiceAPI
from helpers.interaction_guard import InteractionGuard
from helpers.rate_limiter import RateLimiter
from helpers.ttl_cache import ChannelScopedCache
from services.db.channel_repository import ChannelRepository
from utils.errors import ServiceError
from utils.keyed_lock import KeyedLock
from utils.logging import get_logger

from .admin_service import AdminService
from .analytics_service import AnalyticsService
from .channel_operations import ChannelOperations
from .ownership_store import OwnershipStore
from .voice_service import VoiceService

if TYPE_CHECKING:
    from discord.ext.commands import Bot


class ServiceContainer:
    """
    Central container for managing all bot services.

    Builds the shared state (store, limiter, API surface) once and hands the
    same instances to every service, so tests can build an isolated container
    per case.
    """

    def __init__(
        self,
        bot: Optional["Bot"] = None,
        *,
        settings: VoiceSettings | None = None,
        api: DiscordVoiceAPI | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.logger = get_logger("services.container")
        self.bot = bot
        self.settings = settings or ConfigLoader.voice_settings()
        self.repository = ChannelRepository()
        self.store = OwnershipStore(
            self.repository,
            cache=ChannelScopedCache(ttl_seconds=self.settings.cache_ttl_seconds),
            locks=KeyedLock(),
        )
        self.api = api or DiscordVoiceAPI()
        self.limiter = limiter or RateLimiter.from_config(
            ConfigLoader.get("rate_limits", {}) or {},
            window=self.settings.rate_limit_window,
            max_requests=self.settings.rate_limit_max_requests,
        )
        self.guard = InteractionGuard()
        self._analytics: AnalyticsService | None = None
        self._voice: VoiceService | None = None
        self._operations: ChannelOperations | None = None
        self._admin: AdminService | None = None
        self._initialized = False

    @property
    def analytics(self) -> AnalyticsService:
        """Get the analytics service."""
        if self._analytics is None:
            raise ServiceError("AnalyticsService not initialized")
        return self._analytics

    @property
    def voice(self) -> VoiceService:
        """Get the voice service."""
        if self._voice is None:
            raise ServiceError("VoiceService not initialized")
        return self._voice

    @property
    def operations(self) -> ChannelOperations:
        """Get the channel operation set."""
        if self._operations is None:
            raise ServiceError("ChannelOperations not initialized")
        return self._operations

    @property
    def admin(self) -> AdminService:
        """Get the admin service."""
        if self._admin is None:
            raise ServiceError("AdminService not initialized")
        return self._admin

    def get_all_services(self) -> list:
        """Get all initialized services for health monitoring."""
        return [s for s in (self._analytics, self._voice, self._admin) if s is not None]

    async def initialize(self) -> None:
        """Initialize all services in dependency order."""
        if self._initialized:
            self.logger.warning("ServiceContainer already initialized")
            return

        try:
            self.logger.info("Initializing services")

            self._analytics = AnalyticsService(
                self.repository,
                retention_days=self.settings.metrics_retention_days,
                live_channels=lambda: len(self.store),
            )
            await self._analytics.initialize()

            # Restores the owner map from durable records
            self._voice = VoiceService(
                self.settings, self.store, self.api, analytics=self._analytics, bot=self.bot
            )
            await self._voice.initialize()

            self._operations = ChannelOperations(
                self.store, self.api, self.limiter, self._voice, analytics=self._analytics
            )

            self._admin = AdminService(self.store, self.api, self.limiter, self._voice)
            await self._admin.initialize()

            self._initialized = True
            self.logger.info("All services initialized successfully")

        except Exception as e:
            self.logger.exception("Failed to initialize services", exc_info=e)
            raise

    async def cleanup(self) -> None:
        """Clean up all services in reverse dependency order."""
        if not self._initialized:
            return

        self.logger.info("Cleaning up services")

        if self._admin:
            await self._admin.shutdown()
            self._admin = None

        self._operations = None

        if self._voice:
            await self._voice.shutdown()
            self._voice = None

        if self._analytics:
            await self._analytics.shutdown()
            self._analytics = None

        self._initialized = False
        self.logger.info("Services cleaned up")
