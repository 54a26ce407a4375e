"""
Internal API server for bot-to-dashboard communication.

Read-only HTTP endpoints over analytics and live channel state, so a
dashboard can poll the bot without touching the Discord API.
"""

import os
import time
from typing import TYPE_CHECKING

from aiohttp import web

from utils.logging import get_logger

if TYPE_CHECKING:
    from services.service_container import ServiceContainer

logger = get_logger(__name__)

MAX_TIMELINE_BUCKETS = 1000


class InternalAPIServer:
    """
    Lightweight internal HTTP server running alongside the Discord bot.

    Every route except ``/health`` requires ``Authorization: Bearer <key>``
    when ``INTERNAL_API_KEY`` is set.
    """

    def __init__(
        self,
        services: "ServiceContainer",
        *,
        host: str | None = None,
        port: int | None = None,
        api_key: str | None = None,
    ):
        self.services = services
        self.app = web.Application()
        self.runner = None
        self.site = None
        self.started_at = time.time()

        self.host = host or os.getenv("INTERNAL_API_HOST", "127.0.0.1")
        self.port = port or int(os.getenv("INTERNAL_API_PORT", "8082"))
        self.api_key = api_key if api_key is not None else os.getenv("INTERNAL_API_KEY", "")

        if not self.api_key:
            logger.warning("INTERNAL_API_KEY not set - internal API will be unsecured!")

        self.app.router.add_get("/health", self.health)
        self.app.router.add_get("/stats", self.stats)
        self.app.router.add_get("/channels", self.channels)
        self.app.router.add_get("/users", self.users)
        self.app.router.add_get("/timeline", self.timeline)
        self.app.router.add_get("/ratelimits", self.ratelimits)

        logger.info(f"Internal API configured on {self.host}:{self.port}")

    async def start(self):
        """Start the internal API server."""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            self.site = web.TCPSite(self.runner, self.host, self.port)
            await self.site.start()
            logger.info(f"Internal API server started on http://{self.host}:{self.port}")
        except OSError as e:
            logger.exception("Failed to start internal API server", exc_info=e)
            raise

    async def stop(self):
        """Stop the internal API server."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Internal API server stopped")

    def _check_auth(self, request: web.Request) -> bool:
        """Check if request has valid API key."""
        if not self.api_key:
            return True

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header[7:] == self.api_key
        return False

    @staticmethod
    def _unauthorized() -> web.Response:
        return web.json_response({"error": "Unauthorized"}, status=401)

    @staticmethod
    def _int_param(request: web.Request, name: str, default: int | None = None) -> int | None:
        raw = request.query.get(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise web.HTTPBadRequest(
                text=f'{{"error": "{name} must be an integer"}}',
                content_type="application/json",
            ) from None

    async def health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        services = []
        for service in self.services.get_all_services():
            services.append(await service.health_check())
        return web.json_response(
            {
                "status": "ok",
                "uptime_seconds": int(time.time() - self.started_at),
                "services": services,
            }
        )

    async def stats(self, request: web.Request) -> web.Response:
        """
        Dashboard summary: channel, user and interaction aggregates.

        Query params:
        - since: unix timestamp (default: last 24h)
        """
        if not self._check_auth(request):
            return self._unauthorized()
        since = self._int_param(request, "since")
        data = await self.services.analytics.dashboard(since)
        data["lifecycle"] = dict(self.services.voice.counters)
        return web.json_response(data)

    async def channels(self, request: web.Request) -> web.Response:
        """
        Live channel map plus stored-channel aggregates.

        Query params:
        - guild_id: restrict to one guild
        """
        if not self._check_auth(request):
            return self._unauthorized()
        guild_id = self._int_param(request, "guild_id")
        store = self.services.store
        active = []
        for channel_id, owner_id in sorted(store.active_channels().items()):
            channel_guild = store.guild_of(channel_id)
            if guild_id is not None and channel_guild != guild_id:
                continue
            active.append(
                {
                    "channel_id": str(channel_id),
                    "guild_id": str(channel_guild) if channel_guild else None,
                    "owner_id": str(owner_id),
                }
            )
        stats = await self.services.analytics.channel_stats(guild_id)
        return web.json_response({"channels": active, "stats": stats})

    async def users(self, request: web.Request) -> web.Response:
        """
        Per-user or leaderboard user statistics.

        Query params:
        - user_id: a single user (default: leaderboards)
        """
        if not self._check_auth(request):
            return self._unauthorized()
        user_id = self._int_param(request, "user_id")
        return web.json_response(await self.services.analytics.user_stats(user_id))

    async def timeline(self, request: web.Request) -> web.Response:
        """
        Bucketed metric counts.

        Query params:
        - since: unix timestamp (default: last 24h)
        - bucket: bucket size in seconds (default 3600)
        """
        if not self._check_auth(request):
            return self._unauthorized()
        since = self._int_param(request, "since")
        bucket = self._int_param(request, "bucket", 3600)
        if bucket <= 0:
            return web.json_response({"error": "bucket must be positive"}, status=400)
        if since is not None and (time.time() - since) / bucket > MAX_TIMELINE_BUCKETS:
            return web.json_response({"error": "too many buckets"}, status=400)
        data = await self.services.analytics.timeline(since, bucket)
        return web.json_response({"bucket_seconds": bucket, "timeline": data})

    async def ratelimits(self, request: web.Request) -> web.Response:
        """
        Limiter counters, or one user's status for an action.

        Query params:
        - user_id, action: both required for a per-user status
        """
        if not self._check_auth(request):
            return self._unauthorized()
        limiter = self.services.limiter
        user_id = self._int_param(request, "user_id")
        action = request.query.get("action")
        if user_id is not None and action:
            return web.json_response(
                {"user_id": str(user_id), "action": action, **limiter.status(user_id, action)}
            )
        return web.json_response(limiter.stats())
