"""
Owner-gated channel operations.

Every operation runs the same preamble (rate limit, voice/category check,
ownership check) and then, under the channel's lock, validates its input,
pushes permission/channel changes through DiscordVoiceAPI and only then
commits ownership changes to the OwnershipStore. A failed push never changes
who is recorded as owner.
"""

import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import discord

from helpers.discord_api import DiscordVoiceAPI
from helpers.rate_limiter import RateLimiter, format_wait_time
from helpers.voice_permissions import (
    BASELINE_PERMISSIONS,
    BLOCK_PERMISSIONS,
    DND_FLAGS,
    OWNER_PERMISSIONS,
    TRANSFER_OWNER_PERMISSIONS,
    TRUST_PERMISSIONS,
    everyone_overwrite,
    is_admin,
    is_blocked,
    is_dnd,
    is_locked,
    is_trusted,
    member_ids,
    merged,
    outranks,
    privacy_plan,
    template,
    trusted_member_ids,
)
from helpers.voice_validation import (
    clamp_bitrate,
    validate_bitrate,
    validate_channel_name,
    validate_region,
    validate_user_id,
    validate_user_limit,
)
from utils.errors import DatabaseError, InvalidTransferError
from utils.expiring_set import ExpiringSet
from utils.logging import get_logger
from utils.types import ApiOutcome, OperationKind, OperationRequest, OperationResult, PrivacyMode

from .ownership_store import OwnershipStore
from .presets import can_use_preset, get_preset

if TYPE_CHECKING:
    from .analytics_service import AnalyticsService
    from .voice_service import VoiceService

logger = get_logger("services.operations")

_STORE_ERRORS = (sqlite3.Error, DatabaseError)

API_FAILURE_CODES = {
    ApiOutcome.NOT_FOUND: "API_NOT_FOUND",
    ApiOutcome.FORBIDDEN: "API_FORBIDDEN",
    ApiOutcome.UNREACHABLE: "DM_FAILED",
    ApiOutcome.FAILED: "API_FAILED",
}


@dataclass
class _Context:
    request: OperationRequest
    channel: Any
    owner_id: int

    @property
    def actor(self) -> Any:
        return self.request.actor

    @property
    def target(self) -> Any:
        return self.request.target

    @property
    def guild(self) -> Any:
        return self.channel.guild


class ChannelOperations:
    """Runs OperationRequests built by the panel, select flows and slash commands."""

    PRIVACY_MARKER_TTL = 60.0

    def __init__(
        self,
        store: OwnershipStore,
        api: DiscordVoiceAPI,
        limiter: RateLimiter,
        voice: "VoiceService",
        analytics: Optional["AnalyticsService"] = None,
    ) -> None:
        self.store = store
        self.api = api
        self.limiter = limiter
        self.voice = voice
        self.analytics = analytics
        self.executed_interactions = ExpiringSet(self.PRIVACY_MARKER_TTL)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(self, request: OperationRequest) -> OperationResult:
        kind = request.kind
        actor = request.actor

        if kind is OperationKind.PRIVACY and request.interaction_id is not None:
            if not self.executed_interactions.add((kind.value, request.interaction_id)):
                return OperationResult.fail("DUPLICATE")

        channel = self.voice_channel_of(actor)
        limit = self.limiter.check(actor.id, kind.value, channel.id if channel else None)
        if not limit.allowed:
            self._record("rate_limited", {"action": kind.value, "scope": limit.scope})
            return OperationResult.fail(
                "RATE_LIMITED", wait=format_wait_time(limit.retry_after)
            )

        if channel is None:
            return OperationResult.fail("NOT_IN_VOICE")
        if not self.voice.in_managed_category(channel):
            return OperationResult.fail("NOT_MANAGED")

        async with self.store.lock(channel.id):
            owner_id = await self.store.owner_of(channel.id)
            if owner_id is None:
                result = OperationResult.fail(
                    "NO_OWNER" if kind is OperationKind.CLAIM else "NOT_MANAGED"
                )
            elif kind.owner_gated and owner_id != actor.id:
                result = OperationResult.fail("NOT_OWNER")
            else:
                result = await self._dispatch(_Context(request, channel, owner_id))

        log = logger.info if result.success else logger.debug
        log(
            "Operation %s -> %s",
            kind.value,
            result.code,
            extra={
                "user_id": actor.id,
                "channel_id": channel.id,
                "action": kind.value,
                "target_id": getattr(request.target, "id", None),
            },
        )
        self._record(
            "interaction",
            {"action": kind.value, "success": result.success, "user_id": str(actor.id)},
        )
        return result

    async def _dispatch(self, ctx: _Context) -> OperationResult:
        kind = ctx.request.kind
        if kind.targets_member:
            rejection = self._check_target(ctx)
            if rejection is not None:
                return rejection

        if kind is OperationKind.RENAME:
            return await self._rename(ctx)
        elif kind is OperationKind.LIMIT:
            return await self._limit(ctx)
        elif kind is OperationKind.BITRATE:
            return await self._bitrate(ctx)
        elif kind is OperationKind.REGION:
            return await self._region(ctx)
        elif kind is OperationKind.PRIVACY:
            return await self._privacy(ctx)
        elif kind is OperationKind.DND:
            return await self._dnd(ctx)
        elif kind is OperationKind.TRUST:
            return await self._trust(ctx)
        elif kind is OperationKind.UNTRUST:
            return await self._untrust(ctx)
        elif kind is OperationKind.BLOCK:
            return await self._block(ctx)
        elif kind is OperationKind.UNBLOCK:
            return await self._unblock(ctx)
        elif kind is OperationKind.INVITE:
            return await self._invite(ctx)
        elif kind is OperationKind.KICK:
            return await self._kick(ctx)
        elif kind is OperationKind.CLAIM:
            return await self._claim(ctx)
        elif kind is OperationKind.TRANSFER:
            return await self._transfer(ctx)
        elif kind is OperationKind.DELETE:
            return self._delete(ctx)
        elif kind is OperationKind.PRESET:
            return await self._preset(ctx)
        raise ValueError(f"Unhandled operation kind: {kind!r}")

    def _check_target(self, ctx: _Context) -> OperationResult | None:
        target = ctx.target
        if target is None:
            return OperationResult.fail("INVALID_USER")
        if target.id == ctx.actor.id:
            return OperationResult.fail("SELF_TARGET")
        return None

    # ------------------------------------------------------------------
    # Channel settings
    # ------------------------------------------------------------------

    async def _rename(self, ctx: _Context) -> OperationResult:
        check = validate_channel_name(ctx.request.value)
        if not check.valid:
            return OperationResult.fail(check.error)
        outcome = await self.api.edit_channel(ctx.channel, name=check.value)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        await self._remember_settings(ctx.channel.id, {"name": check.value})
        return OperationResult.ok("RENAMED", name=check.value)

    async def _limit(self, ctx: _Context) -> OperationResult:
        check = validate_user_limit(ctx.request.value)
        if not check.valid:
            return OperationResult.fail(check.error)
        outcome = await self.api.edit_channel(ctx.channel, user_limit=check.value)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        await self._remember_settings(ctx.channel.id, {"user_limit": check.value})
        label = "unlimited" if check.value == 0 else str(check.value)
        return OperationResult.ok("LIMIT_SET", limit=label)

    async def _bitrate(self, ctx: _Context) -> OperationResult:
        check = validate_bitrate(ctx.request.value)
        if not check.valid:
            return OperationResult.fail(check.error)
        bps = clamp_bitrate(check.value, getattr(ctx.guild, "bitrate_limit", None))
        outcome = await self.api.edit_channel(ctx.channel, bitrate=bps)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        kbps = bps // 1000
        await self._remember_settings(ctx.channel.id, {"bitrate": kbps})
        return OperationResult.ok(
            "BITRATE_SET", {"clamped": kbps < check.value}, kbps=kbps
        )

    async def _region(self, ctx: _Context) -> OperationResult:
        check = validate_region(ctx.request.value)
        if not check.valid:
            return OperationResult.fail(check.error)
        outcome = await self.api.edit_channel(ctx.channel, rtc_region=check.value)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        await self._remember_settings(ctx.channel.id, {"region": check.value or "auto"})
        return OperationResult.ok("REGION_SET", region=check.value or "automatic")

    async def _privacy(self, ctx: _Context) -> OperationResult:
        value = ctx.request.value
        try:
            mode = value if isinstance(value, PrivacyMode) else PrivacyMode(str(value))
        except ValueError:
            return OperationResult.fail("INVALID_PRIVACY")

        plan = privacy_plan(mode)
        channel = ctx.channel
        everyone = ctx.guild.default_role
        overwrites = dict(channel.overwrites)
        overwrites[everyone] = merged(overwrites.get(everyone), plan.everyone)

        if plan.trusted:
            exclude = {ctx.owner_id}
            if ctx.guild.me is not None:
                exclude.add(ctx.guild.me.id)
            trusted = set(trusted_member_ids(channel, exclude=exclude))
            for target in list(overwrites):
                if getattr(target, "id", None) in trusted and target is not everyone:
                    overwrites[target] = merged(overwrites[target], plan.trusted)

        outcome = await self.api.set_overwrites(channel, overwrites)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        return OperationResult.ok("PRIVACY_SET", {"mode": mode.value}, mode=mode.value)

    async def _dnd(self, ctx: _Context) -> OperationResult:
        enable = not is_dnd(ctx.channel)
        flags = {flag: (False if enable else None) for flag in DND_FLAGS}
        outcome = await self.api.set_overwrite(
            ctx.channel,
            ctx.guild.default_role,
            merged(everyone_overwrite(ctx.channel), flags),
        )
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        return OperationResult.ok("DND_ON" if enable else "DND_OFF", {"enabled": enable})

    # ------------------------------------------------------------------
    # Member-targeted
    # ------------------------------------------------------------------

    async def _trust(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        if is_trusted(ctx.channel, target):
            return OperationResult.fail("ALREADY_TRUSTED", user=target.mention)
        outcome = await self.api.set_overwrite(
            ctx.channel, target, merged(ctx.channel.overwrites_for(target), TRUST_PERMISSIONS)
        )
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        await self._mirror_permission(ctx.channel.id, target.id, add="trust", remove="block")
        return OperationResult.ok("TRUSTED", user=target.mention)

    async def _untrust(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        if ctx.channel.overwrites_for(target).is_empty():
            return OperationResult.fail("NOT_TRUSTED", user=target.mention)
        outcome = await self.api.clear_overwrite(ctx.channel, target)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)

        disconnected = False
        if target.id in member_ids(ctx.channel) and is_locked(ctx.channel):
            disconnected = (await self.api.disconnect_member(target)).ok
        await self._mirror_permission(ctx.channel.id, target.id, remove="trust")
        return OperationResult.ok(
            "UNTRUSTED", {"disconnected": disconnected}, user=target.mention
        )

    async def _block(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        if getattr(target, "bot", False):
            return OperationResult.fail("TARGET_BOT")
        if is_admin(target):
            return OperationResult.fail("TARGET_ADMIN")
        outcome = await self.api.set_overwrite(
            ctx.channel, target, merged(ctx.channel.overwrites_for(target), BLOCK_PERMISSIONS)
        )
        if not outcome.ok:
            return self._api_failure(ctx, outcome)

        disconnected = False
        if target.id in member_ids(ctx.channel):
            disconnected = (await self.api.disconnect_member(target)).ok
        await self._mirror_permission(ctx.channel.id, target.id, add="block", remove="trust")
        return OperationResult.ok("BLOCKED", {"disconnected": disconnected}, user=target.mention)

    async def _unblock(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        if not is_blocked(ctx.channel, target):
            return OperationResult.fail("NOT_BLOCKED", user=target.mention)
        outcome = await self.api.clear_overwrite(ctx.channel, target)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        await self._mirror_permission(ctx.channel.id, target.id, remove="block")
        return OperationResult.ok("UNBLOCKED", user=target.mention)

    async def _invite(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        channel = ctx.channel
        if target.id in member_ids(channel):
            return OperationResult.fail("TARGET_ALREADY_PRESENT", user=target.mention)
        if is_blocked(channel, target):
            return OperationResult.fail("TARGET_BLOCKED")

        outcome, url = await self.api.create_invite(channel)
        if not outcome.ok or url is None:
            return self._api_failure(ctx, outcome if not outcome.ok else ApiOutcome.FAILED)

        sent = await self.api.send_dm(
            target,
            f"🔊 **{ctx.actor.display_name}** invited you to **{channel.name}**: {url}",
        )
        if sent is ApiOutcome.UNREACHABLE:
            return OperationResult.fail("DM_FAILED", {"invite_url": url}, user=target.mention)
        if not sent.ok:
            return self._api_failure(ctx, sent)
        return OperationResult.ok("INVITED", {"invite_url": url}, user=target.mention)

    async def _kick(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        if is_admin(target):
            return OperationResult.fail("TARGET_ADMIN")
        me = ctx.guild.me
        if me is not None and outranks(target, me):
            return OperationResult.fail("TARGET_OUTRANKS_BOT")
        if target.id not in member_ids(ctx.channel):
            return OperationResult.fail("TARGET_NOT_IN_CHANNEL", user=target.mention)
        outcome = await self.api.disconnect_member(target)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)
        return OperationResult.ok("KICKED", user=target.mention)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    async def _claim(self, ctx: _Context) -> OperationResult:
        actor = ctx.actor
        channel = ctx.channel
        if ctx.owner_id == actor.id:
            return OperationResult.fail("ALREADY_OWNER")
        if ctx.owner_id in member_ids(channel):
            return OperationResult.fail("OWNER_PRESENT")

        outcome = await self.api.set_overwrite(
            channel, actor, merged(channel.overwrites_for(actor), OWNER_PERMISSIONS)
        )
        if not outcome.ok:
            return self._api_failure(ctx, outcome)

        try:
            result = await self.store.transfer(channel.id, actor.id)
        except InvalidTransferError:
            logger.exception("Claim could not be committed", extra={"channel_id": channel.id})
            return OperationResult.fail("API_FAILED")

        await self._downgrade_previous_owner(ctx, result.old_owner_id)
        return OperationResult.ok(
            "CLAIMED",
            {"old_owner_id": result.old_owner_id, "new_owner_id": result.new_owner_id},
            channel=channel.name,
        )

    async def _transfer(self, ctx: _Context) -> OperationResult:
        target = ctx.target
        channel = ctx.channel
        if getattr(target, "bot", False):
            return OperationResult.fail("TARGET_BOT")
        if target.id not in member_ids(channel):
            return OperationResult.fail("TARGET_NOT_IN_CHANNEL", user=target.mention)

        previous = channel.overwrites.get(target)
        outcome = await self.api.set_overwrite(
            channel, target, merged(previous, TRANSFER_OWNER_PERMISSIONS)
        )
        if not outcome.ok:
            return self._api_failure(ctx, outcome)

        # The target may have left while the overwrite was being written
        if target.id not in member_ids(channel):
            if previous is None:
                await self.api.clear_overwrite(channel, target)
            else:
                await self.api.set_overwrite(channel, target, previous)
            return OperationResult.fail("TARGET_NOT_IN_CHANNEL", user=target.mention)

        try:
            result = await self.store.transfer(channel.id, target.id)
        except InvalidTransferError:
            logger.exception("Transfer could not be committed", extra={"channel_id": channel.id})
            return OperationResult.fail("API_FAILED")

        await self._downgrade_previous_owner(ctx, result.old_owner_id)
        notified = await self.api.send_dm(
            target,
            f"👑 You are now the owner of **{channel.name}** in **{ctx.guild.name}** "
            f"(from {ctx.actor.display_name}).",
        )
        return OperationResult.ok(
            "TRANSFERRED",
            {
                "old_owner_id": result.old_owner_id,
                "new_owner_id": result.new_owner_id,
                "notified": notified.ok,
            },
            user=target.mention,
        )

    async def _downgrade_previous_owner(self, ctx: _Context, old_owner_id: int) -> None:
        """Previous owner keeps baseline access; failures here do not undo the transfer."""
        previous = ctx.guild.get_member(old_owner_id)
        if previous is None:
            return
        outcome = await self.api.set_overwrite(ctx.channel, previous, template(BASELINE_PERMISSIONS))
        if not outcome.ok:
            logger.warning(
                "Could not downgrade previous owner (%s)",
                outcome.value,
                extra={"channel_id": ctx.channel.id, "user_id": old_owner_id},
            )

    def _delete(self, ctx: _Context) -> OperationResult:
        self.voice.schedule_interaction_delete(ctx.channel)
        return OperationResult.ok("DELETING", channel=ctx.channel.name)

    async def _preset(self, ctx: _Context) -> OperationResult:
        preset = get_preset(ctx.request.value)
        if preset is None:
            return OperationResult.fail("INVALID_PRESET")
        if not can_use_preset(ctx.actor, preset):
            return OperationResult.fail("PRESET_FORBIDDEN", preset=preset.name)

        channel = ctx.channel
        bps = clamp_bitrate(preset.bitrate_kbps, getattr(ctx.guild, "bitrate_limit", None))
        region = validate_region(preset.region).value
        outcome = await self.api.edit_channel(
            channel, bitrate=bps, user_limit=preset.user_limit, rtc_region=region
        )
        if not outcome.ok:
            return self._api_failure(ctx, outcome)

        everyone = ctx.guild.default_role
        overwrites = dict(channel.overwrites)
        overwrites[ctx.actor] = merged(
            overwrites.get(ctx.actor), {**OWNER_PERMISSIONS, "send_messages": True}
        )
        overwrites[everyone] = merged(overwrites.get(everyone), preset.everyone_flags())
        outcome = await self.api.set_overwrites(channel, overwrites)
        if not outcome.ok:
            return self._api_failure(ctx, outcome)

        await self._remember_settings(
            channel.id,
            {
                "preset": preset.key,
                "bitrate": bps // 1000,
                "user_limit": preset.user_limit,
                "region": preset.region,
            },
        )
        return OperationResult.ok(
            "PRESET_APPLIED",
            {"preset": preset.key, "bitrate_kbps": bps // 1000},
            preset=preset.name,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def voice_channel_of(member: Any) -> Any:
        voice = getattr(member, "voice", None)
        return voice.channel if voice is not None else None

    async def resolve_member(
        self, guild: discord.Guild, raw_user_id: Any, *, channel_id: int | None = None
    ) -> tuple[discord.Member | None, str | None]:
        """Turn a typed id or mention into a guild member, caching per channel."""
        check = validate_user_id(raw_user_id)
        if not check.valid:
            return None, check.error
        user_id = check.value

        async def _load() -> discord.Member | None:
            return await self.api.fetch_member(guild, user_id)

        if channel_id is None:
            member = await _load()
        else:
            member = await self.store.cache.get_or_load(channel_id, ("member", user_id), _load)
        if member is None:
            return None, "INVALID_USER"
        return member, None

    def _api_failure(self, ctx: _Context, outcome: ApiOutcome) -> OperationResult:
        code = API_FAILURE_CODES.get(outcome, "API_FAILED")
        self._record(
            "error",
            {"where": ctx.request.kind.value, "outcome": outcome.value, "channel_id": str(ctx.channel.id)},
        )
        return OperationResult.fail(code)

    async def _remember_settings(self, channel_id: int, changes: dict[str, Any]) -> None:
        try:
            await self.store.repository.update_settings(channel_id, changes)
        except _STORE_ERRORS:
            logger.warning(
                "Failed to persist channel settings", exc_info=True, extra={"channel_id": channel_id}
            )

    async def _mirror_permission(
        self, channel_id: int, user_id: int, *, add: str | None = None, remove: str | None = None
    ) -> None:
        try:
            if remove is not None:
                await self.store.repository.remove_permission(channel_id, user_id, remove)
            if add is not None:
                await self.store.repository.add_permission(channel_id, user_id, add)
        except _STORE_ERRORS:
            logger.warning(
                "Failed to mirror %s/%s permission row",
                add,
                remove,
                exc_info=True,
                extra={"channel_id": channel_id, "user_id": user_id},
            )

    def _record(self, metric_type: str, value: dict[str, Any]) -> None:
        if self.analytics is not None:
            self.analytics.record(metric_type, value)
