"""
Centralized message formatting for user-facing Discord replies.

Operations return a result code; this module turns the code into a short,
actionable message. Messages never expose internal technical details.

Format: emoji + **Bold Title** + newline + actionable body
"""

from utils.logging import get_logger
from utils.types import OperationResult

logger = get_logger(__name__)

_ERROR_MESSAGES = {
    "RATE_LIMITED": "⚠️ **Slow down**\nYou're doing that too often. Try again in {wait}.",
    "NOT_IN_VOICE": "❌ **Not in voice**\nJoin the voice channel you want to manage first.",
    "NOT_MANAGED": "❌ **Not a temp channel**\nThat only works in a channel created from the lobby.",
    "NOT_OWNER": "❌ **Not your channel**\nOnly the channel owner can do that.",
    "NO_OWNER": "❌ **Nothing to claim**\nThis channel has no registered owner.",
    "SELF_TARGET": "❌ **That's you**\nPick someone other than yourself.",
    "TARGET_ADMIN": "❌ **Not allowed**\nYou can't do that to a server administrator.",
    "TARGET_BOT": "❌ **Not allowed**\nBots can't be targeted by that action.",
    "TARGET_OUTRANKS_BOT": "❌ **Role too high**\nThat member's role is above mine, so I can't move them.",
    "TARGET_NOT_IN_CHANNEL": "❌ **User not present**\n{user} must be in your voice channel.",
    "TARGET_ALREADY_PRESENT": "❌ **Already here**\n{user} is already in your channel.",
    "TARGET_BLOCKED": "❌ **User is blocked**\nUnblock them before sending an invite.",
    "ALREADY_TRUSTED": "❌ **Already trusted**\n{user} is already on your trusted list.",
    "NOT_TRUSTED": "❌ **Not trusted**\n{user} has no permissions set on your channel.",
    "NOT_BLOCKED": "❌ **Not blocked**\n{user} isn't blocked in this channel.",
    "ALREADY_OWNER": "❌ **Already yours**\nYou already own this channel.",
    "OWNER_PRESENT": "❌ You can't claim this channel while the current owner is still present.",
    "INVALID_NAME": "❌ **Invalid name**\nUse 2-100 letters, numbers, spaces or dashes.",
    "INVALID_LIMIT": "❌ **Invalid limit**\nEnter a whole number from 0 (unlimited) to 99.",
    "INVALID_BITRATE": "❌ **Invalid bitrate**\nPick a value between 8 and 384 kbps.",
    "INVALID_REGION": "❌ **Invalid region**\nPick one of the listed regions.",
    "INVALID_PRIVACY": "❌ **Invalid option**\nPick one of the listed privacy modes.",
    "INVALID_USER": "❌ **User not found**\nCheck the user id or mention and try again.",
    "INVALID_PRESET": "❌ **Unknown preset**\nPick one of the listed presets.",
    "PRESET_FORBIDDEN": "❌ **Preset locked**\n{preset} needs a VIP or premium role.",
    "API_NOT_FOUND": "❌ **Not found**\nThat channel or member no longer exists.",
    "API_FORBIDDEN": "❌ **Missing permissions**\nI'm not allowed to do that here.",
    "DM_FAILED": "⚠️ **Couldn't DM**\n{user} doesn't accept direct messages.",
    "API_FAILED": "❌ **Discord error**\nThat didn't go through. Please try again.",
    "FLOW_ACTIVE": "⚠️ **Already open**\nFinish or close your other menu first.",
    "FLOW_TIMEOUT": "⌛ **Timed out**\nThat menu expired. Open it again from the panel.",
    "DUPLICATE": "ℹ️ **Already applied**\nThat selection was already handled.",
    "PERMISSION": "❌ You don't have permission to use this command.",
    "UNKNOWN": "❌ **Something went wrong**\nAn unexpected error occurred. The issue was logged.",
}

_SUCCESS_MESSAGES = {
    "RENAMED": "✅ **Channel renamed**\nYour channel is now **{name}**.",
    "LIMIT_SET": "✅ **User limit set**\nLimit is now {limit}.",
    "BITRATE_SET": "✅ **Bitrate set**\nAudio quality is now {kbps} kbps.",
    "REGION_SET": "✅ **Region set**\nVoice region is now {region}.",
    "PRIVACY_SET": "✅ **Privacy updated**\nChannel is now set to {mode}.",
    "DND_ON": "🔕 **Do not disturb on**\nOnly you and trusted members can speak.",
    "DND_OFF": "🔔 **Do not disturb off**\nEveryone can speak again.",
    "TRUSTED": "✅ **User trusted**\n{user} can always join your channel.",
    "UNTRUSTED": "✅ **Trust removed**\n{user} is back to default access.",
    "BLOCKED": "✅ **User blocked**\n{user} can no longer see or join your channel.",
    "UNBLOCKED": "✅ **User unblocked**\n{user} is back to default access.",
    "INVITED": "✅ **Invite sent**\n{user} got a single-use invite by DM.",
    "KICKED": "✅ **User kicked**\n{user} was disconnected from your channel.",
    "CLAIMED": "✅ **Channel claimed**\nYou now own {channel}.",
    "TRANSFERRED": "✅ **Ownership transferred**\n{user} now owns this channel.",
    "DELETING": "🗑️ **Deleting channel**\n{channel} will be removed in a moment.",
    "PRESET_APPLIED": "✅ **Preset applied**\n{preset} settings are now active.",
    "ADMIN_DELETED": "✅ **Channel deleted**\n{channel} was removed.",
    "LIMITS_RESET": "✅ **Rate limits reset**\n{user} can act again right away.",
    "ORPHANS_CLEANED": "✅ **Cleanup finished**\nRemoved {count} empty channel(s).",
    "CACHES_CLEARED": "✅ **Caches cleared**\nDropped {count} cached entries.",
    "STATS": "📊 **Temp voice stats**",
}


def _render(message: str, kwargs: dict) -> str:
    try:
        return message.format(**kwargs)
    except KeyError as e:
        # Missing kwarg: show a placeholder instead of failing the reply
        return message.replace("{" + str(e).strip("'") + "}", "???")


def format_user_error(code: str, **kwargs) -> str:
    """
    Format a user-friendly error message based on an error code.

    Examples:
        >>> format_user_error("NOT_IN_VOICE")
        "❌ **Not in voice**\\nJoin the voice channel you want to manage first."

        >>> format_user_error("RATE_LIMITED", wait="12 seconds")
        "⚠️ **Slow down**\\nYou're doing that too often. Try again in 12 seconds."
    """
    if code not in _ERROR_MESSAGES:
        logger.warning(f"Unknown error code used in format_user_error: {code}")
    return _render(_ERROR_MESSAGES.get(code, _ERROR_MESSAGES["UNKNOWN"]), kwargs)


def format_user_success(code: str, **kwargs) -> str:
    """Format a confirmation message; unknown codes get a generic one."""
    message = _SUCCESS_MESSAGES.get(code)
    if message is None:
        return "✅ **Success**\nOperation completed."
    try:
        return message.format(**kwargs)
    except KeyError:
        return "✅ **Success**\nOperation completed."


def format_result(result: OperationResult) -> str:
    if result.success:
        return format_user_success(result.code, **result.message_kwargs)
    return format_user_error(result.code, **result.message_kwargs)
