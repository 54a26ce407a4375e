"""
Input validation for channel operations.

Each validator returns a ValidationResult; ``error`` is the user-facing error
code used by helpers.error_messages.
"""

import re
from typing import Any, NamedTuple

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
FALLBACK_CHANNEL_NAME = "Unnamed Channel"

USER_LIMIT_MIN = 0
USER_LIMIT_MAX = 99

BITRATE_MIN_KBPS = 8
BITRATE_MAX_KBPS = 384
BITRATE_MENU_KBPS = (32, 48, 64, 80, 96)

AUTO_REGION = "auto"
VALID_REGIONS = (
    AUTO_REGION,
    "us-west",
    "us-east",
    "us-central",
    "us-south",
    "europe",
    "singapore",
    "japan",
    "russia",
    "brazil",
    "hongkong",
    "sydney",
    "southafrica",
    "india",
)

_FORBIDDEN_NAME = re.compile(r"<|>|@everyone|@here|```|discord\.gg", re.IGNORECASE)
_DISALLOWED_NAME_CHARS = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_USER_ID = re.compile(r"^\d{17,19}$")


class ValidationResult(NamedTuple):
    valid: bool
    value: Any = None
    error: str | None = None


def sanitize_channel_name(raw: str | None) -> str:
    """Keep word characters, whitespace and dashes; collapse runs of whitespace."""
    cleaned = _DISALLOWED_NAME_CHARS.sub("", raw or "")
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:NAME_MAX_LENGTH] if cleaned else FALLBACK_CHANNEL_NAME


def validate_channel_name(raw: str | None) -> ValidationResult:
    if raw is None or not isinstance(raw, str):
        return ValidationResult(False, error="INVALID_NAME")
    if _FORBIDDEN_NAME.search(raw):
        return ValidationResult(False, error="INVALID_NAME")
    if len(raw.strip()) > NAME_MAX_LENGTH:
        return ValidationResult(False, error="INVALID_NAME")
    name = sanitize_channel_name(raw)
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        return ValidationResult(False, error="INVALID_NAME")
    return ValidationResult(True, name)


def _parse_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def validate_user_limit(raw: Any) -> ValidationResult:
    """0 means unlimited."""
    value = _parse_int(raw)
    if value is None or not USER_LIMIT_MIN <= value <= USER_LIMIT_MAX:
        return ValidationResult(False, error="INVALID_LIMIT")
    return ValidationResult(True, value)


def validate_bitrate(raw: Any) -> ValidationResult:
    """Bitrate in kbps; menu values and typed values share the platform range."""
    value = _parse_int(raw)
    if value is None or not BITRATE_MIN_KBPS <= value <= BITRATE_MAX_KBPS:
        return ValidationResult(False, error="INVALID_BITRATE")
    return ValidationResult(True, value)


def clamp_bitrate(kbps: int, guild_limit_bps: int | None) -> int:
    """Return bits per second, capped at the guild's maximum."""
    bps = kbps * 1000
    if guild_limit_bps:
        return min(bps, int(guild_limit_bps))
    return bps


def validate_region(raw: Any) -> ValidationResult:
    """``auto`` maps to None, which clears the RTC region override."""
    if not isinstance(raw, str) or not raw.strip():
        return ValidationResult(False, error="INVALID_REGION")
    region = raw.strip().lower()
    if region not in VALID_REGIONS:
        return ValidationResult(False, error="INVALID_REGION")
    return ValidationResult(True, None if region == AUTO_REGION else region)


def sanitize_user_id(raw: Any) -> str:
    return re.sub(r"\D", "", str(raw or ""))


def validate_user_id(raw: Any) -> ValidationResult:
    """Accept a raw id or a mention such as ``<@123...>``."""
    digits = sanitize_user_id(raw)
    if not _USER_ID.match(digits):
        return ValidationResult(False, error="INVALID_USER")
    return ValidationResult(True, int(digits))
