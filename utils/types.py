"""
Type definitions and common data structures for the temp voice bot.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, NamedTuple

_EMPTY: Mapping[str, Any] = MappingProxyType({})


class OperationKind(Enum):
    """Every user-triggered channel operation."""

    RENAME = "name"
    LIMIT = "limit"
    BITRATE = "bitrate"
    REGION = "region"
    PRIVACY = "privacy"
    DND = "dnd"
    TRUST = "trust"
    UNTRUST = "untrust"
    BLOCK = "block"
    UNBLOCK = "unblock"
    INVITE = "invite"
    KICK = "kick"
    CLAIM = "claim"
    TRANSFER = "transfer"
    DELETE = "delete"
    PRESET = "preset"

    @property
    def owner_gated(self) -> bool:
        return self is not OperationKind.CLAIM

    @property
    def targets_member(self) -> bool:
        return self in _MEMBER_TARGETED


_MEMBER_TARGETED = frozenset(
    {
        OperationKind.TRUST,
        OperationKind.UNTRUST,
        OperationKind.BLOCK,
        OperationKind.UNBLOCK,
        OperationKind.INVITE,
        OperationKind.KICK,
        OperationKind.TRANSFER,
    }
)


class PrivacyMode(Enum):
    """Mutually exclusive privacy selections."""

    LOCK = "lock"
    UNLOCK = "unlock"
    INVISIBLE = "invisible"
    VISIBLE = "visible"
    CLOSE_CHAT = "closechat"
    OPEN_CHAT = "openchat"


class ApiOutcome(Enum):
    """Result of a single capability-surface call."""

    OK = "ok"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNREACHABLE = "unreachable"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is ApiOutcome.OK


@dataclass
class ChannelRecord:
    """Durable record of one temp voice channel."""

    channel_id: int
    guild_id: int
    owner_id: int
    created_at: int
    settings: dict[str, Any] = field(default_factory=dict)


class OperationResult(NamedTuple):
    """Outcome of a channel operation; ``code`` keys the user-facing message."""

    success: bool
    code: str
    message_kwargs: Mapping[str, Any] = _EMPTY
    metadata: Mapping[str, Any] = _EMPTY

    @classmethod
    def ok(cls, code: str, metadata: dict[str, Any] | None = None, **kwargs: Any) -> "OperationResult":
        return cls(True, code, kwargs, metadata or {})

    @classmethod
    def fail(cls, code: str, metadata: dict[str, Any] | None = None, **kwargs: Any) -> "OperationResult":
        return cls(False, code, kwargs, metadata or {})


class TransferResult(NamedTuple):
    """Owners before and after an ownership change."""

    old_owner_id: int
    new_owner_id: int


class RateLimitResult(NamedTuple):
    """Outcome of a rate-limit check."""

    allowed: bool
    retry_after: float = 0.0
    scope: str | None = None  # "action", "user", "channel", "global", "strict"


@dataclass
class OperationRequest:
    """A single operation invocation, as built by the UI layer."""

    kind: OperationKind
    actor: Any  # discord.Member
    target: Any = None  # discord.Member for member-targeted operations
    value: Any = None  # name/limit/bitrate/region/PrivacyMode/preset name
    interaction_id: int | None = None


# Type aliases
GuildId = int
UserId = int
ChannelId = int
