"""
Utilities Package

Common utilities and helper functions for the temp voice bot.
"""

from .errors import BotError, ConfigError, DatabaseError, InvalidTransferError, ServiceError
from .expiring_set import ExpiringSet
from .keyed_lock import KeyedLock
from .logging import get_logger, setup_logging
from .tasks import run_periodically, spawn
from .types import (
    ApiOutcome,
    ChannelRecord,
    OperationKind,
    OperationRequest,
    OperationResult,
    PrivacyMode,
    RateLimitResult,
    TransferResult,
)

__all__ = [
    "ApiOutcome",
    "BotError",
    "ChannelRecord",
    "ConfigError",
    "DatabaseError",
    "ExpiringSet",
    "InvalidTransferError",
    "KeyedLock",
    "OperationKind",
    "OperationRequest",
    "OperationResult",
    "PrivacyMode",
    "RateLimitResult",
    "ServiceError",
    "TransferResult",
    "get_logger",
    "run_periodically",
    "setup_logging",
    "spawn",
]
