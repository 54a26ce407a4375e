"""
Custom exception classes for the temp voice bot.

User-facing rejections are returned as OperationResult codes; these exceptions
are reserved for configuration, storage and integration faults.
"""


class BotError(Exception):
    """Base exception for bot-related errors."""

    pass


class ConfigError(BotError):
    """Exception raised for configuration-related errors."""

    pass


class DatabaseError(BotError):
    """Exception raised for database-related errors."""

    pass


class ServiceError(BotError):
    """Exception raised for service-related errors."""

    pass


class InvalidTransferError(ServiceError):
    """Ownership transfer attempted on an unregistered channel or with a malformed owner id."""

    def __init__(self, channel_id: int, new_owner_id: object, reason: str) -> None:
        super().__init__(f"Cannot transfer channel {channel_id} to {new_owner_id!r}: {reason}")
        self.channel_id = channel_id
        self.new_owner_id = new_owner_id
        self.reason = reason
