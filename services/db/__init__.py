"""
Database Package

Database access layer for the temp voice bot.
"""

from .channel_repository import ChannelRepository
from .database import Database
from .repository import (
    BaseRepository,
    encode_json,
    parse_json_dict,
    parse_snowflake,
)
from .schema import init_schema

__all__ = [
    "BaseRepository",
    "ChannelRepository",
    "Database",
    "encode_json",
    "init_schema",
    "parse_json_dict",
    "parse_snowflake",
]
