"""
Database Helper Module

Provides a centralized database interface for the temp voice bot using aiosqlite.
Handles connection settings and schema initialization.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager

import aiosqlite

from utils.errors import DatabaseError
from utils.logging import get_logger

from .schema import init_schema

logger = get_logger(__name__)


class Database:
    _db_path: str = "tempvoice.db"
    _lock = asyncio.Lock()  # Ensures that only one initialization happens
    _initialized = False

    @classmethod
    async def initialize(cls, db_path: str | None = None) -> None:
        async with cls._lock:
            if cls._initialized:
                return
            if db_path:
                cls._db_path = db_path
            try:
                async with aiosqlite.connect(cls._db_path) as db:
                    await db.execute("PRAGMA foreign_keys=ON")
                    await init_schema(db)
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to initialize database at {cls._db_path}") from exc
            cls._initialized = True
            logger.info("Database initialized.")

    @classmethod
    @asynccontextmanager
    async def get_connection(cls):
        """
        Get a connection to the database with optimized settings.

        Usage:
            async with Database.get_connection() as db:
                await db.execute("SELECT * FROM channels")
        """
        if not cls._initialized:
            await cls.initialize()
        async with aiosqlite.connect(cls._db_path) as db:
            await db.execute("PRAGMA busy_timeout=5000")
            await db.execute("PRAGMA foreign_keys=ON")
            try:
                await db.execute("PRAGMA journal_mode=WAL")
            except sqlite3.OperationalError as exc:
                # WAL transition can fail briefly if another writer holds a lock; retry once
                if "database is locked" in str(exc).lower():
                    await asyncio.sleep(0.05)
                    await db.execute("PRAGMA journal_mode=WAL")
                else:
                    raise
            await db.execute("PRAGMA synchronous=NORMAL")
            db.row_factory = aiosqlite.Row
            yield db

    @classmethod
    async def ping(cls) -> bool:
        """Cheap connectivity probe for health endpoints."""
        try:
            async with cls.get_connection() as db:
                cursor = await db.execute("SELECT 1")
                return (await cursor.fetchone()) is not None
        except (sqlite3.Error, DatabaseError):
            logger.warning("Database ping failed", exc_info=True)
            return False

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized
