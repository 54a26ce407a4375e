import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure project root is on sys.path for CI environments where
# Python might not automatically include it (e.g., some GitHub
# Actions runners invoking pytest differently).
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.config_loader import VoiceSettings
from helpers.rate_limiter import RateLimiter
from services.db.database import Database
from services.service_container import ServiceContainer
from tests.factories import (
    CATEGORY_ID,
    GUILD_ID,
    LOBBY_ID,
    FakeBot,
    FakeGuild,
    RecordingVoiceAPI,
)


class FakeClock:
    """Manually advanced monotonic clock for limiter/cache/guard tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture()
async def temp_db(tmp_path):
    """Initialize Database to a temporary file for isolation across tests."""
    # Save original state
    orig_path = Database._db_path
    orig_initialized = Database._initialized

    # Reset and initialize with temp database
    Database._initialized = False
    db_file = tmp_path / "test.db"
    await Database.initialize(str(db_file))

    # Verify initialization worked
    assert Database._initialized is True
    assert Database._db_path == str(db_file)

    yield str(db_file)

    # Restore original state completely
    Database._db_path = orig_path
    Database._initialized = orig_initialized


@pytest.fixture
def voice_settings() -> VoiceSettings:
    return VoiceSettings(
        guild_id=GUILD_ID,
        category_id=CATEGORY_ID,
        lobby_channel_id=LOBBY_ID,
        channel_name_suffix=" - room",
        delete_grace_seconds=0,
    )


@pytest.fixture
def guild() -> FakeGuild:
    return FakeGuild()


@pytest.fixture
def api() -> RecordingVoiceAPI:
    return RecordingVoiceAPI()


@pytest_asyncio.fixture()
async def services(temp_db, voice_settings, api, guild, clock):
    """A fully initialized ServiceContainer wired to the fake guild."""
    bot = FakeBot(guilds=[guild])
    container = ServiceContainer(
        bot, settings=voice_settings, api=api, limiter=RateLimiter(clock=clock)
    )
    bot.services = container
    await container.initialize()
    yield container
    await container.voice.drain_background_tasks()
    await container.cleanup()
