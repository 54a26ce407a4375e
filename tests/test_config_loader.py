"""
Config loader tests: YAML loading, degraded modes, dotted lookups and the
environment overrides applied to voice settings.
"""

import pytest
import yaml

from config.config_loader import ConfigLoader, VoiceSettings
from utils.errors import ConfigError

OVERRIDE_VARS = (
    "CONFIG_PATH",
    "GUILD_ID",
    "CATEGORY_CHANNEL_ID",
    "VOICE_CHANNEL_ID",
    "EMBED_CHANNEL_ID",
    "LOG_CHANNEL_ID",
    "RATE_LIMIT_WINDOW",
    "RATE_LIMIT_MAX_REQUESTS",
    "DEBUG_MODE",
    "LOG_LEVEL",
    "ERROR_WEBHOOK_URL",
)


@pytest.fixture(autouse=True)
def clean_loader(monkeypatch):
    for name in OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


def write_config(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


class TestConfigLoading:
    def test_load_valid_config(self, tmp_path):
        path = write_config(tmp_path, {"voice": {"category_id": 123}})
        config = ConfigLoader.load_config(path)

        assert config["voice"]["category_id"] == 123
        assert ConfigLoader.get_config_status()["config_status"] == "ok"

    def test_missing_file_is_degraded(self, tmp_path):
        config = ConfigLoader.load_config(str(tmp_path / "nope.yaml"))

        assert config == {}
        assert ConfigLoader.get_config_status()["config_status"] == "degraded"

    def test_broken_yaml_is_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("voice: [unclosed", encoding="utf-8")

        assert ConfigLoader.load_config(str(path)) == {}
        assert ConfigLoader.get_config_status()["config_status"] == "error"

    def test_non_mapping_is_degraded(self, tmp_path):
        path = write_config(tmp_path, ["a", "b"])

        assert ConfigLoader.load_config(path) == {}
        assert ConfigLoader.get_config_status()["config_status"] == "degraded"

    def test_config_path_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONFIG_PATH", write_config(tmp_path, {"x": 1}))
        assert ConfigLoader.load_config()["x"] == 1

    def test_dotted_get(self, tmp_path):
        ConfigLoader.load_config(write_config(tmp_path, {"a": {"b": {"c": 5}}, "flat": 1}))

        assert ConfigLoader.get("a.b.c") == 5
        assert ConfigLoader.get("flat") == 1
        assert ConfigLoader.get("a.missing", "dflt") == "dflt"
        assert ConfigLoader.get("flat.deeper") is None


class TestLogLevel:
    def test_invalid_level_falls_back_to_info(self, tmp_path):
        ConfigLoader.load_config(write_config(tmp_path, {"logging": {"level": "LOUD"}}))
        assert ConfigLoader.log_level() == "INFO"

    def test_env_wins_over_yaml(self, tmp_path, monkeypatch):
        ConfigLoader.load_config(write_config(tmp_path, {"logging": {"level": "ERROR"}}))
        assert ConfigLoader.log_level() == "ERROR"

        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert ConfigLoader.log_level() == "WARNING"

        monkeypatch.setenv("DEBUG_MODE", "true")
        assert ConfigLoader.log_level() == "DEBUG"


class TestVoiceSettings:
    def test_defaults_without_config(self, tmp_path):
        ConfigLoader.load_config(str(tmp_path / "nope.yaml"))
        settings = ConfigLoader.voice_settings()

        assert settings == VoiceSettings()

    def test_yaml_values(self, tmp_path):
        ConfigLoader.load_config(
            write_config(
                tmp_path,
                {
                    "voice": {
                        "guild_id": "1",
                        "category_id": 2,
                        "lobby_channel_id": 3,
                        "channel_name_suffix": "'s vc",
                        "delete_grace_seconds": 2,
                    },
                    "rate_limits": {"window_seconds": 30, "max_requests": 4},
                    "cache": {"ttl_seconds": 10},
                    "analytics": {"retention_days": 7},
                },
            )
        )
        settings = ConfigLoader.voice_settings()

        assert (settings.guild_id, settings.category_id, settings.lobby_channel_id) == (1, 2, 3)
        assert settings.channel_name_suffix == "'s vc"
        assert settings.delete_grace_seconds == 2.0
        assert (settings.rate_limit_window, settings.rate_limit_max_requests) == (30, 4)
        assert settings.cache_ttl_seconds == 10
        assert settings.metrics_retention_days == 7

    def test_environment_overrides(self, tmp_path, monkeypatch):
        ConfigLoader.load_config(
            write_config(tmp_path, {"voice": {"category_id": 2, "lobby_channel_id": 3}})
        )
        monkeypatch.setenv("CATEGORY_CHANNEL_ID", "20")
        monkeypatch.setenv("VOICE_CHANNEL_ID", "30")
        monkeypatch.setenv("EMBED_CHANNEL_ID", "40")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "7")
        monkeypatch.setenv("DEBUG_MODE", "1")
        monkeypatch.setenv("ERROR_WEBHOOK_URL", "https://example.invalid/hook")

        settings = ConfigLoader.voice_settings()

        assert settings.category_id == 20
        assert settings.lobby_channel_id == 30
        assert settings.panel_channel_id == 40
        assert settings.rate_limit_max_requests == 7
        assert settings.debug_mode is True
        assert settings.error_webhook_url == "https://example.invalid/hook"

    def test_bad_env_keeps_yaml_value(self, tmp_path, monkeypatch):
        ConfigLoader.load_config(write_config(tmp_path, {"voice": {"category_id": 2}}))
        monkeypatch.setenv("CATEGORY_CHANNEL_ID", "not-a-number")

        assert ConfigLoader.voice_settings().category_id == 2

    def test_malformed_section_raises(self, tmp_path):
        ConfigLoader.load_config(write_config(tmp_path, {"voice": ["not", "a", "mapping"]}))

        with pytest.raises(ConfigError):
            ConfigLoader.voice_settings()
