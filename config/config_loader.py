# Config/config_loader.py

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import yaml


def _get_project_root() -> Path:
    """Derive project root from this file's location: config/config_loader.py -> project root."""
    return Path(__file__).resolve().parent.parent


def _env_int(name: str, fallback: int | None) -> int | None:
    """Read an integer from the environment, keeping the fallback on bad input."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return fallback
    try:
        return int(raw.strip())
    except ValueError:
        logging.warning("Environment variable %s is not an integer: %r", name, raw)
        return fallback


def _coerce_id(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logging.warning("Ignoring non-numeric id in config: %r", value)
        return None


@dataclass
class VoiceSettings:
    """Resolved voice settings (YAML merged with environment overrides)."""

    guild_id: int | None = None
    category_id: int | None = None
    lobby_channel_id: int | None = None
    panel_channel_id: int | None = None
    log_channel_id: int | None = None
    channel_name_suffix: str = " - room"
    delete_grace_seconds: float = 0.5
    sweep_interval_seconds: int = 300
    rate_limit_window: int = 60
    rate_limit_max_requests: int = 10
    cache_ttl_seconds: int = 300
    cache_cleanup_interval_seconds: int = 60
    metrics_retention_days: int = 30
    debug_mode: bool = False
    error_webhook_url: str | None = None


class ConfigLoader:
    """
    Singleton class to load and provide access to configuration data.

    Observability:
        - Logs INFO on successful config load with path
        - Logs WARNING on missing config file (degraded mode)
        - Logs ERROR on YAML parse errors
        - Tracks config_status for health reporting
    """

    _config: ClassVar[dict[str, Any]] = {}
    _config_status: ClassVar[str] = "not_loaded"  # "ok", "degraded", "error"
    _config_path: ClassVar[str | None] = None

    @classmethod
    def load_config(cls, config_path: str | None = None) -> dict[str, Any]:
        """Load the configuration from a YAML file if not already loaded.

        Args:
            config_path: Path to the configuration file. If not provided,
                uses CONFIG_PATH env var or defaults to project_root/config/config.yaml.

        Returns:
            Dict[str, Any]: Loaded configuration dictionary.
        """
        if not cls._config:
            # Resolve config path with priority: explicit arg > env var > default
            if config_path is None:
                config_path = os.environ.get("CONFIG_PATH")
                if config_path:
                    logging.info(
                        "Config path overridden via CONFIG_PATH env: %s", config_path
                    )

            if config_path is None:
                config_path = str(_get_project_root() / "config" / "config.yaml")

            cls._config_path = config_path

            try:
                with Path(config_path).open(encoding="utf-8") as file:
                    cls._config = yaml.safe_load(file) or {}

                if not isinstance(cls._config, dict):
                    logging.warning(
                        "Configuration file didn't contain a mapping; "
                        "using empty config."
                    )
                    cls._config = {}
                    cls._config_status = "degraded"
                else:
                    cls._config_status = "ok"
                    logging.info(
                        "Configuration loaded successfully from %s", config_path
                    )

                cls._validate_logging_level()

            except FileNotFoundError:
                logging.warning(
                    "Configuration file not found at path: %s; "
                    "using empty/default config (degraded mode).",
                    config_path,
                )
                cls._config = {}
                cls._config_status = "degraded"
            except yaml.YAMLError as e:
                logging.exception(
                    "Error parsing configuration YAML at %s: %s; "
                    "using empty/default config.",
                    config_path,
                    e,
                )
                cls._config = {}
                cls._config_status = "error"
            except UnicodeDecodeError as e:
                logging.exception(
                    "Encoding error reading configuration at %s: %s; "
                    "using empty/default config.",
                    config_path,
                    e,
                )
                cls._config = {}
                cls._config_status = "error"
        return cls._config

    @classmethod
    def get_config_status(cls) -> dict[str, Any]:
        """Return config health status for observability endpoints."""
        return {
            "config_status": cls._config_status,
            "config_path": cls._config_path,
            "config_loaded": bool(cls._config),
        }

    @classmethod
    def _validate_logging_level(cls) -> None:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        logging_config = cls._config.get("logging") or {}
        level = str(logging_config.get("level", "INFO")).upper()
        if level not in valid_levels:
            logging.warning(
                f"Invalid logging level '{level}' in config. Defaulting to 'INFO'."
            )
            logging_cfg = cls._config.setdefault("logging", {})
            logging_cfg["level"] = "INFO"

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieves a value from the configuration.

        Dotted keys walk nested sections, e.g. ``voice.category_id``.
        """
        node: Any = cls._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    @classmethod
    def _section(cls, key: str) -> dict[str, Any]:
        # utils imports this module for logging setup
        from utils.errors import ConfigError

        section = cls.get(key) or {}
        if not isinstance(section, dict):
            raise ConfigError(
                f"Config section '{key}' must be a mapping, got {type(section).__name__}"
            )
        return section

    @classmethod
    def log_level(cls) -> str:
        """Effective log level: LOG_LEVEL / DEBUG_MODE env win over YAML."""
        if os.environ.get("DEBUG_MODE", "").lower() in {"1", "true", "yes"}:
            return "DEBUG"
        env_level = os.environ.get("LOG_LEVEL")
        if env_level:
            return env_level.upper()
        return str(cls.get("logging.level", "INFO")).upper()

    @classmethod
    def voice_settings(cls) -> VoiceSettings:
        """Build VoiceSettings from the YAML ``voice``/``rate_limits``/``cache`` sections plus env."""
        cls.load_config()
        voice = cls._section("voice")
        limits = cls._section("rate_limits")
        cache = cls._section("cache")

        settings = VoiceSettings(
            guild_id=_env_int("GUILD_ID", _coerce_id(voice.get("guild_id"))),
            category_id=_env_int(
                "CATEGORY_CHANNEL_ID", _coerce_id(voice.get("category_id"))
            ),
            lobby_channel_id=_env_int(
                "VOICE_CHANNEL_ID", _coerce_id(voice.get("lobby_channel_id"))
            ),
            panel_channel_id=_env_int(
                "EMBED_CHANNEL_ID", _coerce_id(voice.get("panel_channel_id"))
            ),
            log_channel_id=_env_int(
                "LOG_CHANNEL_ID", _coerce_id(voice.get("log_channel_id"))
            ),
            channel_name_suffix=voice.get("channel_name_suffix", " - room"),
            delete_grace_seconds=float(voice.get("delete_grace_seconds", 0.5)),
            sweep_interval_seconds=int(voice.get("sweep_interval_seconds", 300)),
            rate_limit_window=_env_int(
                "RATE_LIMIT_WINDOW", int(limits.get("window_seconds", 60))
            )
            or 60,
            rate_limit_max_requests=_env_int(
                "RATE_LIMIT_MAX_REQUESTS", int(limits.get("max_requests", 10))
            )
            or 10,
            cache_ttl_seconds=int(cache.get("ttl_seconds", 300)),
            cache_cleanup_interval_seconds=int(cache.get("cleanup_interval_seconds", 60)),
            metrics_retention_days=int(cls.get("analytics.retention_days", 30)),
            debug_mode=os.environ.get("DEBUG_MODE", "").lower() in {"1", "true", "yes"},
            error_webhook_url=os.environ.get("ERROR_WEBHOOK_URL") or None,
        )

        if settings.category_id is None:
            logging.warning("No voice category configured; temp channels cannot be managed")
        if settings.lobby_channel_id is None:
            logging.warning("No lobby channel configured; channel creation is disabled")
        return settings

    @classmethod
    def reset(cls) -> None:
        """Reset the config loader state (useful for testing)."""
        cls._config = {}
        cls._config_status = "not_loaded"
        cls._config_path = None
