"""Configuration loading.

Values come from a JSON config file and the environment. A ``.env`` file
is loaded first, and environment variables always win over the file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from showtime_monitor.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("./config.json")
DEFAULT_DATABASE_PATH = "./amc-monitor.db"

DEFAULT_TITLE_MATCH_THRESHOLD = 0.4
DEFAULT_LOCATION_MATCH_THRESHOLD = 0.6
DEFAULT_SEND_DELAY_SECONDS = 0.5
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0

# (config path, env var) for every required field
_REQUIRED = (
    ("theatre", "THEATRE"),
    ("telegram.botToken", "TELEGRAM_BOT_TOKEN"),
    ("telegram.chatId", "TELEGRAM_CHAT_ID"),
    ("amcApiKey", "AMC_API_KEY"),
)


@dataclass(frozen=True)
class AppConfig:
    theatre: str
    telegram_bot_token: str
    telegram_chat_id: str
    amc_api_key: str
    database_path: str = DEFAULT_DATABASE_PATH
    title_match_threshold: float = DEFAULT_TITLE_MATCH_THRESHOLD
    location_match_threshold: float = DEFAULT_LOCATION_MATCH_THRESHOLD
    send_delay_seconds: float = DEFAULT_SEND_DELAY_SECONDS
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS

    def to_dict(self) -> dict:
        """Render the config in the JSON layout read by ``load_config``."""
        return {
            "theatre": self.theatre,
            "telegram": {
                "botToken": self.telegram_bot_token,
                "chatId": self.telegram_chat_id,
            },
            "amcApiKey": self.amc_api_key,
            "databasePath": self.database_path,
            "titleMatchThreshold": self.title_match_threshold,
            "locationMatchThreshold": self.location_match_threshold,
            "sendDelaySeconds": self.send_delay_seconds,
            "httpTimeoutSeconds": self.http_timeout_seconds,
        }


def template_config() -> dict:
    """Config document written by ``create-config``."""
    return AppConfig(
        theatre="AMC Lincoln Square 13",
        telegram_bot_token="123456789:your-bot-token",
        telegram_chat_id="your-chat-id",
        amc_api_key="your-amc-vendor-key",
    ).to_dict()


def _read_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to parse config file at {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file at {path} must contain a JSON object")
    return raw


def _env(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _pick_str(env_name: str, file_value) -> str:
    env_value = _env(env_name)
    if env_value is not None:
        return env_value
    if file_value is None:
        return ""
    return str(file_value).strip()


def _pick_float(env_name: str, file_value, default: float, field: str) -> float:
    raw = _env(env_name)
    if raw is None:
        raw = file_value
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{field}: expected a number, got {raw!r}") from None


def _check_threshold(field: str, value: float) -> None:
    if not 0.0 < value <= 1.0:
        raise ConfigError(f"{field}: must be in (0, 1], got {value}")


def _database_path_from(raw: dict) -> str:
    return _pick_str("DATABASE_PATH", raw.get("databasePath")) or DEFAULT_DATABASE_PATH


def resolve_database_path(path: str | Path | None = None) -> str:
    """Database location for commands that never touch Telegram or the catalog.

    Reads the same sources as ``load_config`` but skips the required fields.
    """
    load_dotenv()
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    return _database_path_from(_read_file(config_path))


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate configuration.

    Raises ConfigError listing every missing required field.
    """
    load_dotenv()

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    raw = _read_file(config_path)
    telegram = raw.get("telegram") or {}
    if not isinstance(telegram, dict):
        raise ConfigError("telegram: expected an object with botToken and chatId")

    values = {
        "theatre": _pick_str("THEATRE", raw.get("theatre")),
        "telegram.botToken": _pick_str("TELEGRAM_BOT_TOKEN", telegram.get("botToken")),
        "telegram.chatId": _pick_str("TELEGRAM_CHAT_ID", telegram.get("chatId")),
        "amcApiKey": _pick_str("AMC_API_KEY", raw.get("amcApiKey")),
    }

    missing = [
        f"{field}: cannot be empty" for field, _ in _REQUIRED if not values[field]
    ]
    if missing:
        source = (
            f"config file ({config_path}) and environment variables"
            if config_path.exists()
            else "environment variables only"
        )
        env_names = "\n".join(f"- {env}" for _, env in _REQUIRED)
        raise ConfigError(
            f"Config validation failed using {source}:\n"
            + "\n".join(missing)
            + f"\n\nRequired environment variables:\n{env_names}"
        )

    title_threshold = _pick_float(
        "TITLE_MATCH_THRESHOLD",
        raw.get("titleMatchThreshold"),
        DEFAULT_TITLE_MATCH_THRESHOLD,
        "titleMatchThreshold",
    )
    location_threshold = _pick_float(
        "LOCATION_MATCH_THRESHOLD",
        raw.get("locationMatchThreshold"),
        DEFAULT_LOCATION_MATCH_THRESHOLD,
        "locationMatchThreshold",
    )
    _check_threshold("titleMatchThreshold", title_threshold)
    _check_threshold("locationMatchThreshold", location_threshold)

    send_delay = _pick_float(
        "SEND_DELAY_SECONDS",
        raw.get("sendDelaySeconds"),
        DEFAULT_SEND_DELAY_SECONDS,
        "sendDelaySeconds",
    )
    if send_delay < 0:
        raise ConfigError(f"sendDelaySeconds: must not be negative, got {send_delay}")

    http_timeout = _pick_float(
        "HTTP_TIMEOUT_SECONDS",
        raw.get("httpTimeoutSeconds"),
        DEFAULT_HTTP_TIMEOUT_SECONDS,
        "httpTimeoutSeconds",
    )
    if http_timeout <= 0:
        raise ConfigError(f"httpTimeoutSeconds: must be positive, got {http_timeout}")

    database_path = _database_path_from(raw)

    config = AppConfig(
        theatre=values["theatre"],
        telegram_bot_token=values["telegram.botToken"],
        telegram_chat_id=values["telegram.chatId"],
        amc_api_key=values["amcApiKey"],
        database_path=database_path,
        title_match_threshold=title_threshold,
        location_match_threshold=location_threshold,
        send_delay_seconds=send_delay,
        http_timeout_seconds=http_timeout,
    )
    logger.debug("Config loaded (theatre=%s, db=%s)", config.theatre, database_path)
    return config
