"""priceaction — application configuration.

Loads .env variables into a typed config object and reads backtest
settings files.
"""

import json
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from priceaction.backtest.settings import BacktestSettings

logger = logging.getLogger("priceaction")

_ADVISOR_VARS = [
    "ADVISOR_API_KEY",
]


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    log_level: str
    api_host: str
    api_port: int
    advisor_api_key: str | None
    advisor_model: str
    advisor_base_url: str
    settings_path: str | None

    @property
    def advisor_enabled(self) -> bool:
        return bool(self.advisor_api_key)


def load_config(env_path: str | None = None, require_advisor: bool = False) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when
    *require_advisor* is set and the advisor key is absent.
    """
    load_dotenv(dotenv_path=env_path)

    if require_advisor:
        missing = [v for v in _ADVISOR_VARS if not os.environ.get(v)]
        if missing:
            raise ValueError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )

    return Config(
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_host=os.environ.get("API_HOST", "127.0.0.1"),
        api_port=int(os.environ.get("API_PORT", "8080")),
        advisor_api_key=os.environ.get("ADVISOR_API_KEY") or None,
        advisor_model=os.environ.get("ADVISOR_MODEL", "gemini-2.5-flash"),
        advisor_base_url=os.environ.get(
            "ADVISOR_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ),
        settings_path=os.environ.get("BACKTEST_SETTINGS_PATH") or None,
    )


def load_backtest_settings(path: str | None = None) -> BacktestSettings:
    """Load backtest settings from a JSON file.

    Falls back to defaults when *path* is ``None``.  Keys may be camelCase
    or snake_case; unknown keys are logged and ignored.  The result is
    validated before it is returned.
    """
    if path is None:
        return BacktestSettings()

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a JSON object")

    settings = BacktestSettings.from_dict(data)
    settings.validate()
    logger.info("Loaded backtest settings from %s", path)
    return settings
