"""Environment-based configuration for the API service."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class Settings:
    """API configuration loaded from environment variables."""

    def __init__(self):
        self.api_secret = os.getenv("CE_API_SECRET", "")
        if not self.api_secret:
            logger.warning("CE_API_SECRET is not set; write endpoints are unauthenticated")
        self.host = os.getenv("CE_API_HOST", "0.0.0.0")
        self.port = int(os.getenv("CE_API_PORT", "8000"))
        self.data_path = os.getenv(
            "CE_DATA_PATH",
            str(Path.home() / ".commission-engine" / "data"),
        )
        self.config_path = os.getenv(
            "CE_CONFIG_PATH",
            str(Path.home() / ".commission-engine" / "config.json"),
        )
        self.scheduler_enabled = (
            os.getenv("CE_SCHEDULER_ENABLED", "false").lower() == "true"
        )
        self.debug = os.getenv("CE_ENGINE_ENV", "production") != "production"


_settings = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


class _SettingsProxy:
    """Lazy proxy so settings aren't loaded until first access."""

    def __getattr__(self, name):
        return getattr(_get_settings(), name)


settings = _SettingsProxy()
