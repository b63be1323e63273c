import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError

REQUIRED = ("BOT_TOKEN", "BASE_URL", "CHANNEL_ID")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_PORT = 3000
DEFAULT_DOWNLOAD_DIR = "./downloads"
DEFAULT_PHOTO_URL = "https://graph.org/file/4e8a1172e8ba4b7a0bdfa.jpg"
DEFAULT_DOWNLOAD_TIMEOUT = 60


@dataclass(frozen=True)
class Settings:
    bot_token: str
    base_url: str
    channel_id: str
    port: int = DEFAULT_PORT
    download_dir: str = DEFAULT_DOWNLOAD_DIR
    photo_url: str = DEFAULT_PHOTO_URL
    join_channel_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    retention_hours: Optional[float] = None
    log_level: str = "INFO"

    @property
    def webhook_url(self) -> str:
        return f"{self.base_url}/webhook"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment, failing on anything missing or malformed."""
        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED if not env.get(name, "").strip()]
        if missing:
            raise ConfigError(f"{', '.join(missing)} is not set!")

        log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

        return cls(
            bot_token=env["BOT_TOKEN"].strip(),
            base_url=env["BASE_URL"].strip().rstrip("/"),
            channel_id=env["CHANNEL_ID"].strip(),
            port=_number(env, "PORT", DEFAULT_PORT, int),
            download_dir=env.get("DOWNLOAD_DIR") or DEFAULT_DOWNLOAD_DIR,
            photo_url=env.get("PHOTO_URL") or DEFAULT_PHOTO_URL,
            join_channel_url=env.get("JOIN_CHANNEL_URL") or None,
            webhook_secret=env.get("WEBHOOK_SECRET") or None,
            download_timeout=_number(env, "DOWNLOAD_TIMEOUT", DEFAULT_DOWNLOAD_TIMEOUT, float),
            retention_hours=_number(env, "RETENTION_HOURS", None, float),
            log_level=log_level,
        )


def _number(env, name, default, kind):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value
