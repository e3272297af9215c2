import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


class ConfigError(RuntimeError):
    pass


@dataclass
class Settings:
    bot_token: str
    original_admin_id: str
    admin_db_path: Path = Path("storage/admins.db")
    telegram_api_base_url: str = "https://api.telegram.org"
    storage_dir: Path = Path("storage")
    update_mode: str = "polling"  # "polling" or "webhook"
    rename_timeout_seconds: float = 60.0
    navigation_timeout_ms: int = 120000
    host: str = "0.0.0.0"
    port: int = 10000
    webhook_secret: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        token = (env.get("BOT_TOKEN") or "").strip()
        original = (env.get("ORIGINAL_ADMIN_ID") or "").strip()
        missing = [name for name, value in (("BOT_TOKEN", token), ("ORIGINAL_ADMIN_ID", original)) if not value]
        if missing:
            raise ConfigError(f"missing required environment variables: {', '.join(missing)}")
        mode = (env.get("UPDATE_MODE") or "polling").strip().lower()
        if mode not in {"polling", "webhook"}:
            raise ConfigError(f"UPDATE_MODE must be 'polling' or 'webhook', got {mode!r}")
        try:
            rename_timeout = float(env.get("RENAME_TIMEOUT_SECONDS") or 60)
            navigation_timeout = int(env.get("NAVIGATION_TIMEOUT_MS") or 120000)
            port = int(env.get("PORT") or 10000)
        except ValueError as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e
        if rename_timeout <= 0 or navigation_timeout <= 0:
            raise ConfigError("RENAME_TIMEOUT_SECONDS and NAVIGATION_TIMEOUT_MS must be positive")
        return cls(
            bot_token=token,
            original_admin_id=original,
            admin_db_path=Path(env.get("ADMIN_DB_PATH") or "storage/admins.db"),
            telegram_api_base_url=env.get("TELEGRAM_API_BASE_URL") or "https://api.telegram.org",
            storage_dir=Path(env.get("STORAGE_DIR") or "storage"),
            update_mode=mode,
            rename_timeout_seconds=rename_timeout,
            navigation_timeout_ms=navigation_timeout,
            host=env.get("HOST") or "0.0.0.0",
            port=port,
            webhook_secret=env.get("TELEGRAM_WEBHOOK_SECRET") or None,
        )
