import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

DEFAULT_DB_PATH = str(Path(__file__).resolve().parents[1] / "data" / "trudify.sqlite3")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    db_path: str = DEFAULT_DB_PATH
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    trusted_hosts: List[str] = field(default_factory=lambda: ["*"])
    auth_secret: str = "dev-insecure-secret-change-me"
    auth_token_ttl_hours: int = 24
    auth_demo_password: str = "trudify-demo"
    base_url: str = "https://trudify.com"
    telegram_bot_token: str = ""
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "notifications@trudify.com"
    auto_invite_enabled: bool = True
    auto_invite_max_per_task: int = 10
    withdrawal_monthly_limit: int = 2
    seed_demo_data: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=os.getenv("TRUDIFY_DB_PATH", DEFAULT_DB_PATH),
            environment=os.getenv("TRUDIFY_ENV", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=_parse_csv_env("CORS_ORIGINS", "*"),
            trusted_hosts=_parse_csv_env("TRUSTED_HOSTS", "*"),
            auth_secret=os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me"),
            auth_token_ttl_hours=_env_int("AUTH_TOKEN_TTL_HOURS", 24),
            auth_demo_password=os.getenv("AUTH_DEMO_PASSWORD", "trudify-demo"),
            base_url=os.getenv("BASE_URL", "https://trudify.com").rstrip("/"),
            telegram_bot_token=os.getenv("TG_BOT_TOKEN", "").strip(),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY", "").strip(),
            sendgrid_from_email=os.getenv("SENDGRID_FROM_EMAIL", "notifications@trudify.com"),
            auto_invite_enabled=_env_bool("AUTO_INVITE_ENABLED", True),
            auto_invite_max_per_task=_env_int("AUTO_INVITE_MAX_PER_TASK", 10),
            withdrawal_monthly_limit=_env_int("WITHDRAWAL_MONTHLY_LIMIT", 2),
            seed_demo_data=_env_bool("SEED_DEMO_DATA", False),
        )
