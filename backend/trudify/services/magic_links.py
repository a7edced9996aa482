import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from trudify.services.marketplace_db import (
    MarketplaceDB,
    MarketplaceValidationError,
    parse_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

NOTIFICATION_CHANNELS = ("telegram", "viber", "email", "sms", "whatsapp")
TOKEN_TTL_DAYS = 7
SESSION_QUERY_PARAM = "notificationSession"


class MagicLinkService:
    """Reusable auto-login tokens embedded in notification links."""

    def __init__(self, db: MarketplaceDB, base_url: str, ttl_days: int = TOKEN_TTL_DAYS) -> None:
        self.db = db
        self.base_url = base_url.rstrip("/")
        self.ttl_days = ttl_days

    def create_token(self, user_id: str, channel: str, redirect_url: Optional[str] = None) -> str:
        if channel not in NOTIFICATION_CHANNELS:
            raise MarketplaceValidationError(f"Unsupported notification channel: {channel}")
        token = secrets.token_urlsafe(32)
        now = utc_now()
        with self.db.connect() as conn:
            conn.execute(
                """
                INSERT INTO notification_session_tokens (token, user_id, channel, redirect_url, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    token,
                    user_id,
                    channel,
                    redirect_url,
                    (now + timedelta(days=self.ttl_days)).isoformat(),
                    now.isoformat(),
                ),
            )
        return token

    def generate_auto_login_url(self, user_id: str, channel: str, destination_path: str) -> str:
        if not destination_path.startswith("/"):
            destination_path = f"/{destination_path}"
        token = self.create_token(user_id, channel, redirect_url=destination_path)
        scheme, netloc, path, query, fragment = urlsplit(f"{self.base_url}{destination_path}")
        params = [(key, value) for key, value in parse_qsl(query) if key != SESSION_QUERY_PARAM]
        params.append((SESSION_QUERY_PARAM, token))
        return urlunsplit((scheme, netloc, path, urlencode(params), fragment))

    def validate(self, token: str) -> Optional[str]:
        if not token:
            return None
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT user_id, expires_at FROM notification_session_tokens WHERE token = ?",
                (token,),
            ).fetchone()
        if row is None:
            return None
        expires_at = parse_iso(row["expires_at"])
        if expires_at is None or expires_at < utc_now():
            logger.info("Notification session token expired for user %s", row["user_id"])
            return None
        return str(row["user_id"])
