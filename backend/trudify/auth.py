import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from trudify.dependencies import ServiceContainer, get_services


@dataclass
class Actor:
    user_id: str
    auth_method: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def create_access_token(user_id: str, secret: str, ttl_hours: int) -> tuple[str, int]:
    expiry = datetime.now(timezone.utc) + timedelta(hours=ttl_hours)
    payload = f"{user_id}|{int(expiry.timestamp())}".encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return f"{_b64url(payload)}.{_b64url(sig)}", ttl_hours * 3600


def verify_access_token(token: str, secret: str) -> Optional[str]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        sent_sig = _b64urldecode(sig_part)
    except (ValueError, binascii.Error):
        return None
    expected_sig = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    if not hmac.compare_digest(sent_sig, expected_sig):
        return None
    try:
        user_id, expiry_ts = payload.decode("utf-8").split("|", 1)
        expired = datetime.now(timezone.utc).timestamp() > int(expiry_ts)
    except ValueError:
        return None
    return None if expired else user_id


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_actor(
    services: ServiceContainer,
    authorization: Optional[str],
    notification_token: Optional[str],
) -> Optional[Actor]:
    token = parse_bearer_token(authorization)
    if token:
        user_id = verify_access_token(token, services.settings.auth_secret)
        if user_id:
            return Actor(user_id=user_id, auth_method="session")
    if notification_token:
        user_id = services.magic_links.validate(notification_token.strip())
        if user_id:
            return Actor(user_id=user_id, auth_method="notification")
    return None


def require_actor(
    authorization: Optional[str] = Header(default=None),
    x_notification_token: Optional[str] = Header(default=None),
    services: ServiceContainer = Depends(get_services),
) -> Actor:
    actor = resolve_actor(services, authorization, x_notification_token)
    if actor is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing credentials")
    return actor
