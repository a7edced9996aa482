import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from trudify.models import DeliveryResult, NotificationRecord, ProfessionalRecord
from trudify.services.email_sender import EmailSender
from trudify.services.magic_links import MagicLinkService
from trudify.services.marketplace_db import MarketplaceDB, MarketplaceError, MarketplaceNotFoundError
from trudify.services.notification_store import NotificationStore
from trudify.services.telegram_sender import TelegramSender
from trudify.services.translation import normalize_locale, render_notification

logger = logging.getLogger(__name__)

DEFAULT_ROUTING = {
    "task_invitation": "both",
    "application_accepted": "both",
    "task_completed": "both",
    "professional_withdrew": "both",
    "application_received": "in_app",
    "application_rejected": "in_app",
}


@dataclass
class NotificationOutcome:
    record: NotificationRecord
    delivery: Optional[DeliveryResult] = None


def resolve_delivery_channel(notification_type: str, preferences: Dict[str, Any]) -> str:
    prefs = preferences.get(notification_type)
    if isinstance(prefs, dict):
        if prefs.get("telegram") is True:
            return "both"
        if prefs.get("telegram") is False:
            return "in_app"
    return DEFAULT_ROUTING.get(notification_type, "in_app")


class NotificationService:
    def __init__(
        self,
        db: MarketplaceDB,
        store: NotificationStore,
        telegram: TelegramSender,
        email: EmailSender,
        magic_links: MagicLinkService,
        base_url: str,
    ) -> None:
        self.db = db
        self.store = store
        self.telegram = telegram
        self.email = email
        self.magic_links = magic_links
        self.base_url = base_url.rstrip("/")

    def _locale_for(self, user: Optional[ProfessionalRecord]) -> str:
        return normalize_locale(user.preferred_language if user else None)

    def action_path(self, user: Optional[ProfessionalRecord], path: str) -> str:
        return f"/{self._locale_for(user)}{path}"

    async def send_telegram(self, user_id: str, message: str) -> DeliveryResult:
        user = self.db.get_user(user_id)
        if user is None:
            return DeliveryResult(success=False, error="User not found")
        if not user.telegram_id:
            return DeliveryResult(success=False, skipped=True, skip_reason="no_telegram")
        return await self.telegram.send_message(user.telegram_id, message)

    async def send_email(
        self,
        user_id: str,
        template_key: str,
        template_data: Dict[str, str],
        locale: Optional[str] = None,
    ) -> DeliveryResult:
        user = self.db.get_user(user_id)
        if user is None:
            return DeliveryResult(success=False, error="User not found")
        if user.telegram_id:
            return DeliveryResult(success=False, skipped=True, skip_reason="has_telegram")
        if not user.email or not user.is_email_verified:
            return DeliveryResult(success=False, skipped=True, skip_reason="email_not_verified")

        subject, body = render_notification(template_key, locale or user.preferred_language, **template_data)
        link = template_data.get("link")
        if link:
            body = f"{body}\n\n{link}"
        return await self.email.send(user.email, subject, body)

    async def deliver_external(
        self,
        user: ProfessionalRecord,
        notification_type: str,
        template_data: Dict[str, str],
        action_path: Optional[str] = None,
    ) -> DeliveryResult:
        """Telegram when linked, otherwise verified e-mail. Never raises."""
        try:
            return await self._deliver_external(user, notification_type, template_data, action_path)
        except MarketplaceError as exc:
            return DeliveryResult(success=False, error=str(exc))

    async def _deliver_external(
        self,
        user: ProfessionalRecord,
        notification_type: str,
        template_data: Dict[str, str],
        action_path: Optional[str],
    ) -> DeliveryResult:
        locale = self._locale_for(user)
        if user.telegram_id:
            title, message = render_notification(notification_type, locale, **template_data)
            text = f"<b>{title}</b>\n\n{message}"
            if action_path:
                text += "\n\n" + self.magic_links.generate_auto_login_url(user.id, "telegram", action_path)
            return await self.send_telegram(user.id, text)

        data = dict(template_data)
        if action_path and user.email and user.is_email_verified:
            data["link"] = self.magic_links.generate_auto_login_url(user.id, "email", action_path)
        return await self.send_email(user.id, notification_type, data, locale)

    async def notify(
        self,
        user_id: str,
        notification_type: str,
        template_data: Dict[str, str],
        *,
        metadata: Optional[Dict[str, Any]] = None,
        path: Optional[str] = None,
        delivery_channel: Optional[str] = None,
    ) -> NotificationOutcome:
        user = self.db.get_user(user_id)
        if user is None:
            raise MarketplaceNotFoundError(f"Notification recipient not found: {user_id}")

        locale = self._locale_for(user)
        title, message = render_notification(notification_type, locale, **template_data)
        action_path = self.action_path(user, path) if path else None
        record = self.store.create(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            metadata=metadata,
            action_url=f"{self.base_url}{action_path}" if action_path else None,
        )

        channel = delivery_channel or resolve_delivery_channel(notification_type, user.notification_preferences)
        if channel != "both":
            return NotificationOutcome(record=record)

        delivery = await self.deliver_external(user, notification_type, template_data, action_path)
        if not delivery.success and not delivery.skipped:
            logger.warning("External delivery of %s to %s failed: %s", notification_type, user_id, delivery.error)
        return NotificationOutcome(record=record, delivery=delivery)
