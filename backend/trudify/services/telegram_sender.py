import logging
from typing import Optional

import httpx

from trudify.models import DeliveryResult

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramSender:
    """Bot API client. Sends nothing and reports a skip when no bot token is configured."""

    def __init__(
        self,
        bot_token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._bot_token = bot_token.strip()
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token)

    async def send_message(self, chat_id: int, text: str, parse_mode: str = "HTML") -> DeliveryResult:
        if not self.enabled:
            return DeliveryResult(success=False, skipped=True, skip_reason="not_configured")

        url = f"{TELEGRAM_API_BASE}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
            body = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Telegram delivery to chat %s failed: %s", chat_id, exc.__class__.__name__)
            return DeliveryResult(success=False, error=f"Telegram request failed: {exc.__class__.__name__}")
        except ValueError:
            return DeliveryResult(success=False, error=f"Telegram returned invalid JSON (HTTP {response.status_code})")

        if response.status_code != 200 or not body.get("ok"):
            description = body.get("description") or f"HTTP {response.status_code}"
            logger.warning("Telegram rejected message to chat %s: %s", chat_id, description)
            return DeliveryResult(success=False, error=str(description))

        message_id = (body.get("result") or {}).get("message_id")
        return DeliveryResult(success=True, message_id=str(message_id) if message_id is not None else None)
