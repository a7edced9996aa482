import logging
from typing import Optional

import httpx

from trudify.models import DeliveryResult

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailSender:
    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key.strip()
        self.from_email = from_email
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def send(self, to: str, subject: str, text: str) -> DeliveryResult:
        if not self.enabled:
            return DeliveryResult(success=False, skipped=True, skip_reason="not_configured")

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email, "name": "Trudify"},
            "subject": subject,
            "content": [{"type": "text/plain", "value": text}],
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(SENDGRID_SEND_URL, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Email delivery failed: %s", exc.__class__.__name__)
            return DeliveryResult(success=False, error=f"Email request failed: {exc.__class__.__name__}")

        if response.status_code >= 300:
            logger.warning("SendGrid rejected email (HTTP %s)", response.status_code)
            return DeliveryResult(success=False, error=f"SendGrid returned HTTP {response.status_code}")

        return DeliveryResult(success=True, message_id=response.headers.get("x-message-id"))
