"""Content policy for application messages.

Contact details (phone numbers, links, e-mail addresses and their usual
obfuscations) must not appear in messages so that communication stays
on-platform until the customer accepts an application.
"""

import re
from typing import Optional

from trudify.services.marketplace_db import MarketplaceValidationError

MESSAGE_MAX_LENGTH = 200

_PHONE_SEPARATORS = re.compile(r"[\s\-._*()\[\]/\\]")
# Seven or more digits once separators are gone; shorter runs are years, zip codes, prices.
_CONSECUTIVE_DIGITS = re.compile(r"\d{7,}")

_TLDS = "com|net|org|bg|info|io|co|me|online|ru|ua|eu|uk|de|fr|app|dev|xyz|site|website|link|click"
_URL = re.compile(rf"(https?://\S+)|(www\.\S+)|([a-z0-9]+\.({_TLDS})\S*)", re.IGNORECASE)
_DOT_OBFUSCATION = re.compile(r"\b(dot|d0t|точка|тчк|\.\s)\s*(com|net|org|bg|info|io|ru|ua)\b", re.IGNORECASE)
_SOCIAL_HANDLE = re.compile(
    r"\b(instagram|telegram|viber|whatsapp|facebook|fb|tg|ig)[\s.:@/]+[a-z0-9_]+",
    re.IGNORECASE,
)

_EMAIL = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}", re.IGNORECASE)
_AT_OBFUSCATION = re.compile(
    r"\b(at|собака|sobaka)\s*(gmail|yahoo|hotmail|abv|mail|outlook|proton|icloud|yandex)",
    re.IGNORECASE,
)
_SPACED_AT = re.compile(r"[a-z0-9._%+-]+\s*@\s*[a-z0-9.-]+", re.IGNORECASE)


class MessagePolicyError(MarketplaceValidationError):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


def contains_phone_number(text: str) -> bool:
    normalized = _PHONE_SEPARATORS.sub("", text)
    return bool(_CONSECUTIVE_DIGITS.search(normalized))


def contains_url(text: str) -> bool:
    return bool(_URL.search(text) or _DOT_OBFUSCATION.search(text) or _SOCIAL_HANDLE.search(text))


def contains_email(text: str) -> bool:
    return bool(_EMAIL.search(text) or _AT_OBFUSCATION.search(text) or _SPACED_AT.search(text))


def check_message(message: Optional[str]) -> Optional[str]:
    """Return the violation code for a message, or None when it is acceptable."""
    if not message:
        return None
    if len(message) > MESSAGE_MAX_LENGTH:
        return "message_too_long"
    if contains_phone_number(message):
        return "contains_phone"
    # E-mail before URL: "name@gmail.com" also looks like a bare domain.
    if contains_email(message):
        return "contains_email"
    if contains_url(message):
        return "contains_url"
    return None


_VIOLATION_MESSAGES = {
    "message_too_long": f"Message must be at most {MESSAGE_MAX_LENGTH} characters",
    "contains_phone": "Messages cannot contain phone numbers",
    "contains_email": "Messages cannot contain email addresses",
    "contains_url": "Messages cannot contain links or social media handles",
}


def enforce_message_policy(message: Optional[str]) -> None:
    code = check_message(message)
    if code:
        raise MessagePolicyError(_VIOLATION_MESSAGES[code], code)
