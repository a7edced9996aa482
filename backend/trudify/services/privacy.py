import logging
from typing import Any, Iterable, List, Mapping, Union

from pydantic import BaseModel

from trudify.models import Professional, ProfessionalRecord

logger = logging.getLogger(__name__)

PUBLIC_PROFESSIONAL_FIELDS = (
    "id",
    "slug",
    "full_name",
    "professional_title",
    "avatar_url",
    "bio",
    "service_categories",
    "years_experience",
    "hourly_rate_bgn",
    "company_name",
    "city",
    "tasks_completed",
    "average_rating",
    "total_reviews",
    "is_phone_verified",
    "is_email_verified",
    "is_vat_verified",
    "featured",
    "is_early_adopter",
    "early_adopter_categories",
    "is_top_professional",
    "top_professional_until",
    "top_professional_tasks_count",
    "is_featured",
    "created_at",
)

SENSITIVE_PROFESSIONAL_FIELDS = (
    "email",
    "phone",
    "vat_number",
    "notification_preferences",
    "privacy_settings",
    "preferred_contact",
    "preferred_language",
    "neighborhood",
    "is_banned",
    "ban_reason",
    "banned_at",
    "last_active_at",
    "updated_at",
    "response_time_hours",
    "telegram_id",
)

_SENSITIVE = frozenset(SENSITIVE_PROFESSIONAL_FIELDS)

ProfessionalLike = Union[ProfessionalRecord, Mapping[str, Any]]


def _as_dict(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def filter_sensitive_fields(professional: ProfessionalLike) -> Professional:
    raw = _as_dict(professional)
    filtered = {field: raw[field] for field in PUBLIC_PROFESSIONAL_FIELDS if field in raw}
    if filtered.get("featured") is None:
        filtered["featured"] = False
    return Professional(**filtered)


def filter_sensitive_fields_batch(professionals: Iterable[ProfessionalLike]) -> List[Professional]:
    return [filter_sensitive_fields(professional) for professional in professionals]


def find_sensitive_fields(data: Any) -> List[str]:
    data = _as_dict(data)
    found: List[str] = []
    if isinstance(data, Mapping):
        for key, value in data.items():
            if key in _SENSITIVE:
                found.append(str(key))
            found.extend(find_sensitive_fields(value))
    elif isinstance(data, (list, tuple)):
        for item in data:
            found.extend(find_sensitive_fields(item))
    return found


def validate_no_sensitive_fields(data: Any) -> bool:
    found = find_sensitive_fields(data)
    if found:
        logger.error("Sensitive professional fields present in outgoing data: %s", sorted(set(found)))
        return False
    return True


def warn_if_sensitive_fields(data: Any, context: str, *, enabled: bool = True) -> None:
    """Non-blocking leak self-check used outside production."""
    if not enabled:
        return
    found = find_sensitive_fields(data)
    if found:
        logger.warning("Privacy leak detected in %s: %s", context, sorted(set(found)))
