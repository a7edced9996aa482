from typing import Dict, Optional, Tuple

SUPPORTED_LOCALES = ("bg", "en", "ru")
DEFAULT_LOCALE = "bg"
FALLBACK_LOCALE = "en"

CATEGORY_LABELS: Dict[str, Dict[str, str]] = {
    "plumbing": {"en": "Plumbing", "bg": "ВиК услуги", "ru": "Сантехника"},
    "electrical": {"en": "Electrical", "bg": "Електро услуги", "ru": "Электрика"},
    "hvac": {"en": "Heating & Air Conditioning", "bg": "Климатизация и отопление", "ru": "Отопление и кондиционеры"},
    "carpentry": {"en": "Carpentry", "bg": "Дърводелство", "ru": "Столярные работы"},
    "painting": {"en": "Painting", "bg": "Боядисване", "ru": "Покраска"},
    "appliance_repair": {"en": "Appliance Repair", "bg": "Ремонт на уреди", "ru": "Ремонт техники"},
    "handyman": {"en": "Handyman", "bg": "Майстор за всичко", "ru": "Мастер на час"},
    "house_cleaning": {"en": "House Cleaning", "bg": "Почистване на дома", "ru": "Уборка дома"},
    "deep_cleaning": {"en": "Deep Cleaning", "bg": "Основно почистване", "ru": "Генеральная уборка"},
    "garden_maintenance": {"en": "Garden Maintenance", "bg": "Поддръжка на градина", "ru": "Уход за садом"},
    "delivery": {"en": "Delivery", "bg": "Доставка", "ru": "Доставка"},
    "moving": {"en": "Moving", "bg": "Преместване", "ru": "Переезд"},
    "babysitting": {"en": "Babysitting", "bg": "Детегледачка", "ru": "Няня"},
    "pet_sitting": {"en": "Pet Sitting", "bg": "Гледане на домашни любимци", "ru": "Присмотр за питомцами"},
    "tutoring": {"en": "Tutoring", "bg": "Частни уроци", "ru": "Репетиторство"},
    "web_development": {"en": "Web Development", "bg": "Уеб разработка", "ru": "Веб-разработка"},
    "photography": {"en": "Photography", "bg": "Фотография", "ru": "Фотография"},
    "other": {"en": "Other", "bg": "Друго", "ru": "Другое"},
}

NOTIFICATION_TEMPLATES: Dict[str, Dict[str, Tuple[str, str]]] = {
    "task_invitation": {
        "en": ("New task in {category}", "{customerName} is looking for help: {taskTitle}"),
        "bg": ("Нова задача в {category}", "{customerName} търси помощ: {taskTitle}"),
        "ru": ("Новая задача в {category}", "{customerName} ищет помощь: {taskTitle}"),
    },
    "application_received": {
        "en": ("New application", "{professionalName} applied to \"{taskTitle}\""),
        "bg": ("Нова кандидатура", "{professionalName} кандидатства за \"{taskTitle}\""),
        "ru": ("Новая заявка", "{professionalName} откликнулся на \"{taskTitle}\""),
    },
    "application_accepted": {
        "en": ("Application accepted", "Your application for \"{taskTitle}\" was accepted. {contact}"),
        "bg": ("Кандидатурата е приета", "Кандидатурата ви за \"{taskTitle}\" е приета. {contact}"),
        "ru": ("Заявка принята", "Ваша заявка на \"{taskTitle}\" принята. {contact}"),
    },
    "application_rejected": {
        "en": ("Application not selected", "Your application for \"{taskTitle}\" was not selected."),
        "bg": ("Кандидатурата не е избрана", "Кандидатурата ви за \"{taskTitle}\" не беше избрана."),
        "ru": ("Заявка отклонена", "Ваша заявка на \"{taskTitle}\" не выбрана."),
    },
    "professional_withdrew": {
        "en": ("Professional withdrew", "{professionalName} withdrew from \"{taskTitle}\". The task is open again."),
        "bg": ("Специалистът се оттегли", "{professionalName} се оттегли от \"{taskTitle}\". Задачата отново е отворена."),
        "ru": ("Специалист отказался", "{professionalName} отказался от \"{taskTitle}\". Задача снова открыта."),
    },
    "task_completed": {
        "en": ("Task marked as completed", "{professionalName} marked \"{taskTitle}\" as completed. Please leave a review."),
        "bg": ("Задачата е отбелязана като завършена", "{professionalName} отбеляза \"{taskTitle}\" като завършена. Моля, оставете отзив."),
        "ru": ("Задача отмечена как выполненная", "{professionalName} отметил \"{taskTitle}\" как выполненную. Оставьте отзыв."),
    },
}

CONTACT_LINES: Dict[str, Dict[str, str]] = {
    "phone": {"en": "Phone: {value}", "bg": "Телефон: {value}", "ru": "Телефон: {value}"},
    "email": {"en": "Email: {value}", "bg": "Имейл: {value}", "ru": "Эл. почта: {value}"},
    "custom": {"en": "Contact: {value}", "bg": "Контакт: {value}", "ru": "Контакт: {value}"},
}


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return ""


def normalize_locale(locale: Optional[str]) -> str:
    value = (locale or "").strip().lower()[:2]
    return value if value in SUPPORTED_LOCALES else DEFAULT_LOCALE


def _pick(entries: Dict[str, str], locale: str) -> Optional[str]:
    return entries.get(normalize_locale(locale)) or entries.get(FALLBACK_LOCALE)


def category_label(slug: str, locale: Optional[str] = None) -> str:
    entries = CATEGORY_LABELS.get(slug)
    if not entries:
        return slug
    return _pick(entries, locale or DEFAULT_LOCALE) or slug


def contact_line(method: str, value: str, locale: Optional[str] = None) -> str:
    entries = CONTACT_LINES.get(method)
    if not entries or not value:
        return ""
    template = _pick(entries, locale or DEFAULT_LOCALE) or ""
    return template.format(value=value)


def render_notification(notification_type: str, locale: Optional[str], **values: str) -> Tuple[str, str]:
    """Localized (title, message) for a notification type. Unknown placeholders render empty."""
    entries = NOTIFICATION_TEMPLATES.get(notification_type)
    if not entries:
        return notification_type, ""
    locale = normalize_locale(locale)
    title, message = entries.get(locale) or entries[FALLBACK_LOCALE]
    data = _SafeDict(values)
    return title.format_map(data), message.format_map(data).strip()
