from datetime import timedelta
from typing import Any, Dict, List

from trudify.services.marketplace_db import MarketplaceDB, utc_now

DEMO_USERS: List[Dict[str, Any]] = [
    {
        "id": "user_customer_1",
        "full_name": "Мария Петрова",
        "city": "Sofia",
        "email": "maria@example.com",
        "is_email_verified": True,
        "preferred_language": "bg",
    },
    {
        "id": "user_pro_1",
        "slug": "ivan-georgiev",
        "full_name": "Иван Георгиев",
        "professional_title": "Licensed plumber",
        "bio": "Fifteen years of residential plumbing: leaks, boilers, bathroom renovations and emergency repairs.",
        "service_categories": ["plumbing", "handyman"],
        "service_area_cities": ["Pernik"],
        "city": "Sofia",
        "neighborhood": "Lozenets",
        "years_experience": 15,
        "hourly_rate_bgn": 45,
        "email": "ivan@example.com",
        "phone": "+359888000001",
        "is_phone_verified": True,
        "is_email_verified": True,
        "is_vat_verified": True,
        "vat_number": "BG123456789",
        "tasks_completed": 132,
        "average_rating": 4.9,
        "total_reviews": 58,
        "preferred_language": "bg",
    },
    {
        "id": "user_pro_2",
        "slug": "elena-dimitrova",
        "full_name": "Елена Димитрова",
        "professional_title": "Home cleaning specialist",
        "service_categories": ["house_cleaning", "deep_cleaning"],
        "city": "Sofia",
        "email": "elena@example.com",
        "is_email_verified": True,
        "tasks_completed": 41,
        "average_rating": 4.7,
        "total_reviews": 22,
        "is_early_adopter": True,
        "early_adopter_categories": ["house_cleaning"],
        "preferred_language": "en",
    },
    {
        "id": "user_pro_3",
        "slug": "georgi-ivanov",
        "full_name": "Георги Иванов",
        "professional_title": "Electrician",
        "service_categories": ["electrical"],
        "city": "Plovdiv",
        "service_area_cities": ["Sofia"],
        "phone": "+359888000003",
        "is_phone_verified": True,
        "tasks_completed": 67,
        "average_rating": 4.6,
        "total_reviews": 31,
        "preferred_language": "ru",
    },
    {
        "id": "user_pro_4",
        "slug": "nikolay-stoyanov",
        "full_name": "Николай Стоянов",
        "professional_title": "Mover with van",
        "service_categories": ["moving", "delivery"],
        "city": "Varna",
        "tasks_completed": 9,
        "preferred_language": "bg",
    },
]


def seed_demo_data(db: MarketplaceDB) -> int:
    """Insert demo users into an empty database. Returns how many were inserted."""
    with db.connect() as conn:
        existing = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    if existing:
        return 0
    created = utc_now()
    for offset, user in enumerate(DEMO_USERS):
        db.insert_user(**user, created_at=(created - timedelta(days=offset)).isoformat())
    return len(DEMO_USERS)
