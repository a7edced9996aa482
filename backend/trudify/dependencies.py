from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from trudify.config import Settings
from trudify.services.application_lifecycle import ApplicationLifecycle
from trudify.services.application_service import ApplicationService
from trudify.services.auto_invite import AutoInviteDispatcher
from trudify.services.email_sender import EmailSender
from trudify.services.featured_ranking import FeaturedRanking
from trudify.services.magic_links import MagicLinkService
from trudify.services.marketplace_db import MarketplaceDB
from trudify.services.notification_service import NotificationService
from trudify.services.notification_store import NotificationStore
from trudify.services.professional_matching import ProfessionalMatcher
from trudify.services.professional_repository import ProfessionalRepository
from trudify.services.professional_service import ProfessionalService
from trudify.services.review_enforcement import ReviewEnforcement
from trudify.services.task_service import TaskService
from trudify.services.telegram_sender import TelegramSender


@dataclass
class ServiceContainer:
    settings: Settings
    db: MarketplaceDB
    professionals: ProfessionalService
    applications: ApplicationService
    tasks: TaskService
    reviews: ReviewEnforcement
    notification_store: NotificationStore
    notifications: NotificationService
    magic_links: MagicLinkService
    auto_invite: AutoInviteDispatcher


def build_services(
    settings: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServiceContainer:
    db = MarketplaceDB(settings.db_path)
    repository = ProfessionalRepository(db, FeaturedRanking(db))
    notification_store = NotificationStore(db)
    magic_links = MagicLinkService(db, settings.base_url)
    notifications = NotificationService(
        db,
        notification_store,
        TelegramSender(settings.telegram_bot_token, transport=transport),
        EmailSender(settings.sendgrid_api_key, settings.sendgrid_from_email, transport=transport),
        magic_links,
        settings.base_url,
    )
    lifecycle = ApplicationLifecycle(db, withdrawal_monthly_limit=settings.withdrawal_monthly_limit)
    reviews = ReviewEnforcement(db)
    return ServiceContainer(
        settings=settings,
        db=db,
        professionals=ProfessionalService(repository, privacy_self_check=not settings.is_production),
        applications=ApplicationService(lifecycle, notifications),
        tasks=TaskService(db, reviews),
        reviews=reviews,
        notification_store=notification_store,
        notifications=notifications,
        magic_links=magic_links,
        auto_invite=AutoInviteDispatcher(
            ProfessionalMatcher(db, notification_store),
            notifications,
            enabled=settings.auto_invite_enabled,
            max_per_task=settings.auto_invite_max_per_task,
        ),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
