import logging
from typing import Dict, List, Optional, Tuple

from trudify.models import Application, ApplicationCreateRequest, ContactInfo, Task
from trudify.services.application_lifecycle import ApplicationLifecycle, WithdrawalOutcome
from trudify.services.marketplace_db import MarketplaceError
from trudify.services.notification_service import NotificationService
from trudify.services.professional_service import ServiceResult, run_guarded
from trudify.services.translation import contact_line, normalize_locale

logger = logging.getLogger(__name__)


def _contact_value(contact: ContactInfo) -> str:
    if contact.method == "phone":
        return contact.phone or ""
    if contact.method == "email":
        return contact.email or ""
    return contact.custom_contact or ""


class ApplicationService:
    """Runs lifecycle transitions as results and notifies the other party afterwards.

    Notification failures are logged and never undo or fail the transition.
    """

    def __init__(self, lifecycle: ApplicationLifecycle, notifications: NotificationService) -> None:
        self.lifecycle = lifecycle
        self.notifications = notifications
        self.db = lifecycle.db

    def _display_name(self, user_id: str) -> str:
        user = self.db.get_user(user_id)
        return (user.full_name if user and user.full_name else "") or "Trudify user"

    async def _notify_safely(self, user_id: str, notification_type: str, data: Dict[str, str], **kwargs) -> None:
        try:
            await self.notifications.notify(user_id, notification_type, data, **kwargs)
        except MarketplaceError as exc:
            logger.warning("Could not notify %s about %s: %s", user_id, notification_type, exc)

    async def submit(self, professional_id: str, request: ApplicationCreateRequest) -> ServiceResult[Application]:
        result = run_guarded(
            "Submit application",
            lambda: self.lifecycle.submit(
                task_id=request.task_id,
                professional_id=professional_id,
                proposed_price=request.proposed_price,
                timeline=request.timeline,
                message=request.message,
                estimated_duration_hours=request.estimated_duration_hours,
                availability_date=request.availability_date,
            ),
        )
        if result.success and result.data:
            task = self.db.get_task(result.data.task_id)
            if task:
                await self._notify_safely(
                    task.customer_id,
                    "application_received",
                    {"taskTitle": task.title, "professionalName": self._display_name(professional_id)},
                    metadata={"taskId": task.id, "applicationId": result.data.id, "professionalId": professional_id},
                    path=f"/tasks/{task.id}",
                )
        return result

    async def accept(
        self,
        application_id: str,
        actor_id: str,
        contact_info: Optional[ContactInfo] = None,
    ) -> ServiceResult[Tuple[Application, Task]]:
        result = run_guarded("Accept application", lambda: self.lifecycle.accept(application_id, actor_id, contact_info))
        if result.success and result.data:
            application, task = result.data
            professional = self.db.get_user(application.professional_id)
            locale = normalize_locale(professional.preferred_language if professional else None)
            contact = contact_line(contact_info.method, _contact_value(contact_info), locale) if contact_info else ""
            await self._notify_safely(
                application.professional_id,
                "application_accepted",
                {"taskTitle": task.title, "contact": contact},
                metadata={"taskId": task.id, "applicationId": application.id, "customerId": task.customer_id},
                path=f"/tasks/{task.id}",
            )
        return result

    async def reject(
        self,
        application_id: str,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> ServiceResult[Tuple[Application, Task]]:
        result = run_guarded("Reject application", lambda: self.lifecycle.reject(application_id, actor_id, reason))
        if result.success and result.data:
            application, task = result.data
            await self._notify_safely(
                application.professional_id,
                "application_rejected",
                {"taskTitle": task.title},
                metadata={"taskId": task.id, "applicationId": application.id},
                path="/tasks/applications",
            )
        return result

    async def withdraw(
        self,
        application_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ServiceResult[WithdrawalOutcome]:
        result = run_guarded(
            "Withdraw application",
            lambda: self.lifecycle.withdraw(application_id, actor_id, reason, description),
        )
        await self._after_withdrawal(result, actor_id)
        return result

    async def withdraw_from_task(
        self,
        task_id: str,
        actor_id: str,
        reason: str,
        description: Optional[str] = None,
    ) -> ServiceResult[WithdrawalOutcome]:
        result = run_guarded(
            "Withdraw from task",
            lambda: self.lifecycle.withdraw_from_task(task_id, actor_id, reason, description),
        )
        await self._after_withdrawal(result, actor_id)
        return result

    async def _after_withdrawal(self, result: ServiceResult[WithdrawalOutcome], actor_id: str) -> None:
        if not result.success or not result.data or result.data.timing_impact is None:
            return
        task = result.data.task
        await self._notify_safely(
            task.customer_id,
            "professional_withdrew",
            {"taskTitle": task.title, "professionalName": self._display_name(actor_id)},
            metadata={"taskId": task.id, "professionalId": actor_id, "timingImpact": result.data.timing_impact},
            path=f"/tasks/{task.id}",
        )

    async def mark_complete(
        self,
        task_id: str,
        actor_id: str,
        completion_notes: Optional[str] = None,
        completion_photos: Optional[List[str]] = None,
    ) -> ServiceResult[Tuple[Task, bool]]:
        result = run_guarded(
            "Mark task complete",
            lambda: self.lifecycle.mark_complete(task_id, actor_id, completion_notes, completion_photos),
        )
        if result.success and result.data:
            task, by_professional = result.data
            if by_professional:
                await self._notify_safely(
                    task.customer_id,
                    "task_completed",
                    {"taskTitle": task.title, "professionalName": self._display_name(actor_id)},
                    metadata={"taskId": task.id, "professionalId": actor_id},
                    path=f"/tasks/{task.id}",
                )
        return result

    def list_for_professional(self, professional_id: str, status: Optional[str] = None) -> ServiceResult[List[Application]]:
        return run_guarded("List applications", lambda: self.lifecycle.list_for_professional(professional_id, status))

    def list_for_task(self, task_id: str, actor_id: str) -> ServiceResult[List[Application]]:
        return run_guarded("List task applications", lambda: self.lifecycle.list_for_task(task_id, actor_id))
