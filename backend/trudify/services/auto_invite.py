import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Optional

from trudify.models import AutoInviteResult, InviteJob, ProfessionalRecord
from trudify.services.marketplace_db import (
    MarketplaceConflictError,
    MarketplaceError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
    new_id,
    utc_now_iso,
)
from trudify.services.notification_service import NotificationService
from trudify.services.professional_matching import ProfessionalMatcher
from trudify.services.translation import category_label, normalize_locale

logger = logging.getLogger(__name__)

MAX_TRACKED_JOBS = 200


@dataclass
class AutoInviteTaskData:
    task_id: str
    task_title: str
    category: str
    city: str
    customer_id: str
    customer_name: str


class AlreadyInvitedError(MarketplaceConflictError):
    code = "already_invited"


class AutoInviteDispatcher:
    """Invites matching professionals to a new task.

    Per-recipient work runs concurrently and a failure for one recipient is
    recorded in the result without stopping the others. Scheduled runs are
    tracked as InviteJob records so their outcome can be inspected later.
    """

    def __init__(
        self,
        matcher: ProfessionalMatcher,
        notifications: NotificationService,
        *,
        enabled: bool = True,
        max_per_task: int = 10,
    ) -> None:
        self.matcher = matcher
        self.notifications = notifications
        self.enabled = enabled
        self.max_per_task = max_per_task
        self._jobs: "OrderedDict[str, InviteJob]" = OrderedDict()

    async def send_auto_invitations(self, task_data: AutoInviteTaskData) -> AutoInviteResult:
        result = AutoInviteResult()
        if not self.enabled:
            logger.info("Auto-invite disabled, skipping task %s", task_data.task_id)
            return result

        try:
            professionals = self.matcher.find_matching_professionals(
                task_id=task_data.task_id,
                category=task_data.category,
                city=task_data.city,
                customer_id=task_data.customer_id,
                limit=self.max_per_task,
            )
        except MarketplaceError as exc:
            logger.error("Auto-invite matching failed for task %s: %s", task_data.task_id, exc)
            result.errors.append(f"Matching failed: {exc}")
            return result

        if not professionals:
            logger.info("Auto-invite found no matching professionals for task %s", task_data.task_id)
            return result

        await asyncio.gather(
            *(self._invite_one(task_data, professional, result, auto_invite=True) for professional in professionals)
        )
        logger.info(
            "Auto-invite for task %s: %s invited, %s skipped, %s errors",
            task_data.task_id,
            result.invited_count,
            result.skipped_count,
            len(result.errors),
        )
        return result

    async def _invite_one(
        self,
        task_data: AutoInviteTaskData,
        professional: ProfessionalRecord,
        result: AutoInviteResult,
        *,
        auto_invite: bool,
    ) -> None:
        locale = normalize_locale(professional.preferred_language)
        try:
            outcome = await self.notifications.notify(
                professional.id,
                "task_invitation",
                {
                    "taskTitle": task_data.task_title,
                    "customerName": task_data.customer_name,
                    "category": category_label(task_data.category, locale),
                },
                metadata={
                    "taskId": task_data.task_id,
                    "customerId": task_data.customer_id,
                    "customerName": task_data.customer_name,
                    "taskTitle": task_data.task_title,
                    "taskCategory": task_data.category,
                    "autoInvite": auto_invite,
                },
                path=f"/tasks/{task_data.task_id}",
                delivery_channel="both",
            )
        except MarketplaceError as exc:
            logger.warning("Invitation for %s on task %s failed: %s", professional.id, task_data.task_id, exc)
            result.errors.append(f"Notification failed for {professional.id}")
            result.skipped_count += 1
            return
        except Exception:
            logger.exception("Unexpected invitation failure for %s", professional.id)
            result.errors.append(f"Notification failed for {professional.id}")
            result.skipped_count += 1
            return

        delivery = outcome.delivery
        if delivery is not None and not delivery.success and not delivery.skipped:
            result.errors.append(f"Delivery failed for {professional.id}: {delivery.error}")
        result.invited_count += 1

    async def invite_professional(
        self,
        task_data: AutoInviteTaskData,
        professional_id: str,
        actor_id: str,
    ) -> AutoInviteResult:
        """Manual invitation of one professional by the task owner."""
        if actor_id != task_data.customer_id:
            raise MarketplacePermissionError("Only the task owner can invite professionals")
        if professional_id == actor_id:
            raise MarketplaceValidationError("You cannot invite yourself")
        professional = self.matcher.db.get_user(professional_id)
        if professional is None or professional.is_banned or not professional.professional_title:
            raise MarketplaceNotFoundError("Professional not found")
        if self.notifications.store.has_invitation(professional_id, task_data.task_id):
            raise AlreadyInvitedError("Professional was already invited to this task")

        result = AutoInviteResult()
        await self._invite_one(task_data, professional, result, auto_invite=False)
        return result

    def schedule(self, task_data: AutoInviteTaskData) -> InviteJob:
        job = InviteJob(id=new_id("job"), task_id=task_data.task_id, created_at=utc_now_iso())
        self._jobs[job.id] = job
        while len(self._jobs) > MAX_TRACKED_JOBS:
            self._jobs.popitem(last=False)
        return job

    async def run_job(self, job_id: str, task_data: AutoInviteTaskData) -> InviteJob:
        job = self._jobs.get(job_id)
        if job is None:
            job = InviteJob(id=job_id, task_id=task_data.task_id, created_at=utc_now_iso())
        self._store(job.model_copy(update={"status": "running"}))
        try:
            result = await self.send_auto_invitations(task_data)
        except Exception as exc:
            logger.exception("Auto-invite job %s failed", job_id)
            finished = job.model_copy(update={"status": "failed", "error": str(exc), "finished_at": utc_now_iso()})
        else:
            finished = job.model_copy(update={"status": "completed", "result": result, "finished_at": utc_now_iso()})
        self._store(finished)
        return finished

    def _store(self, job: InviteJob) -> None:
        self._jobs[job.id] = job

    def get_job(self, job_id: str) -> Optional[InviteJob]:
        return self._jobs.get(job_id)

    def jobs_for_task(self, task_id: str) -> Dict[str, InviteJob]:
        return {job_id: job for job_id, job in self._jobs.items() if job.task_id == task_id}
