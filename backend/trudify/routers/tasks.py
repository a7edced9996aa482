from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from trudify.auth import Actor, require_actor
from trudify.dependencies import ServiceContainer, get_services
from trudify.http_errors import raise_marketplace_http_error
from trudify.models import (
    Application,
    CanCreateTaskResponse,
    InviteJob,
    MarkCompleteRequest,
    MarkCompleteResponse,
    Review,
    ReviewCreateRequest,
    Task,
    TaskCreateRequest,
    TaskCreateResponse,
    TaskWithdrawRequest,
    WithdrawalResponse,
)
from trudify.services.marketplace_db import MarketplaceError, MarketplacePermissionError

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.post("", response_model=TaskCreateResponse, status_code=201)
def create_task(
    payload: TaskCreateRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        task = services.tasks.create_task(actor.user_id, payload)
        invite_data = services.tasks.invite_data(task)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)

    job: Optional[InviteJob] = None
    if services.auto_invite.enabled:
        job = services.auto_invite.schedule(invite_data)
        background_tasks.add_task(services.auto_invite.run_job, job.id, invite_data)
    return TaskCreateResponse(task=task, invite_job=job)


@router.get("/can-create", response_model=CanCreateTaskResponse)
def can_create_task(
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        return services.reviews.check_can_create_task(actor.user_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/{task_id}", response_model=Task)
def get_task(task_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return services.tasks.get_task(task_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/{task_id}/invite-jobs", response_model=list[InviteJob])
def list_invite_jobs(
    task_id: str,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        task = services.tasks.get_task(task_id)
        if task.customer_id != actor.user_id:
            raise MarketplacePermissionError("Only the task owner can view invitation jobs")
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
    return list(services.auto_invite.jobs_for_task(task_id).values())


@router.get("/{task_id}/applications", response_model=list[Application])
def list_task_applications(
    task_id: str,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    result = services.applications.list_for_task(task_id, actor.user_id)
    if not result.success:
        raise_marketplace_http_error(result.error)
    return result.data


@router.post("/{task_id}/reviews", response_model=Review, status_code=201)
def submit_review(
    task_id: str,
    payload: ReviewCreateRequest,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        return services.reviews.submit_review(task_id, actor.user_id, payload)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.patch("/{task_id}/mark-complete", response_model=MarkCompleteResponse)
async def mark_complete(
    task_id: str,
    payload: Optional[MarkCompleteRequest] = None,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    payload = payload or MarkCompleteRequest()
    result = await services.applications.mark_complete(
        task_id,
        actor.user_id,
        payload.completion_notes,
        payload.completion_photos,
    )
    if not result.success:
        raise_marketplace_http_error(result.error)
    task, by_professional = result.data
    return MarkCompleteResponse(
        message="Task marked as completed",
        task=task,
        marked_by="professional" if by_professional else "customer",
    )


@router.post("/{task_id}/withdraw", response_model=WithdrawalResponse)
async def withdraw_from_task(
    task_id: str,
    payload: TaskWithdrawRequest,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    result = await services.applications.withdraw_from_task(
        task_id,
        actor.user_id,
        payload.reason,
        payload.description,
    )
    if not result.success:
        raise_marketplace_http_error(result.error)
    outcome = result.data
    return WithdrawalResponse(
        message="Withdrawn from task",
        application=outcome.application,
        task=outcome.task,
        timing_impact=outcome.timing_impact,
    )
