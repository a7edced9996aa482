from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from trudify.auth import Actor, require_actor
from trudify.dependencies import ServiceContainer, get_services
from trudify.http_errors import raise_marketplace_http_error
from trudify.models import (
    Application,
    ApplicationActionResponse,
    ApplicationCreateRequest,
    ApplicationUpdateRequest,
    ApplicationWithdrawRequest,
    WithdrawalResponse,
)

router = APIRouter(prefix="/api/applications", tags=["applications"])


@router.post("", response_model=Application, status_code=201)
async def submit_application(
    payload: ApplicationCreateRequest,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    result = await services.applications.submit(actor.user_id, payload)
    if not result.success:
        raise_marketplace_http_error(result.error)
    return result.data


@router.get("", response_model=list[Application])
def list_my_applications(
    status: Optional[Literal["pending", "accepted", "rejected", "withdrawn"]] = Query(default=None),
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    result = services.applications.list_for_professional(actor.user_id, status)
    if not result.success:
        raise_marketplace_http_error(result.error)
    return result.data


@router.patch("/{application_id}", response_model=ApplicationActionResponse)
async def update_application(
    application_id: str,
    payload: ApplicationUpdateRequest,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    if payload.action == "accept":
        result = await services.applications.accept(application_id, actor.user_id, payload.contact_info)
        message = "Application accepted"
    else:
        result = await services.applications.reject(application_id, actor.user_id, payload.reason)
        message = "Application rejected"
    if not result.success:
        raise_marketplace_http_error(result.error)
    application, task = result.data
    return ApplicationActionResponse(message=message, application=application, task=task)


@router.patch("/{application_id}/withdraw", response_model=WithdrawalResponse)
async def withdraw_application(
    application_id: str,
    payload: Optional[ApplicationWithdrawRequest] = None,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    payload = payload or ApplicationWithdrawRequest()
    result = await services.applications.withdraw(application_id, actor.user_id, payload.reason, payload.description)
    if not result.success:
        raise_marketplace_http_error(result.error)
    outcome = result.data
    return WithdrawalResponse(
        message="Application withdrawn",
        application=outcome.application,
        task=outcome.task,
        timing_impact=outcome.timing_impact,
    )
