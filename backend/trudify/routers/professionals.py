from typing import Optional

from fastapi import APIRouter, Depends, Request

from trudify.auth import Actor, require_actor
from trudify.dependencies import ServiceContainer, get_services
from trudify.http_errors import raise_marketplace_http_error
from trudify.models import (
    AutoInviteResult,
    FeaturedProfessionalsResponse,
    PaginatedProfessionalsResponse,
    ProfessionalDetail,
    ProfessionalInviteRequest,
)
from trudify.services.application_lifecycle import TaskNotOpenError
from trudify.services.marketplace_db import MarketplaceError

router = APIRouter(prefix="/api/professionals", tags=["professionals"])


@router.get("", response_model=PaginatedProfessionalsResponse)
def list_professionals(request: Request, services: ServiceContainer = Depends(get_services)):
    result = services.professionals.get_professionals(dict(request.query_params))
    if not result.success:
        raise_marketplace_http_error(result.error)
    return result.data


@router.get("/featured", response_model=FeaturedProfessionalsResponse)
def featured_professionals(services: ServiceContainer = Depends(get_services)):
    result = services.professionals.get_featured_professionals()
    if not result.success:
        raise_marketplace_http_error(result.error)
    return FeaturedProfessionalsResponse(professionals=result.data or [])


@router.get("/{professional_id}", response_model=Optional[ProfessionalDetail])
def get_professional(professional_id: str, services: ServiceContainer = Depends(get_services)):
    result = services.professionals.get_professional_detail(professional_id)
    if not result.success:
        raise_marketplace_http_error(result.error)
    return result.data


@router.post("/{professional_id}/invite", response_model=AutoInviteResult)
async def invite_professional(
    professional_id: str,
    payload: ProfessionalInviteRequest,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        task = services.tasks.get_task(payload.task_id)
        if task.status != "open":
            raise TaskNotOpenError("Invitations can only be sent for open tasks")
        return await services.auto_invite.invite_professional(
            services.tasks.invite_data(task),
            professional_id,
            actor.user_id,
        )
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)

