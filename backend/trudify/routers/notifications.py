from fastapi import APIRouter, Depends, HTTPException, Query

from trudify.auth import Actor, require_actor
from trudify.dependencies import ServiceContainer, get_services
from trudify.models import NotificationRecord

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRecord])
def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    return services.notification_store.list_for_user(user_id=actor.user_id, unread_only=unread_only)


@router.post("/{notification_id}/read", response_model=NotificationRecord)
def mark_notification_read(
    notification_id: str,
    actor: Actor = Depends(require_actor),
    services: ServiceContainer = Depends(get_services),
):
    updated = services.notification_store.mark_read(user_id=actor.user_id, notification_id=notification_id)
    if not updated:
        raise HTTPException(status_code=404, detail={"error": "Notification not found", "code": "not_found"})
    return updated
