from fastapi import APIRouter, Depends, Query

from reviewhub.schemas.identity import Identity
from reviewhub.schemas.notification import BroadcastCreate
from reviewhub.services.container import ServiceContainer
from reviewhub.utils.dependencies import get_current_identity, get_services
from reviewhub.utils.serialization import serialize_document


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(limit: int = Query(50, ge=1, le=200), current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    result = await services.notifications.list_for(current, limit)
    return serialize_document(result)


@router.get("/unread-count")
async def unread_count(current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    return {"unread_count": await services.notifications.unread_count(current)}


@router.patch("/read-all")
async def mark_all_read(current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    updated = await services.notifications.mark_all_read(current)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    doc = await services.notifications.mark_read(notification_id, current)
    return {"message": "Marked as read", "notification": {"_id": doc["_id"], "is_read": doc["is_read"]}}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    await services.notifications.delete(notification_id, current)
    return {"message": "Notification deleted"}


@router.post("/broadcast", status_code=201)
async def broadcast(body: BroadcastCreate, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    reference = await services.notifications.broadcast(current, body.recipient_group, body.title, body.message)
    return {
        "message": "Notification sent successfully",
        "recipient_count": reference["recipient_count"],
        "notification": serialize_document(reference),
    }
