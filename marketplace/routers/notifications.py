from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from marketplace.database import get_db
from marketplace.dependencies import Actor, NotificationListParams, get_current_actor, require_roles
from marketplace.schemas import Envelope, NotificationCreate, NotificationResponse
from marketplace.services import notification_service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

@router.get("", response_model=Envelope)
async def list_my_notifications(
    params: NotificationListParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    items = await notification_service.list_for_user(
        db, actor.id, limit=params.limit, unread_only=params.unread_only
    )
    return Envelope(message=f"{len(items)} notification(s)", data=items)

@router.get("/unread-count", response_model=Envelope)
async def count_unread(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    total = await notification_service.count_unread(db, actor.id)
    return Envelope(message="Unread notifications counted", data={"unread": total})

@router.put("/read-all", response_model=Envelope)
async def mark_all_read(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    result = await notification_service.mark_all_read(db, actor.id)
    return Envelope(message=f"{result['updated_count']} notification(s) marked as read", data=result)

@router.put("/{notification_id}/read", response_model=Envelope)
async def mark_read(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.mark_read(db, notification_id, actor.id)
    return Envelope(message="Notification marked as read")

@router.delete("/purge", response_model=Envelope)
async def purge_old_notifications(
    days: int = Query(30, ge=1),
    actor: Actor = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    result = await notification_service.purge_older_than(db, days)
    return Envelope(message=f"{result['deleted_count']} notification(s) purged", data=result)

@router.delete("/{notification_id}", response_model=Envelope)
async def delete_notification(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.delete_notification(db, notification_id, actor.id)
    return Envelope(message="Notification deleted")

@router.post("", status_code=201, response_model=Envelope)
async def create_notification(
    data: NotificationCreate,
    actor: Actor = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_service.create_notification(db, **data.model_dump())
    return Envelope(message="Notification created", data=NotificationResponse(**notification))
