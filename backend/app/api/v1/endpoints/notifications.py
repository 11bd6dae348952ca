"""Inbox routes, every one scoped to the caller's own notifications"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.capabilities import ActorContext
from app.modules.auth.dependencies import get_actor_context
from app.schemas.notification import NotificationResponse, NotificationListResponse
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    items, unread = await NotificationService(db).list_notifications(ctx, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        unread_count=unread,
    )


# Declared before /{notification_id}/read so "read-all" is not taken for an id
@router.put("/read-all")
async def mark_all_read(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    updated = await NotificationService(db).mark_all_read(ctx)
    return {"success": True, "updated": updated}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService(db).mark_read(ctx, notification_id)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService(db).delete_notification(ctx, notification_id)
