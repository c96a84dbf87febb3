from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.api.deps import get_current_admin, get_current_user, parse_uuid
from expense_api.core.config import get_settings
from expense_api.core.db import get_session
from expense_api.models.expense import Expense
from expense_api.models.notification import Notification
from expense_api.models.user import User
from expense_api.schemas.notification import (
    NotificationCreateRequest,
    NotificationReadResponse,
    NotificationResponse,
)
from expense_api.services.notification_service import create_notification

router = APIRouter(prefix="/notifications", tags=["notifications"])
settings = get_settings()


def to_notification_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=str(notification.id),
        user_id=str(notification.user_id),
        type=notification.type.value if hasattr(notification.type, "value") else str(notification.type),
        title=notification.title,
        message=notification.message,
        is_read=notification.is_read,
        related_expense_id=(
            str(notification.related_expense_id) if notification.related_expense_id else None
        ),
        created_at=notification.created_at.isoformat(),
    )


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def send_notification(
    payload: NotificationCreateRequest,
    admin: User = Depends(get_current_admin),
    session: AsyncSession = Depends(get_session),
) -> NotificationResponse:
    _ = admin
    user_id = parse_uuid(payload.user_id, "user_id")
    user_result = await session.execute(select(User.id).where(User.id == user_id))
    if user_result.first() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User with ID {payload.user_id} not found",
        )

    related_expense_id = None
    if payload.related_expense_id:
        related_expense_id = parse_uuid(payload.related_expense_id, "related_expense_id")
        expense_result = await session.execute(
            select(Expense.id).where(Expense.id == related_expense_id)
        )
        if expense_result.first() is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Related expense not found",
            )

    notification = create_notification(
        session,
        user_id=user_id,
        type=payload.type,
        title=payload.title,
        message=payload.message,
        related_expense_id=related_expense_id,
    )
    await session.commit()
    await session.refresh(notification)
    return to_notification_response(notification)


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(default=False),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[NotificationResponse]:
    stmt = select(Notification).where(Notification.user_id == user.id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    result = await session.execute(
        stmt.order_by(Notification.created_at.desc()).limit(settings.notification_list_limit)
    )
    return [to_notification_response(item) for item in result.scalars().all()]


@router.post("/{notification_id}/read", response_model=NotificationReadResponse)
async def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> NotificationReadResponse:
    try:
        notification_uuid = UUID(notification_id.strip())
    except ValueError:
        return NotificationReadResponse(success=False)

    result = await session.execute(
        select(Notification).where(
            Notification.id == notification_uuid,
            Notification.user_id == user.id,
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        return NotificationReadResponse(success=False)

    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        await session.commit()
    return NotificationReadResponse(success=True)
