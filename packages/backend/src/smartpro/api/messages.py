"""Message API routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from smartpro.api.deps import schedule_dispatch
from smartpro.db.engine import get_db
from smartpro.schemas.message import MessageCreate, MessageRead
from smartpro.services.message_service import MessageService

router = APIRouter(prefix="/messages")


def _msg_svc(db: AsyncSession = Depends(get_db)) -> MessageService:
    return MessageService(db)


@router.post(
    "",
    response_model=MessageRead,
    status_code=201,
    dependencies=[Depends(schedule_dispatch)],
)
async def send_message(
    body: MessageCreate,
    svc: MessageService = Depends(_msg_svc),
):
    return await svc.send_message(body.sender_id, body.recipient_id, body.content)


@router.get("", response_model=list[MessageRead])
async def list_inbox(
    user_id: str = Query(..., alias="userId", min_length=1),
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(100, ge=1, le=500),
    svc: MessageService = Depends(_msg_svc),
):
    return await svc.list_inbox(user_id, unread_only=unread_only, limit=limit)


@router.post(
    "/{message_id}/read",
    response_model=MessageRead,
    dependencies=[Depends(schedule_dispatch)],
)
async def mark_read(
    message_id: uuid.UUID,
    svc: MessageService = Depends(_msg_svc),
):
    message = await svc.mark_read(message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message
