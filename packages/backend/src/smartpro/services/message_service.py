"""Message service — direct messages between users.

Message events are keyed to the RECIPIENT: that is whose dashboard shows
the unread badge, so that is whose recovery buffer gets the event.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smartpro.db.models import Message
from smartpro.events.outbox import Outbox
from smartpro.schemas.message import MessageRead


def message_payload(message: Message) -> dict:
    return MessageRead.model_validate(message).model_dump(mode="json", by_alias=True)


class MessageService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = Outbox(db)

    async def send_message(self, sender_id: str, recipient_id: str, content: str) -> Message:
        message = Message(
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            read=False,
        )
        self.db.add(message)
        await self.db.flush()

        await self.outbox.append(recipient_id, "message", message_payload(message))
        await self.db.commit()
        return message

    async def mark_read(self, message_id: uuid.UUID) -> Optional[Message]:
        """Mark a message read. Already-read messages produce no new event."""
        message = await self.db.get(Message, message_id)
        if not message:
            return None
        if message.read:
            return message

        message.read = True
        await self.db.flush()

        await self.outbox.append(message.recipient_id, "message", message_payload(message))
        await self.db.commit()
        return message

    async def list_inbox(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 100,
    ) -> list[Message]:
        query = (
            select(Message)
            .where(Message.recipient_id == user_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        if unread_only:
            query = query.where(Message.read.is_(False))
        result = await self.db.execute(query)
        return list(result.scalars().all())
