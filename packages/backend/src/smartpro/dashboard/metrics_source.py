"""Relational source of truth for dashboard metrics and activity.

Learn: Bookings and contracts are aggregated with two separate queries.
Joining them first (bookings LEFT JOIN contracts ON user_id) would multiply
rows, so every count would need DISTINCT and the contract value sum would be
inflated by the number of bookings.
"""

from sqlalchemy import ColumnElement, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smartpro.db.models import Booking, Contract, Message
from smartpro.schemas.dashboard import ActivityItem, MetricsSnapshot


def _count_when(column: ColumnElement, condition: ColumnElement[bool]) -> ColumnElement[int]:
    return func.count(case((condition, column)))


class MetricsRepository:
    """Aggregate queries over bookings, contracts and messages."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load(self, user_id: str) -> MetricsSnapshot:
        """Compute the user's metrics snapshot. Raises on database errors."""
        async with self.session_factory() as db:
            bookings = (
                await db.execute(
                    select(
                        func.count(Booking.id),
                        _count_when(Booking.id, Booking.status == "confirmed"),
                        _count_when(Booking.id, Booking.status == "pending"),
                        _count_when(Booking.id, Booking.status == "cancelled"),
                    ).where(Booking.user_id == user_id)
                )
            ).one()

            contracts = (
                await db.execute(
                    select(
                        func.count(Contract.id),
                        _count_when(Contract.id, Contract.status == "signed"),
                        func.coalesce(
                            func.sum(
                                case((Contract.status == "signed", Contract.value), else_=0)
                            ),
                            0,
                        ),
                    ).where(Contract.user_id == user_id)
                )
            ).one()

        return MetricsSnapshot(
            total_bookings=bookings[0],
            confirmed_bookings=bookings[1],
            pending_bookings=bookings[2],
            cancelled_bookings=bookings[3],
            total_contracts=contracts[0],
            signed_contracts=contracts[1],
            total_contract_value=float(contracts[2] or 0),
        )

    async def recent_activity(self, user_id: str, limit: int = 10) -> list[ActivityItem]:
        """Newest-first mix of the user's bookings, contracts and inbox messages."""
        async with self.session_factory() as db:
            bookings = await db.execute(
                select(Booking)
                .where(Booking.user_id == user_id)
                .order_by(Booking.created_at.desc())
                .limit(limit)
            )
            contracts = await db.execute(
                select(Contract)
                .where(Contract.user_id == user_id)
                .order_by(Contract.created_at.desc())
                .limit(limit)
            )
            messages = await db.execute(
                select(Message)
                .where(Message.recipient_id == user_id)
                .order_by(Message.created_at.desc())
                .limit(limit)
            )

            items = [
                ActivityItem(
                    id=str(b.id),
                    type="booking",
                    status=b.status,
                    title=b.service_name,
                    created_at=b.created_at,
                )
                for b in bookings.scalars()
            ]
            items += [
                ActivityItem(
                    id=str(c.id),
                    type="contract",
                    status=c.status,
                    title=c.title,
                    created_at=c.created_at,
                )
                for c in contracts.scalars()
            ]
            items += [
                ActivityItem(
                    id=str(m.id),
                    type="message",
                    status="read" if m.read else "unread",
                    created_at=m.created_at,
                )
                for m in messages.scalars()
            ]

        items.sort(key=lambda item: item.created_at, reverse=True)
        return items[:limit]
