"""Booking and contract services — status state machines plus outbox events.

Learn: Every mutation here follows the same three steps:
1. Validate the change (allowed transitions)
2. Apply it to the row
3. Append the outbox events (the change plus a metrics refresh) in the
   SAME transaction, then commit

Nothing in this module talks to Redis. Live updates and metrics refreshes
happen later, in the outbox dispatcher, so a Redis outage can never fail
or roll back a booking.

Booking lifecycle:   pending → confirmed → completed   (cancel from pending/confirmed)
Contract lifecycle:  draft → pending → signed          (cancel from draft/pending)
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smartpro.db.models import Booking, Contract
from smartpro.events.outbox import Outbox
from smartpro.schemas.booking import BookingRead, ContractRead


# ═══════════════════════════════════════════════════════════
# State Machines
# ═══════════════════════════════════════════════════════════

BOOKING_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "completed": set(),  # terminal state
    "cancelled": set(),  # terminal state
}

CONTRACT_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"pending", "cancelled"},
    "pending": {"signed", "cancelled"},
    "signed": set(),     # terminal state
    "cancelled": set(),  # terminal state
}


class InvalidTransitionError(Exception):
    """Raised when a status transition is not allowed."""
    pass


def _check_transition(table: dict[str, set[str]], current: str, new: str) -> None:
    allowed = table.get(current, set())
    if new not in allowed:
        raise InvalidTransitionError(
            f"Cannot transition from '{current}' to '{new}'. "
            f"Allowed: {sorted(allowed) or 'none (terminal state)'}"
        )


def booking_payload(booking: Booking) -> dict:
    return BookingRead.model_validate(booking).model_dump(mode="json", by_alias=True)


def contract_payload(contract: Contract) -> dict:
    return ContractRead.model_validate(contract).model_dump(mode="json", by_alias=True)


# ═══════════════════════════════════════════════════════════
# Bookings
# ═══════════════════════════════════════════════════════════


class BookingService:
    """Business logic for booking CRUD and state management."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = Outbox(db)

    async def create_booking(
        self,
        user_id: str,
        service_name: str,
        provider_id: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """Create a booking in 'pending' status."""
        booking = Booking(
            user_id=user_id,
            provider_id=provider_id,
            service_name=service_name,
            scheduled_at=scheduled_at,
            notes=notes,
            status="pending",
        )
        self.db.add(booking)
        await self.db.flush()  # populate id + defaults for the event payload

        await self.outbox.append_with_metrics(user_id, "booking", booking_payload(booking))
        await self.db.commit()
        return booking

    async def get_booking(self, booking_id: uuid.UUID) -> Optional[Booking]:
        return await self.db.get(Booking, booking_id)

    async def list_bookings(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Booking]:
        query = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        if status:
            query = query.where(Booking.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def change_status(self, booking_id: uuid.UUID, new_status: str) -> Optional[Booking]:
        """Move a booking through its lifecycle. None if it doesn't exist."""
        booking = await self.get_booking(booking_id)
        if not booking:
            return None

        _check_transition(BOOKING_TRANSITIONS, booking.status, new_status)
        booking.status = new_status
        booking.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        await self.outbox.append_with_metrics(booking.user_id, "booking", booking_payload(booking))
        await self.db.commit()
        return booking


# ═══════════════════════════════════════════════════════════
# Contracts
# ═══════════════════════════════════════════════════════════


class ContractService:
    """Business logic for contracts. Signed contracts count toward metrics."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = Outbox(db)

    async def create_contract(
        self,
        user_id: str,
        title: str,
        value: Decimal = Decimal("0"),
    ) -> Contract:
        """Create a contract in 'draft' status."""
        contract = Contract(user_id=user_id, title=title, value=value, status="draft")
        self.db.add(contract)
        await self.db.flush()

        await self.outbox.append_with_metrics(user_id, "contract", contract_payload(contract))
        await self.db.commit()
        return contract

    async def get_contract(self, contract_id: uuid.UUID) -> Optional[Contract]:
        return await self.db.get(Contract, contract_id)

    async def list_contracts(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Contract]:
        query = (
            select(Contract)
            .where(Contract.user_id == user_id)
            .order_by(Contract.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        if status:
            query = query.where(Contract.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def change_status(self, contract_id: uuid.UUID, new_status: str) -> Optional[Contract]:
        contract = await self.get_contract(contract_id)
        if not contract:
            return None

        _check_transition(CONTRACT_TRANSITIONS, contract.status, new_status)
        contract.status = new_status
        if new_status == "signed":
            contract.signed_at = datetime.now(timezone.utc)
        await self.db.flush()

        await self.outbox.append_with_metrics(contract.user_id, "contract", contract_payload(contract))
        await self.db.commit()
        return contract
