"""Booking and contract API routes.

Learn: Routes translate HTTP to service calls and service errors to status
codes. The service commits the row and its outbox event together; the
schedule_dispatch dependency then pushes the event out after the response,
so a slow or absent Redis never delays the write.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from smartpro.api.deps import schedule_dispatch
from smartpro.db.engine import get_db
from smartpro.schemas.booking import (
    BookingCreate,
    BookingRead,
    BookingStatusChange,
    ContractCreate,
    ContractRead,
    ContractStatusChange,
)
from smartpro.services.booking_service import (
    BookingService,
    ContractService,
    InvalidTransitionError,
)

router = APIRouter()


def _booking_svc(db: AsyncSession = Depends(get_db)) -> BookingService:
    return BookingService(db)


def _contract_svc(db: AsyncSession = Depends(get_db)) -> ContractService:
    return ContractService(db)


# ═══════════════════════════════════════════════════════════
# Bookings
# ═══════════════════════════════════════════════════════════


@router.post(
    "/bookings",
    response_model=BookingRead,
    status_code=201,
    dependencies=[Depends(schedule_dispatch)],
)
async def create_booking(
    body: BookingCreate,
    svc: BookingService = Depends(_booking_svc),
):
    """Create a booking in 'pending' status."""
    return await svc.create_booking(
        user_id=body.user_id,
        service_name=body.service_name,
        provider_id=body.provider_id,
        scheduled_at=body.scheduled_at,
        notes=body.notes,
    )


@router.get("/bookings", response_model=list[BookingRead])
async def list_bookings(
    user_id: str = Query(..., alias="userId", min_length=1),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    svc: BookingService = Depends(_booking_svc),
):
    return await svc.list_bookings(user_id, status=status, limit=limit, offset=offset)


@router.post(
    "/bookings/{booking_id}/status",
    response_model=BookingRead,
    dependencies=[Depends(schedule_dispatch)],
)
async def change_booking_status(
    booking_id: uuid.UUID,
    body: BookingStatusChange,
    svc: BookingService = Depends(_booking_svc),
):
    try:
        booking = await svc.change_status(booking_id, body.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# ═══════════════════════════════════════════════════════════
# Contracts
# ═══════════════════════════════════════════════════════════


@router.post(
    "/contracts",
    response_model=ContractRead,
    status_code=201,
    dependencies=[Depends(schedule_dispatch)],
)
async def create_contract(
    body: ContractCreate,
    svc: ContractService = Depends(_contract_svc),
):
    """Create a contract in 'draft' status."""
    return await svc.create_contract(user_id=body.user_id, title=body.title, value=body.value)


@router.get("/contracts", response_model=list[ContractRead])
async def list_contracts(
    user_id: str = Query(..., alias="userId", min_length=1),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    svc: ContractService = Depends(_contract_svc),
):
    return await svc.list_contracts(user_id, status=status, limit=limit, offset=offset)


@router.post(
    "/contracts/{contract_id}/status",
    response_model=ContractRead,
    dependencies=[Depends(schedule_dispatch)],
)
async def change_contract_status(
    contract_id: uuid.UUID,
    body: ContractStatusChange,
    svc: ContractService = Depends(_contract_svc),
):
    try:
        contract = await svc.change_status(contract_id, body.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract
