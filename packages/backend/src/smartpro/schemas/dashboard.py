"""Pydantic schemas for dashboard metrics and live updates.

Learn: The dashboard frontend speaks camelCase JSON, Python speaks
snake_case. alias_generator=to_camel + populate_by_name lets us build models
either way and always serialize with by_alias=True.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_camel = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MetricsSnapshot(BaseModel):
    """Per-user aggregate counters shown on the dashboard."""

    model_config = _camel

    total_bookings: int = Field(0, ge=0)
    confirmed_bookings: int = Field(0, ge=0)
    pending_bookings: int = Field(0, ge=0)
    cancelled_bookings: int = Field(0, ge=0)
    total_contracts: int = Field(0, ge=0)
    signed_contracts: int = Field(0, ge=0)
    total_contract_value: float = Field(0.0, ge=0)

    @classmethod
    def zero(cls) -> "MetricsSnapshot":
        """Canonical default rendered when neither cache nor database answers."""
        return cls()


class Channel(str, Enum):
    """Pub/sub channels the dashboard listens on."""
    BOOKING_UPDATES = "booking-updates"
    CONTRACT_UPDATES = "contract-updates"
    MESSAGE_UPDATES = "message-updates"
    METRICS_UPDATES = "metrics-updates"


EventType = Literal["booking", "contract", "message", "metrics"]

CHANNEL_FOR_EVENT: dict[str, Channel] = {
    "booking": Channel.BOOKING_UPDATES,
    "contract": Channel.CONTRACT_UPDATES,
    "message": Channel.MESSAGE_UPDATES,
    "metrics": Channel.METRICS_UPDATES,
}


class UpdateEvent(BaseModel):
    """An event kept in a user's recovery buffer."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    data: Any = None
    timestamp: str


class ActivityItem(BaseModel):
    model_config = _camel

    id: str
    type: Literal["booking", "contract", "message"]
    status: str
    title: Optional[str] = None
    created_at: datetime
