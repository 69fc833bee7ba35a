"""Weekly usage counter and reservation models."""

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class ReservationState(str, Enum):
    """Lifecycle of a quota reservation."""

    PENDING = "pending"
    COMMITTED = "committed"
    RELEASED = "released"


class UsageCounter(BaseModel):
    """Generations counted for one user in one week."""

    user_id: str
    week_start: date
    count: int = Field(default=0, ge=0)


class UsageReservation(BaseModel):
    """A tentative quota consumption pending generation success."""

    reservation_id: str
    user_id: str
    week_start: date
    used_before: int = Field(ge=0)
    limit: int = Field(ge=0)
    state: ReservationState = ReservationState.PENDING
    created_at: datetime


class Reserved(BaseModel):
    """The counter was advanced; the caller now holds a reservation."""

    kind: Literal["reserved"] = "reserved"
    reservation: UsageReservation

    @property
    def used_before(self) -> int:
        return self.reservation.used_before


class Denied(BaseModel):
    """The weekly limit is already exhausted. Nothing was mutated."""

    kind: Literal["denied"] = "denied"
    used: int
    limit: int


ReserveResult = Reserved | Denied
