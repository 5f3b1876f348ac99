from typing import List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator

from .models import JoinStatus, NotificationType, RideStatus


# ------------------------------------------------------------------
# Base class for models read straight from ORM rows
# ------------------------------------------------------------------
class ORMModel(BaseModel):
    model_config = {"from_attributes": True}


class ActionResult(BaseModel):
    success: bool = True
    message: str


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------
class UserRead(ORMModel):
    id: int
    email: str
    name: str
    phone: Optional[str] = None
    college: Optional[str] = None


# ------------------------------------------------------------------
# Rides
# ------------------------------------------------------------------
class RideCreate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    source: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    date_time: datetime
    seats_total: int = Field(ge=1)
    cost_per_person: Optional[float] = Field(default=None, ge=0)
    total_cost: Optional[float] = Field(default=None, ge=0)

    @field_validator("date_time")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        # stored as naive UTC, like every other timestamp
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class RideRead(ORMModel):
    id: int
    creator_id: int
    source: str
    destination: str
    date_time: datetime
    seats_total: int
    seats_available: int
    cost_per_person: Optional[float] = None
    total_cost: Optional[float] = None
    status: RideStatus
    created_at: datetime


class ParticipantRead(BaseModel):
    user_id: int
    name: str
    joined_at: datetime


class RideDetail(RideRead):
    creator_name: Optional[str] = None
    participants: List[ParticipantRead] = []
    join_status: Optional[JoinStatus] = None    # viewer's status
    is_participant: bool = False
    can_chat: bool = False


class MyRides(BaseModel):
    created: List[RideRead]
    joined: List[RideRead]


# ------------------------------------------------------------------
# Join workflow
# ------------------------------------------------------------------
class JoinStatusRead(BaseModel):
    status: Optional[JoinStatus] = None


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------
class NotificationRead(ORMModel):
    id: int
    user_id: int
    ride_id: Optional[int] = None
    requester_id: Optional[int] = None
    type: NotificationType
    message: str
    is_read: bool
    created_at: datetime


class NotificationList(BaseModel):
    notifications: List[NotificationRead]
    unread_count: int


class UnreadCount(BaseModel):
    unread_count: int
