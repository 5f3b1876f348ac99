from enum import Enum
from typing import Optional
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, text
from sqlmodel import SQLModel, Field, UniqueConstraint


class RideStatus(str, Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class JoinStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


class NotificationType(str, Enum):
    new_ride = "new_ride"
    join_request = "join_request"
    request_accepted = "request_accepted"
    request_declined = "request_declined"
    participant_joined = "participant_joined"
    participant_removed = "participant_removed"


class User(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("email"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str
    name: str
    password_hash: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Ride(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint(
            "seats_available >= 0 AND seats_available <= seats_total",
            name="ck_ride_seats_available",
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    creator_id: int = Field(foreign_key="user.id", index=True)
    source: str
    destination: str
    date_time: datetime = Field(index=True)
    seats_total: int
    seats_available: int
    cost_per_person: Optional[float] = None
    total_cost: Optional[float] = None
    status: RideStatus = Field(default=RideStatus.active, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class RideJoinRequest(SQLModel, table=True):
    # one open request per (ride, requester); history rows are unrestricted
    __table_args__ = (
        Index(
            "uq_join_request_pending",
            "ride_id",
            "requester_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    ride_id: int = Field(foreign_key="ride.id", index=True)
    requester_id: int = Field(foreign_key="user.id", index=True)
    status: JoinStatus = Field(default=JoinStatus.pending)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class RideParticipant(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("ride_id", "user_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    ride_id: int = Field(foreign_key="ride.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)  # recipient
    ride_id: Optional[int] = Field(default=None, foreign_key="ride.id", index=True)
    requester_id: Optional[int] = Field(default=None, foreign_key="user.id")
    join_request_id: Optional[int] = Field(default=None, foreign_key="ridejoinrequest.id")
    type: NotificationType
    message: str
    is_read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
