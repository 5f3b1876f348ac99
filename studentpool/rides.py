"""Ride registry: posting, browsing and closing rides."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete as sa_delete
from sqlmodel import Session, select

from .errors import InvalidOperation, NotAuthorized, NotFound
from .models import (
    Notification,
    Ride,
    RideJoinRequest,
    RideParticipant,
    RideStatus,
    User,
)
from .notifications import NotificationDispatcher
from .store import commit

logger = logging.getLogger(__name__)


def _escape_like(term: str) -> str:
    # match % and _ literally
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class RideRegistry:
    """Creates rides and keeps their seat capacity."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        creator_id: int,
        destination: str,
        source: str,
        date_time: datetime,
        seats_total: int,
        cost_per_person: Optional[float] = None,
        total_cost: Optional[float] = None,
    ) -> Ride:
        """Post a new ride and announce it to the other users.

        ``cost_per_person`` defaults to splitting ``total_cost`` between the
        passengers and the driver.

        Raises:
            InvalidOperation: A required field is empty or seats_total < 1.
            NotFound: The creator does not exist.
        """
        if not (destination or "").strip() or not (source or "").strip():
            raise InvalidOperation("Source and destination are required")
        if date_time is None:
            raise InvalidOperation("Date and time are required")
        if seats_total is None or seats_total < 1:
            raise InvalidOperation("A ride needs at least one seat")
        if not self.session.get(User, creator_id):
            raise NotFound("User not found")

        if cost_per_person is None and total_cost is not None:
            cost_per_person = round(total_cost / (seats_total + 1), 2)

        ride = Ride(
            creator_id=creator_id,
            source=source.strip(),
            destination=destination.strip(),
            date_time=date_time,
            seats_total=seats_total,
            seats_available=seats_total,
            cost_per_person=cost_per_person,
            total_cost=total_cost,
            status=RideStatus.active,
        )
        self.session.add(ride)
        commit(self.session)
        self.session.refresh(ride)
        logger.info("User %s created ride %s to %s", creator_id, ride.id, ride.destination)

        # separate transaction; never fails the ride itself
        NotificationDispatcher(self.session).broadcast_new_ride(ride)
        self.session.refresh(ride)
        return ride

    def get(self, ride_id: int) -> Ride:
        ride = self.session.get(Ride, ride_id)
        if not ride:
            raise NotFound("Ride not found")
        return ride

    def get_available(
        self,
        exclude_user_id: int,
        destination_contains: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        min_seats: int = 1,
    ) -> List[Ride]:
        """Active rides other users posted that still have ``min_seats`` free.

        The date range is inclusive on both ends. Results are ordered by
        departure, soonest first.
        """
        q = select(Ride).where(
            (Ride.status == RideStatus.active)
            & (Ride.creator_id != exclude_user_id)
            & (Ride.seats_available >= max(min_seats, 1))
        )
        if destination_contains:
            term = _escape_like(destination_contains.strip())
            q = q.where(Ride.destination.ilike(f"%{term}%", escape="\\"))
        if date_from is not None:
            q = q.where(Ride.date_time >= date_from)
        if date_to is not None:
            q = q.where(Ride.date_time <= date_to)
        return list(self.session.exec(q.order_by(Ride.date_time, Ride.id)).all())

    def list_mine(self, user_id: int) -> Dict[str, List[Ride]]:
        created = self.session.exec(
            select(Ride).where(Ride.creator_id == user_id).order_by(Ride.date_time)
        ).all()
        joined = self.session.exec(
            select(Ride)
            .join(RideParticipant, RideParticipant.ride_id == Ride.id)
            .where(RideParticipant.user_id == user_id)
            .order_by(Ride.date_time)
        ).all()
        return {"created": list(created), "joined": list(joined)}

    def participants(self, ride_id: int) -> List[Tuple[RideParticipant, User]]:
        rows = self.session.exec(
            select(RideParticipant, User)
            .join(User, User.id == RideParticipant.user_id)
            .where(RideParticipant.ride_id == ride_id)
            .order_by(RideParticipant.joined_at)
        ).all()
        return list(rows)

    def _get_owned(self, ride_id: int, requester_id: int) -> Ride:
        ride = self.get(ride_id)
        if ride.creator_id != requester_id:
            raise NotAuthorized("Only the ride creator can do this")
        return ride

    def delete(self, ride_id: int, requester_id: int) -> None:
        """Delete a ride together with its requests, participants and notifications."""
        ride = self._get_owned(ride_id, requester_id)

        self.session.exec(sa_delete(Notification).where(Notification.ride_id == ride.id))
        self.session.exec(sa_delete(RideParticipant).where(RideParticipant.ride_id == ride.id))
        self.session.exec(sa_delete(RideJoinRequest).where(RideJoinRequest.ride_id == ride.id))
        self.session.delete(ride)
        commit(self.session)
        logger.info("User %s deleted ride %s", requester_id, ride_id)

    def complete(self, ride_id: int, requester_id: int) -> Ride:
        """Mark a ride completed. Completing it again is a no-op."""
        ride = self._get_owned(ride_id, requester_id)
        if ride.status == RideStatus.completed:
            return ride
        ride.status = RideStatus.completed
        self.session.add(ride)
        commit(self.session)
        self.session.refresh(ride)
        logger.info("User %s ended ride %s", requester_id, ride_id)
        return ride
