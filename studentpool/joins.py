"""Join workflow: requests to join a ride and the creator's answer.

Per (ride, requester) pair the state moves ``NONE -> PENDING -> ACCEPTED`` or
``NONE -> PENDING -> DECLINED``. A participant row is the source of truth for
ACCEPTED; request rows carry the history.

Seat allocation happens in ``accept_join_request`` as a single transaction.
The seat decrement is a conditional UPDATE, so two accepts racing for the
last seat cannot both commit: the loser sees zero affected rows.
"""

import logging
from typing import Optional

from sqlalchemy import delete as sa_delete, update as sa_update
from sqlmodel import Session, select

from .errors import Conflict, InvalidOperation, NotAuthorized, NotFound
from .models import (
    JoinStatus,
    Notification,
    NotificationType,
    Ride,
    RideJoinRequest,
    RideParticipant,
    RideStatus,
    User,
)
from .notifications import NotificationDispatcher
from .store import commit, store_errors

logger = logging.getLogger(__name__)


class JoinWorkflow:
    """Runs join requests from creation to accept or decline."""

    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationDispatcher(session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def _lock_ride(self, ride_id: int) -> Optional[Ride]:
        return self.session.exec(
            select(Ride).where(Ride.id == ride_id).with_for_update()
        ).one_or_none()

    def _participant(self, ride_id: int, user_id: int) -> Optional[RideParticipant]:
        return self.session.exec(
            select(RideParticipant).where(
                (RideParticipant.ride_id == ride_id) & (RideParticipant.user_id == user_id)
            )
        ).first()

    def _latest_request(self, ride_id: int, user_id: int) -> Optional[RideJoinRequest]:
        return self.session.exec(
            select(RideJoinRequest)
            .where(
                (RideJoinRequest.ride_id == ride_id)
                & (RideJoinRequest.requester_id == user_id)
            )
            .order_by(RideJoinRequest.created_at.desc(), RideJoinRequest.id.desc())
        ).first()

    def _request_for(self, n: Notification) -> Optional[RideJoinRequest]:
        # only the request the notification announced; never a newer one
        if n.join_request_id is None:
            return None
        return self.session.get(RideJoinRequest, n.join_request_id)

    def _display_name(self, user_id: int) -> str:
        user = self.session.get(User, user_id)
        return user.name if user else "A user"

    def is_participant(self, ride_id: int, user_id: int) -> bool:
        return self._participant(ride_id, user_id) is not None

    def can_access_chat(self, ride_id: int, user_id: int) -> bool:
        """The ride chat is open to the creator and accepted participants."""
        ride = self.session.get(Ride, ride_id)
        if not ride:
            return False
        return ride.creator_id == user_id or self.is_participant(ride_id, user_id)

    def get_join_status(self, ride_id: int, user_id: int) -> Optional[JoinStatus]:
        """Where ``user_id`` stands on ``ride_id``.

        A participant row means accepted regardless of older request rows.
        Otherwise the most recent request decides; ``None`` when there is
        none.

        Raises:
            NotFound: The ride does not exist (e.g. it was deleted).
        """
        if not self.session.get(Ride, ride_id):
            raise NotFound("Ride not found")
        if self.is_participant(ride_id, user_id):
            return JoinStatus.accepted
        request = self._latest_request(ride_id, user_id)
        return request.status if request else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def request_join(self, ride_id: int, requester_id: int) -> RideJoinRequest:
        """Ask to join a ride. The creator gets a ``join_request`` notification.

        Preconditions are checked in order and the first failure wins.

        Raises:
            NotFound: The ride does not exist.
            InvalidOperation: Own ride, ride not active, or no seats left.
            Conflict: A pending or accepted request already exists.
        """
        ride = self._lock_ride(ride_id)
        if not ride:
            raise NotFound("Ride not found")
        if ride.creator_id == requester_id:
            raise InvalidOperation("You cannot join your own ride")
        if ride.status != RideStatus.active:
            raise InvalidOperation("Ride is not active")
        if ride.seats_available <= 0:
            raise InvalidOperation("No seats available")

        open_statuses = self.session.exec(
            select(RideJoinRequest.status).where(
                (RideJoinRequest.ride_id == ride_id)
                & (RideJoinRequest.requester_id == requester_id)
                & (RideJoinRequest.status.in_([JoinStatus.pending, JoinStatus.accepted]))
            )
        ).all()
        if JoinStatus.pending in open_statuses:
            raise Conflict("Join request already pending")
        if JoinStatus.accepted in open_statuses or self.is_participant(ride_id, requester_id):
            raise Conflict("You have already joined this ride")

        request = RideJoinRequest(ride_id=ride_id, requester_id=requester_id)
        with store_errors(self.session, "Join request already pending"):
            self.session.add(request)
            self.session.flush()
            self.notifications.notify(
                ride.creator_id,
                NotificationType.join_request,
                f"{self._display_name(requester_id)} wants to join your ride to {ride.destination}",
                ride_id=ride_id,
                requester_id=requester_id,
                join_request_id=request.id,
            )
            self.session.commit()
        self.session.refresh(request)
        logger.info("User %s requested to join ride %s", requester_id, ride_id)
        return request

    def _join_request_notification(self, notification_id: int, acting_user_id: int) -> Notification:
        n = self.notifications.get_owned(notification_id, acting_user_id)
        if n.type != NotificationType.join_request:
            raise NotFound("Join request not found")
        return n

    def accept_join_request(self, notification_id: int, acting_user_id: int) -> None:
        """Accept the join request announced by a notification.

        In one transaction: the request becomes accepted, a participant row is
        inserted, one seat is taken, the requester and the creator are
        notified and the original notification is deleted.

        Raises:
            NotFound: Notification, ride or request missing, or not the actor's.
            InvalidOperation: Ride not active, or no seats left.
            Conflict: The requester is already a participant or the request
                was already resolved.
        """
        n = self._join_request_notification(notification_id, acting_user_id)
        ride = self._lock_ride(n.ride_id) if n.ride_id is not None else None
        if not ride:
            raise NotFound("Ride not found")
        if ride.status != RideStatus.active:
            raise InvalidOperation("Ride is not active")
        if ride.seats_available <= 0:
            raise InvalidOperation("No seats available")
        request = self._request_for(n)
        if not request:
            raise NotFound("Join request not found")
        if self.is_participant(ride.id, request.requester_id):
            raise Conflict("User is already a participant")
        if request.status != JoinStatus.pending:
            raise Conflict("Join request already resolved")

        ride_id, creator_id, requester_id = ride.id, ride.creator_id, request.requester_id
        destination = ride.destination
        with store_errors(self.session, "User is already a participant"):
            request.status = JoinStatus.accepted
            self.session.add(request)
            self.session.add(RideParticipant(ride_id=ride_id, user_id=requester_id))
            taken = self.session.exec(
                sa_update(Ride)
                .where((Ride.id == ride_id) & (Ride.seats_available > 0))
                .values(seats_available=Ride.seats_available - 1)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount == 0:
                self.session.rollback()
                raise InvalidOperation("No seats available")

            self.notifications.notify(
                requester_id,
                NotificationType.request_accepted,
                f"Your request to join the ride to {destination} was accepted",
                ride_id=ride_id,
                requester_id=requester_id,
            )
            self.notifications.notify(
                creator_id,
                NotificationType.participant_joined,
                f"{self._display_name(requester_id)} joined your ride to {destination}",
                ride_id=ride_id,
                requester_id=requester_id,
            )
            self.session.delete(n)
            self.session.commit()
        logger.info("User %s accepted user %s on ride %s", creator_id, requester_id, ride_id)

    def decline_join_request(self, notification_id: int, acting_user_id: int) -> None:
        """Decline the join request announced by a notification.

        The original notification is kept, marked read, as a record of the
        decline. A missing request row is tolerated.

        Raises:
            NotFound: Notification missing or not the actor's.
            Conflict: The request was already resolved.
        """
        n = self._join_request_notification(notification_id, acting_user_id)
        request = self._request_for(n)
        if request is not None:
            if request.status != JoinStatus.pending:
                raise Conflict("Join request already resolved")
            request.status = JoinStatus.declined
            self.session.add(request)

        ride = self.session.get(Ride, n.ride_id) if n.ride_id is not None else None
        where = f" to {ride.destination}" if ride else ""
        self.notifications.notify(
            n.requester_id,
            NotificationType.request_declined,
            f"Your request to join the ride{where} was declined",
            ride_id=n.ride_id,
            requester_id=n.requester_id,
        )
        n.is_read = True
        self.session.add(n)
        commit(self.session)
        logger.info(
            "User %s declined user %s on ride %s", acting_user_id, n.requester_id, n.ride_id
        )

    def remove_participant(self, ride_id: int, user_id: int, acting_user_id: int) -> None:
        """Creator removes a participant, giving the seat back.

        The pair's request history and the join request notifications that
        announced it are cleared, so the user may ask again.

        Raises:
            NotFound: Ride or participant missing.
            NotAuthorized: The actor is not the ride creator.
        """
        ride = self._lock_ride(ride_id)
        if not ride:
            raise NotFound("Ride not found")
        if ride.creator_id != acting_user_id:
            raise NotAuthorized("Only the ride creator can remove participants")
        participant = self._participant(ride_id, user_id)
        if not participant:
            raise NotFound("Participant not found")

        destination = ride.destination
        with store_errors(self.session):
            self.session.delete(participant)
            self.session.exec(
                sa_update(Ride)
                .where((Ride.id == ride_id) & (Ride.seats_available < Ride.seats_total))
                .values(seats_available=Ride.seats_available + 1)
                .execution_options(synchronize_session=False)
            )
            request_ids = select(RideJoinRequest.id).where(
                (RideJoinRequest.ride_id == ride_id) & (RideJoinRequest.requester_id == user_id)
            )
            self.session.exec(
                sa_delete(Notification)
                .where(Notification.join_request_id.in_(request_ids))
                .execution_options(synchronize_session=False)
            )
            self.session.exec(
                sa_delete(RideJoinRequest)
                .where(
                    (RideJoinRequest.ride_id == ride_id)
                    & (RideJoinRequest.requester_id == user_id)
                )
                .execution_options(synchronize_session=False)
            )
            self.notifications.notify(
                user_id,
                NotificationType.participant_removed,
                f"You were removed from the ride to {destination}",
                ride_id=ride_id,
                requester_id=user_id,
            )
            self.session.commit()
        logger.info("User %s removed user %s from ride %s", acting_user_id, user_id, ride_id)
