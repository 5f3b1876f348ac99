"""Notification dispatcher.

Notifications are a projection of workflow events addressed to one user.
Reading, flipping ``is_read`` or deleting them never changes ride, request or
participant state.

A resolved ``join_request`` notification stops being actionable because the
accept transaction deletes it; ``list_for_user`` therefore returns rows as
stored, without a read-time supersede filter.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete as sa_delete, func, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .errors import NotFound
from .models import Notification, NotificationType, Ride, User
from .store import commit

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Persists and serves user notifications."""

    def __init__(self, session: Session):
        self.session = session

    def notify(
        self,
        user_id: int,
        type: NotificationType,
        message: str,
        ride_id: Optional[int] = None,
        requester_id: Optional[int] = None,
        join_request_id: Optional[int] = None,
    ) -> Notification:
        """Stage a notification in the caller's transaction.

        The caller commits, so the notification lands atomically with the
        workflow change that produced it.
        """
        n = Notification(
            user_id=user_id,
            type=type,
            message=message,
            ride_id=ride_id,
            requester_id=requester_id,
            join_request_id=join_request_id,
        )
        self.session.add(n)
        return n

    def broadcast_new_ride(self, ride: Ride) -> int:
        """Send a ``new_ride`` notification to every user except the creator.

        Runs in its own transaction after the ride is committed. Delivery is
        best effort: a failure is logged, rolled back and reported as zero
        deliveries, never raised.

        Returns:
            Number of notifications written.
        """
        try:
            recipients = self.session.exec(
                select(User.id).where(User.id != ride.creator_id)
            ).all()
            message = f"New ride to {ride.destination} from {ride.source}"
            for user_id in recipients:
                self.notify(
                    user_id,
                    NotificationType.new_ride,
                    message,
                    ride_id=ride.id,
                )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("new_ride broadcast failed for ride %s", ride.id)
            return 0
        logger.info("Broadcast ride %s to %d users", ride.id, len(recipients))
        return len(recipients)

    def get_owned(self, notification_id: int, user_id: int) -> Notification:
        n = self.session.get(Notification, notification_id)
        if not n or n.user_id != user_id:
            raise NotFound("Notification not found")
        return n

    def list_for_user(self, user_id: int) -> List[Notification]:
        return list(
            self.session.exec(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
            ).all()
        )

    def unread_count(self, user_id: int) -> int:
        count = self.session.exec(
            select(func.count(Notification.id)).where(
                (Notification.user_id == user_id) & (Notification.is_read == False)  # noqa: E712
            )
        ).one()
        return int(count or 0)

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        n = self.get_owned(notification_id, user_id)
        n.is_read = True
        self.session.add(n)
        commit(self.session)
        self.session.refresh(n)
        return n

    def mark_all_read(self, user_id: int) -> int:
        result = self.session.exec(
            sa_update(Notification)
            .where(
                (Notification.user_id == user_id) & (Notification.is_read == False)  # noqa: E712
            )
            .values(is_read=True)
        )
        commit(self.session)
        return result.rowcount

    def delete_one(self, notification_id: int, user_id: int) -> None:
        n = self.get_owned(notification_id, user_id)
        self.session.delete(n)
        commit(self.session)

    def delete_all(self, user_id: int) -> int:
        result = self.session.exec(
            sa_delete(Notification).where(Notification.user_id == user_id)
        )
        commit(self.session)
        logger.info("Cleared %d notifications for user %s", result.rowcount, user_id)
        return result.rowcount
