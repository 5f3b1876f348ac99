"""Request-scoped service instances for the route handlers."""

from typing import Annotated

from fastapi import Depends
from sqlmodel import Session

from .auth import get_current_user_id
from .database import get_session
from .joins import JoinWorkflow
from .notifications import NotificationDispatcher
from .rides import RideRegistry


def get_ride_registry(session: Session = Depends(get_session)) -> RideRegistry:
    return RideRegistry(session)


def get_join_workflow(session: Session = Depends(get_session)) -> JoinWorkflow:
    return JoinWorkflow(session)


def get_notification_dispatcher(
    session: Session = Depends(get_session),
) -> NotificationDispatcher:
    return NotificationDispatcher(session)


# Type aliases for dependency injection
CurrentUserId = Annotated[int, Depends(get_current_user_id)]
RideRegistryDep = Annotated[RideRegistry, Depends(get_ride_registry)]
JoinWorkflowDep = Annotated[JoinWorkflow, Depends(get_join_workflow)]
NotificationDispatcherDep = Annotated[
    NotificationDispatcher, Depends(get_notification_dispatcher)
]
