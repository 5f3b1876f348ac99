# studentpool/main.py
import logging
from datetime import date, datetime, time
from typing import List, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlmodel import Session

from . import __version__
from . import schemas as s
from .config import ALLOWED_ORIGINS
from .database import init_db, get_session
from .dependencies import (
    CurrentUserId,
    JoinWorkflowDep,
    NotificationDispatcherDep,
    RideRegistryDep,
)
from .errors import InvalidOperation, NotFound, StoreUnavailable, StudentPoolError
from .logging_config import setup_logging
from .models import User

APP_VERSION = __version__

logger = logging.getLogger(__name__)

HTTP_ERROR_KINDS = {
    400: "InvalidOperation",
    401: "NotAuthenticated",
    403: "NotAuthorized",
    404: "NotFound",
    405: "MethodNotAllowed",
}


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="Student Pool API", version=APP_VERSION)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup():
        init_db()

    # ---------------- Errors ----------------
    @app.exception_handler(StudentPoolError)
    async def _service_error(request: Request, exc: StudentPoolError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        # auth failures and unknown routes answer in the same shape
        content = {
            "success": False,
            "error": HTTP_ERROR_KINDS.get(exc.status_code, "Error"),
            "message": str(exc.detail),
        }
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(OperationalError)
    @app.exception_handler(InterfaceError)
    async def _store_error(request: Request, exc: Exception):
        logger.warning("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
        err = StoreUnavailable("Database is unavailable, try again later")
        return JSONResponse(status_code=err.status_code, content=err.to_payload())

    # ---------------- Health ----------------
    @app.get("/api/health")
    def health():
        return {"status": "ok", "version": APP_VERSION}

    # ---------------- Users -----------------
    @app.get("/api/users/me", response_model=s.UserRead)
    def me(
        user_id: CurrentUserId,
        session: Session = Depends(get_session),
    ):
        user = session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return s.UserRead.model_validate(user)

    # ---------------- Rides -----------------
    @app.post("/api/rides", response_model=s.RideRead, status_code=201)
    def create_ride(
        payload: s.RideCreate,
        user_id: CurrentUserId,
        rides: RideRegistryDep,
    ):
        if payload.date_time < datetime.utcnow():
            raise InvalidOperation("Departure time must be in the future")
        ride = rides.create(creator_id=user_id, **payload.model_dump())
        return s.RideRead.model_validate(ride)

    @app.get("/api/rides/available", response_model=List[s.RideRead])
    def available_rides(
        user_id: CurrentUserId,
        rides: RideRegistryDep,
        destination: Optional[str] = None,
        on_date: Optional[date] = Query(None, alias="date"),
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        min_seats: int = Query(1, ge=1),
    ):
        if on_date is not None:
            date_from = date_from or datetime.combine(on_date, time.min)
            date_to = date_to or datetime.combine(on_date, time.max)
        found = rides.get_available(
            exclude_user_id=user_id,
            destination_contains=destination,
            date_from=date_from,
            date_to=date_to,
            min_seats=min_seats,
        )
        return [s.RideRead.model_validate(r) for r in found]

    @app.get("/api/rides/mine", response_model=s.MyRides)
    @app.get("/api/rides/my-rides", response_model=s.MyRides)
    def my_rides(user_id: CurrentUserId, rides: RideRegistryDep):
        mine = rides.list_mine(user_id)
        return s.MyRides(
            created=[s.RideRead.model_validate(r) for r in mine["created"]],
            joined=[s.RideRead.model_validate(r) for r in mine["joined"]],
        )

    @app.get("/api/rides/{ride_id}", response_model=s.RideDetail)
    def ride_detail(
        ride_id: int,
        user_id: CurrentUserId,
        rides: RideRegistryDep,
        joins: JoinWorkflowDep,
    ):
        ride = rides.get(ride_id)
        creator = rides.session.get(User, ride.creator_id)
        participants = [
            s.ParticipantRead(user_id=u.id, name=u.name, joined_at=p.joined_at)
            for p, u in rides.participants(ride_id)
        ]
        base = s.RideRead.model_validate(ride).model_dump()
        return s.RideDetail(
            **base,
            creator_name=creator.name if creator else None,
            participants=participants,
            join_status=joins.get_join_status(ride_id, user_id),
            is_participant=any(p.user_id == user_id for p in participants),
            can_chat=joins.can_access_chat(ride_id, user_id),
        )

    @app.delete("/api/rides/{ride_id}", response_model=s.ActionResult)
    def delete_ride(ride_id: int, user_id: CurrentUserId, rides: RideRegistryDep):
        rides.delete(ride_id, user_id)
        return s.ActionResult(message="Ride deleted")

    @app.patch("/api/rides/{ride_id}/end", response_model=s.RideRead)
    def end_ride(ride_id: int, user_id: CurrentUserId, rides: RideRegistryDep):
        return s.RideRead.model_validate(rides.complete(ride_id, user_id))

    # ------------- Join workflow ------------
    @app.post("/api/rides/{ride_id}/join", response_model=s.JoinStatusRead)
    def join_ride(ride_id: int, user_id: CurrentUserId, joins: JoinWorkflowDep):
        request = joins.request_join(ride_id, user_id)
        return s.JoinStatusRead(status=request.status)

    @app.get("/api/rides/{ride_id}/join-status", response_model=s.JoinStatusRead)
    def join_status(ride_id: int, user_id: CurrentUserId, joins: JoinWorkflowDep):
        return s.JoinStatusRead(status=joins.get_join_status(ride_id, user_id))

    @app.delete(
        "/api/rides/{ride_id}/participants/{participant_user_id}",
        response_model=s.ActionResult,
    )
    def remove_participant(
        ride_id: int,
        participant_user_id: int,
        user_id: CurrentUserId,
        joins: JoinWorkflowDep,
    ):
        joins.remove_participant(ride_id, participant_user_id, user_id)
        return s.ActionResult(message="Participant removed")

    @app.post("/api/notifications/{notification_id}/accept", response_model=s.ActionResult)
    def accept_request(notification_id: int, user_id: CurrentUserId, joins: JoinWorkflowDep):
        joins.accept_join_request(notification_id, user_id)
        return s.ActionResult(message="Join request accepted")

    @app.post("/api/notifications/{notification_id}/decline", response_model=s.ActionResult)
    def decline_request(notification_id: int, user_id: CurrentUserId, joins: JoinWorkflowDep):
        joins.decline_join_request(notification_id, user_id)
        return s.ActionResult(message="Join request declined")

    # ------------- Notifications ------------
    @app.get("/api/notifications", response_model=s.NotificationList)
    def list_notifications(user_id: CurrentUserId, notifications: NotificationDispatcherDep):
        rows = notifications.list_for_user(user_id)
        return s.NotificationList(
            notifications=[s.NotificationRead.model_validate(n) for n in rows],
            unread_count=sum(1 for n in rows if not n.is_read),
        )

    @app.get("/api/notifications/unread-count", response_model=s.UnreadCount)
    def unread_count(user_id: CurrentUserId, notifications: NotificationDispatcherDep):
        return s.UnreadCount(unread_count=notifications.unread_count(user_id))

    @app.put("/api/notifications/mark-all-read", response_model=s.ActionResult)
    def mark_all_read(user_id: CurrentUserId, notifications: NotificationDispatcherDep):
        count = notifications.mark_all_read(user_id)
        return s.ActionResult(message=f"{count} notifications marked as read")

    @app.put("/api/notifications/{notification_id}/read", response_model=s.NotificationRead)
    def mark_read(
        notification_id: int,
        user_id: CurrentUserId,
        notifications: NotificationDispatcherDep,
    ):
        return s.NotificationRead.model_validate(
            notifications.mark_read(notification_id, user_id)
        )

    @app.delete("/api/notifications", response_model=s.ActionResult)
    def delete_all_notifications(user_id: CurrentUserId, notifications: NotificationDispatcherDep):
        count = notifications.delete_all(user_id)
        return s.ActionResult(message=f"{count} notifications deleted")

    @app.delete("/api/notifications/{notification_id}", response_model=s.ActionResult)
    def delete_notification(
        notification_id: int,
        user_id: CurrentUserId,
        notifications: NotificationDispatcherDep,
    ):
        notifications.delete_one(notification_id, user_id)
        return s.ActionResult(message="Notification deleted")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from .config import API_HOST, API_PORT

    uvicorn.run("studentpool.main:app", host=API_HOST, port=API_PORT)
