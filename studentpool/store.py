"""Transaction helpers shared by the ride services."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlmodel import Session

from .errors import Conflict, StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(session: Session, conflict_message: Optional[str] = None) -> Iterator[None]:
    """Map store failures raised inside the block to service errors.

    A uniqueness violation becomes ``Conflict`` when ``conflict_message`` is
    given and is re-raised otherwise. Connection failures become
    ``StoreUnavailable``. The session is rolled back in both cases.
    """
    try:
        yield
    except IntegrityError as exc:
        session.rollback()
        if conflict_message is None:
            raise
        logger.info("Integrity violation mapped to conflict: %s", conflict_message)
        raise Conflict(conflict_message) from exc
    except (OperationalError, InterfaceError) as exc:
        session.rollback()
        logger.warning("Store unavailable: %s", exc)
        raise StoreUnavailable("Database is unavailable, try again later") from exc


def commit(session: Session, conflict_message: Optional[str] = None) -> None:
    with store_errors(session, conflict_message):
        session.commit()
