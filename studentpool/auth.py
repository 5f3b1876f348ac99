import logging
from typing import Dict

from fastapi import Depends, HTTPException, Request
from google.auth import exceptions as google_exceptions
from google.oauth2 import id_token
from google.auth.transport.requests import Request as GoogleRequest
from sqlmodel import Session, select

from .config import FIREBASE_PROJECT_ID
from .database import get_session
from .models import User

logger = logging.getLogger(__name__)

# The only claim used to resolve identity
IDENTITY_CLAIM = "email"


def _verify_firebase_token(request: Request) -> Dict:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not FIREBASE_PROJECT_ID:
        raise HTTPException(status_code=500, detail="FIREBASE_PROJECT_ID not configured")
    token = auth.split(" ", 1)[1]
    try:
        info = id_token.verify_firebase_token(token, GoogleRequest(), audience=FIREBASE_PROJECT_ID)
    except (ValueError, google_exceptions.GoogleAuthError):
        raise HTTPException(status_code=401, detail="Invalid Firebase token")
    if not info:
        raise HTTPException(status_code=401, detail="Invalid Firebase token")
    return info


def get_current_user_id(
    info: Dict = Depends(_verify_firebase_token),
    session: Session = Depends(get_session),
) -> int:
    email = info.get(IDENTITY_CLAIM)
    if not email:
        raise HTTPException(status_code=401, detail="Token missing email")

    user = session.exec(select(User).where(User.email == email)).first()
    if not user:
        user = User(
            email=email,
            name=info.get("name") or email.split("@")[0],
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("Provisioned user %s for %s", user.id, email)
    return user.id
