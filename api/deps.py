import time
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel

from api.settings import settings
from inbox_stats.recipients import RecipientSource, build_recipient_source


class SessionUser(BaseModel):
    email: str
    name: str = ""
    picture: str = ""


class Session(BaseModel):
    user: SessionUser


def get_auth_session(request: Request) -> Session | None:
    """The signed-in user's session, or None. Never raises."""
    if not settings.auth_enabled:
        if not settings.allowed_email:
            return None
        return Session(user=SessionUser(email=settings.allowed_email.lower()))

    user = request.session.get("user")
    expires_at = request.session.get("expires_at")
    if not user or not expires_at:
        return None

    if time.time() > float(expires_at):
        request.session.clear()
        return None

    return Session(user=SessionUser(**user))


@lru_cache
def get_recipient_source() -> RecipientSource:
    return build_recipient_source()


def require_auth(session: Session | None = Depends(get_auth_session)) -> Session:
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
        )
    return session
