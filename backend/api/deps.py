# backend/api/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from sqlalchemy import text
import jwt  # PyJWT exceptions

from core.config import settings
from core.security import decode_token
from db.session import get_db
from draft.audit import client_ip
from draft.errors import NOT_FOUND_REASONS, ValidationRejection
from draft.policies import POLICIES
from draft.room import DraftRoom
from draft.types import Actor, ActorType, TimeoutPolicy

# auto_error=False so captain-token requests can go through the same routes
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _get_token_from_request(request: Request) -> str | None:
    """
    Support either:
      - Cookie: access_token=<jwt>
      - Header: Authorization: Bearer <jwt>
    """
    token = request.cookies.get("access_token")
    if token:
        return token

    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()

    return None


def _user_from_token(db: Session, token: str) -> dict:
    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    user = db.execute(
        text("select id, username from users where id=:uid"),
        {"uid": str(user_id)},
    ).mappings().first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return dict(user)


def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[dict]:
    token = token or _get_token_from_request(request)
    if not token:
        return None
    return _user_from_token(db, token)


def get_current_user(user: Optional[dict] = Depends(get_optional_user)) -> dict:
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


def require_manager(db: Session, league_id: str, user_id: str) -> None:
    row = db.execute(
        text("select manager_id from leagues where id=:lid"),
        {"lid": league_id},
    ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="League not found")

    if str(row["manager_id"]) != str(user_id):
        raise HTTPException(status_code=403, detail="League manager only")


def get_audit(request: Request):
    return request.app.state.audit


def build_room(db: Session, audit) -> DraftRoom:
    return DraftRoom(
        db,
        audit,
        timeout_policy=TimeoutPolicy(settings.timeout_policy),
        auto_pick_policy=POLICIES[settings.auto_pick_policy],
        grace_seconds=settings.timeout_grace_seconds,
        auto_enable_after_timeouts=settings.auto_enable_after_timeouts,
    )


def get_room(db: Session = Depends(get_db), audit=Depends(get_audit)) -> DraftRoom:
    return build_room(db, audit)


def manager_actor(request: Request, user: dict) -> Actor:
    return Actor(ActorType.MANAGER, str(user["id"]), client_ip(request.headers))


def rejection_to_http(rej: ValidationRejection) -> HTTPException:
    code = 404 if rej.reason in NOT_FOUND_REASONS else 409
    return HTTPException(status_code=code, detail={"reason": rej.reason.value, "message": rej.message})
