import uuid

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy import text

from db.session import get_db
from core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
)

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------- Schemas ----------

class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=32)
    password: str = Field(min_length=6, max_length=128)


class LoginIn(BaseModel):
    username: str
    password: str


# ---------- Helpers ----------

def _get_user_by_username(db: Session, username: str):
    return db.execute(
        text(
            """
            select id, username, password_hash
            from users
            where username = :u
            """
        ),
        {"u": username},
    ).mappings().first()


def _token_response(user_id: str, username: str) -> dict:
    return {
        "user": {"id": user_id, "username": username},
        "access_token": create_access_token({"sub": user_id}),
        "token_type": "bearer",
    }


def _authenticate(db: Session, username: str, password: str) -> dict:
    user = _get_user_by_username(db, username)
    if not user or not verify_password(password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return _token_response(str(user["id"]), user["username"])


# ---------- Routes ----------

@router.post("/register")
def register(
    body: RegisterIn,
    db: Session = Depends(get_db),
):
    """League managers only; captains join through their draft link."""
    if _get_user_by_username(db, body.username):
        raise HTTPException(status_code=409, detail="Username already taken")

    user_id = str(uuid.uuid4())
    try:
        db.execute(
            text(
                """
                insert into users (id, username, password_hash)
                values (:id, :u, :ph)
                """
            ),
            {"id": user_id, "u": body.username, "ph": get_password_hash(body.password)},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        # Lost a race with another signup for the same name.
        raise HTTPException(status_code=409, detail="Username already taken")

    return _token_response(user_id, body.username)


@router.post("/login")
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """
    OAuth2 Password Flow login (Swagger uses this).
    Sends credentials as form data: username=...&password=...
    """
    return _authenticate(db, form_data.username, form_data.password)


@router.post("/login-json")
def login_json(
    body: LoginIn,
    db: Session = Depends(get_db),
):
    return _authenticate(db, body.username, body.password)
