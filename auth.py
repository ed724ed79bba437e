import logging
import re
import secrets
import sqlite3
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response, status
from passlib.context import CryptContext

from config import COOKIE_SECURE, SESSION_DAYS
from database import Database, to_db_time, utcnow
from dependencies import get_db, get_required_user
from errors import AuthError, ConflictError, ValidationError
from models import User
from schemas import UserCreate, UserLogin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str):
    return pwd_context.hash(password)


def create_session_token() -> str:
    return secrets.token_urlsafe(32)


def check_password_strength(password: str):
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not (re.search(r"[A-Z]", password) and re.search(r"[a-z]", password)
            and re.search(r"\d", password)):
        raise ValidationError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate, db: Database = Depends(get_db)):
    name = user_data.name.strip()
    if not name:
        raise ValidationError("All fields are required")
    check_password_strength(user_data.password)

    hashed_password = get_password_hash(user_data.password)
    email = user_data.email.lower()

    try:
        with db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO users (email, name, hashed_password, created_at) VALUES (?, ?, ?, ?)",
                (email, name, hashed_password, to_db_time(utcnow()))
            )
            user_id = cursor.lastrowid
    except sqlite3.IntegrityError:
        raise ConflictError("User already exists with this email")

    logger.info("Registered user %s", user_id)
    return {"message": "User created successfully", "userId": user_id}


@router.post("/login")
async def login_user(response: Response, user_data: UserLogin, db: Database = Depends(get_db)):
    user = db.conn.execute(
        "SELECT * FROM users WHERE email = ?",
        (user_data.email.lower(),)
    ).fetchone()

    if not user or not verify_password(user_data.password, user["hashed_password"]):
        raise AuthError("Incorrect email or password")

    # Создаем новую сессию
    session_token = create_session_token()
    now = utcnow()
    expires_at = now + timedelta(days=SESSION_DAYS)

    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO sessions (user_id, session_token, expires_at) VALUES (?, ?, ?)",
            (user["id"], session_token, to_db_time(expires_at))
        )
        conn.execute(
            "UPDATE users SET last_login = ? WHERE id = ?",
            (to_db_time(now), user["id"])
        )

    # Устанавливаем cookie
    response.set_cookie(
        key="session_token",
        value=session_token,
        httponly=True,
        max_age=60*60*24*SESSION_DAYS,
        secure=COOKIE_SECURE,
        samesite="lax"
    )

    return {"id": user["id"], "email": user["email"], "name": user["name"], "role": user["role"]}


@router.post("/logout")
async def logout_user(response: Response, request: Request, db: Database = Depends(get_db)):
    session_token = request.cookies.get("session_token")
    if session_token:
        with db.transaction() as conn:
            conn.execute(
                "DELETE FROM sessions WHERE session_token = ?",
                (session_token,)
            )

    response.delete_cookie("session_token")
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user_info(user: User = Depends(get_required_user)):
    return {"user": user}
