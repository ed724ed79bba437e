from typing import Optional

from fastapi import Depends, Request

from database import Database, to_db_time, utcnow
from errors import AuthError
from models import Session, User


async def get_db(request: Request) -> Database:
    return request.app.state.db


async def get_current_user(request: Request, db: Database = Depends(get_db)) -> Optional[User]:
    session_token = request.cookies.get("session_token")
    if not session_token:
        return None

    row = db.conn.execute(
        "SELECT * FROM sessions WHERE session_token = ? AND expires_at > ?",
        (session_token, to_db_time(utcnow()))
    ).fetchone()

    if not row:
        return None
    session = Session(**dict(row))

    user = db.conn.execute(
        "SELECT * FROM users WHERE id = ?",
        (session.user_id,)
    ).fetchone()

    return User.from_row(user) if user else None


async def get_required_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if not user:
        raise AuthError("Unauthorized")
    return user
