import json
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from database import from_db_time


class User(BaseModel):
    id: int
    email: str
    name: str
    role: str = "user"
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            role=row["role"],
            created_at=from_db_time(row["created_at"]),
            last_login=from_db_time(row["last_login"]),
        )


class Session(BaseModel):
    id: int
    user_id: int
    session_token: str
    expires_at: str


class Link(BaseModel):
    id: int
    short_code: str
    custom_alias: Optional[str] = None
    original_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    user_id: Optional[int] = None
    clicks: int = 0
    is_active: bool = True
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    last_clicked: Optional[datetime] = None
    tags: List[str] = []
    password_hash: Optional[str] = None
    ai_suggestions: str = ""
    is_analyzed: bool = False
    risk_level: str = "low"
    qr_code: str = ""

    @classmethod
    def from_row(cls, row) -> "Link":
        data = dict(row)
        for field in ("expires_at", "created_at", "updated_at", "last_clicked"):
            data[field] = from_db_time(data[field])
        data["tags"] = json.loads(data["tags"] or "[]")
        data["is_active"] = bool(data["is_active"])
        data["is_analyzed"] = bool(data["is_analyzed"])
        return cls(**data)

    @property
    def is_protected(self) -> bool:
        return self.password_hash is not None


class Click(BaseModel):
    id: int
    link_id: int
    timestamp: datetime
    ip: str
    user_agent: str = ""
    referer: str = ""
    device: str = "unknown"
    browser: str = "unknown"
    os: str = "unknown"
    country: str = "Unknown"
    city: Optional[str] = None
