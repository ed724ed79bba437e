from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from passlib.context import CryptContext
from passlib.exc import PasswordSizeError

import store
from database import Database, utcnow
from models import Link

# pbkdf2 сравнивает пароль целиком, bcrypt обрезал бы его до 72 байт
link_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_link_password(password: str) -> str:
    return link_pwd_context.hash(password)


def check_link_password(password: str, password_hash: str) -> bool:
    try:
        return link_pwd_context.verify(password, password_hash)
    except PasswordSizeError:
        return False


class Disposition(str, Enum):
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    EXPIRED = "expired"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_INVALID = "password_invalid"


@dataclass
class Resolution:
    disposition: Disposition
    link: Optional[Link] = None

    @property
    def url(self) -> Optional[str]:
        if self.disposition is Disposition.REDIRECT:
            return self.link.original_url
        return None


def resolve(link: Optional[Link], password: Optional[str] = None,
            now: Optional[datetime] = None) -> Resolution:
    """Порядок проверок: существование, активность, срок, пароль."""
    if link is None:
        return Resolution(Disposition.NOT_FOUND)
    if not link.is_active:
        return Resolution(Disposition.DISABLED, link)

    now = now or utcnow()
    if link.expires_at is not None and now > link.expires_at:
        return Resolution(Disposition.EXPIRED, link)

    if link.is_protected:
        if not password:
            return Resolution(Disposition.PASSWORD_REQUIRED, link)
        if not check_link_password(password, link.password_hash):
            return Resolution(Disposition.PASSWORD_INVALID, link)

    return Resolution(Disposition.REDIRECT, link)


def resolve_key(db: Database, key: str, password: Optional[str] = None,
                now: Optional[datetime] = None) -> Resolution:
    return resolve(store.find_by_key(db, key), password, now)
