import logging
import re
import secrets

import store
from config import ALIAS_PATTERN, MAX_CODE_ATTEMPTS, RESERVED_ALIASES, SHORT_CODE_LENGTH
from database import Database
from errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

_alias_re = re.compile(ALIAS_PATTERN)


def random_code(length: int = SHORT_CODE_LENGTH) -> str:
    # token_urlsafe дает ~1.3 символа на байт, лишнее отрезаем
    return secrets.token_urlsafe(length)[:length]


def validate_alias(db: Database, alias: str) -> str:
    alias = alias.strip()
    if not _alias_re.match(alias) or alias.lower() in RESERVED_ALIASES:
        raise ValidationError(
            "Custom alias must be 3-64 characters of letters, digits, '-' or '_'"
        )
    if store.key_in_use(db, alias):
        raise ConflictError("Custom alias is already taken")
    return alias


def generate_code(db: Database) -> str:
    for attempt in range(MAX_CODE_ATTEMPTS):
        code = random_code()
        if not store.key_in_use(db, code):
            return code
        logger.warning("Short code collision on attempt %d", attempt + 1)
    raise ConflictError("Failed to generate unique short URL, please try again")


def allocate(db: Database, custom_alias=None) -> str:
    if custom_alias:
        return validate_alias(db, custom_alias)
    return generate_code(db)
