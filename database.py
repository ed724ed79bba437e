import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from errors import UnavailableError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def referrer_host(referer: Optional[str]) -> str:
    if not referer:
        return "Direct"
    try:
        parsed = urlparse(referer)
        host = parsed.netloc
    except ValueError:
        return "Unknown"
    if parsed.scheme in ("http", "https") and host:
        return host
    return "Unknown"


class Database:
    """Одно соединение с SQLite на весь процесс.

    Создается при старте приложения, передается обработчикам через
    зависимость get_db и закрывается при остановке.
    """

    def __init__(self, path: str):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.path, check_same_thread=False)
            except sqlite3.OperationalError as e:
                raise UnavailableError(f"Database unavailable: {e}")
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.create_function("referrer_host", 1, referrer_host, deterministic=True)
            self._conn = conn
            logger.info("Opened database %s", self.path)
        return self._conn

    @contextmanager
    def transaction(self):
        conn = self.conn
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Closed database %s", self.path)

    def init_schema(self):
        with self.transaction() as conn:
            # Таблица пользователей
            conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                hashed_password TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'user',
                created_at TIMESTAMP NOT NULL,
                last_login TIMESTAMP
            )
            """)

            # Таблица сессий
            conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                session_token TEXT NOT NULL,
                expires_at TIMESTAMP NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            )
            """)

            # Таблица ссылок
            conn.execute("""
            CREATE TABLE IF NOT EXISTS links (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                short_code TEXT UNIQUE NOT NULL,
                custom_alias TEXT UNIQUE,
                original_url TEXT NOT NULL,
                title TEXT,
                description TEXT,
                user_id INTEGER,
                clicks INTEGER NOT NULL DEFAULT 0,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                expires_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                last_clicked TIMESTAMP,
                tags TEXT NOT NULL DEFAULT '[]',
                password_hash TEXT,
                ai_suggestions TEXT NOT NULL DEFAULT '',
                is_analyzed BOOLEAN NOT NULL DEFAULT FALSE,
                risk_level TEXT NOT NULL DEFAULT 'low'
                    CHECK (risk_level IN ('low', 'medium', 'high')),
                qr_code TEXT NOT NULL DEFAULT '',
                FOREIGN KEY(user_id) REFERENCES users(id)
            )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_links_user ON links (user_id, created_at)"
            )

            # Таблица переходов
            conn.execute("""
            CREATE TABLE IF NOT EXISTS clicks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                link_id INTEGER NOT NULL,
                timestamp TIMESTAMP NOT NULL,
                ip TEXT NOT NULL,
                user_agent TEXT NOT NULL DEFAULT '',
                referer TEXT NOT NULL DEFAULT '',
                device TEXT NOT NULL DEFAULT 'unknown'
                    CHECK (device IN ('desktop', 'mobile', 'tablet', 'unknown')),
                browser TEXT NOT NULL DEFAULT 'unknown',
                os TEXT NOT NULL DEFAULT 'unknown',
                country TEXT NOT NULL DEFAULT 'Unknown',
                city TEXT,
                FOREIGN KEY(link_id) REFERENCES links(id) ON DELETE CASCADE
            )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_clicks_link_time ON clicks (link_id, timestamp)"
            )
