import json
import sqlite3
from datetime import datetime
from typing import List, Optional

from database import Database, to_db_time, utcnow
from errors import ConflictError
from models import Click, Link


def find_by_key(db: Database, key: str) -> Optional[Link]:
    row = db.conn.execute(
        "SELECT * FROM links WHERE short_code = ? OR custom_alias = ?",
        (key, key)
    ).fetchone()
    return Link.from_row(row) if row else None


def key_in_use(db: Database, key: str) -> bool:
    row = db.conn.execute(
        "SELECT 1 FROM links WHERE short_code = ? OR custom_alias = ?",
        (key, key)
    ).fetchone()
    return row is not None


def get_owned(db: Database, link_id: int, user_id: int) -> Optional[Link]:
    row = db.conn.execute(
        "SELECT * FROM links WHERE id = ? AND user_id = ?",
        (link_id, user_id)
    ).fetchone()
    return Link.from_row(row) if row else None


def find_duplicate(db: Database, original_url: str, user_id: int) -> Optional[Link]:
    row = db.conn.execute(
        "SELECT * FROM links WHERE original_url = ? AND user_id = ? ORDER BY id LIMIT 1",
        (original_url, user_id)
    ).fetchone()
    return Link.from_row(row) if row else None


def insert_link(
    db: Database,
    *,
    short_code: str,
    original_url: str,
    custom_alias: Optional[str] = None,
    user_id: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    password_hash: Optional[str] = None,
    tags: Optional[List[str]] = None,
    qr_code: str = "",
    ai_suggestions: str = "",
    risk_level: str = "low",
) -> Link:
    now = to_db_time(utcnow())
    try:
        with db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO links (
                    short_code, custom_alias, original_url, user_id, expires_at,
                    created_at, updated_at, tags, password_hash, qr_code,
                    ai_suggestions, is_analyzed, risk_level
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    short_code, custom_alias, original_url, user_id,
                    to_db_time(expires_at), now, now, json.dumps(tags or []),
                    password_hash, qr_code, ai_suggestions, bool(ai_suggestions),
                    risk_level,
                )
            )
            link_id = cursor.lastrowid
    except sqlite3.IntegrityError:
        raise ConflictError("Short code or alias is already taken")
    return get_link(db, link_id)


def get_link(db: Database, link_id: int) -> Optional[Link]:
    row = db.conn.execute("SELECT * FROM links WHERE id = ?", (link_id,)).fetchone()
    return Link.from_row(row) if row else None


def list_links(db: Database, user_id: int, limit: int, offset: int) -> List[Link]:
    rows = db.conn.execute(
        """
        SELECT * FROM links
        WHERE user_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        (user_id, limit, offset)
    ).fetchall()
    return [Link.from_row(row) for row in rows]


def count_links(db: Database, user_id: int) -> int:
    return db.conn.execute(
        "SELECT COUNT(*) FROM links WHERE user_id = ?", (user_id,)
    ).fetchone()[0]


def set_qr_code(db: Database, link_id: int, qr_code: str):
    with db.transaction() as conn:
        conn.execute(
            "UPDATE links SET qr_code = ?, updated_at = ? WHERE id = ?",
            (qr_code, to_db_time(utcnow()), link_id)
        )


def delete_link(db: Database, link_id: int):
    # Сначала переходы, потом сама ссылка
    with db.transaction() as conn:
        conn.execute("DELETE FROM clicks WHERE link_id = ?", (link_id,))
        conn.execute("DELETE FROM links WHERE id = ?", (link_id,))


def increment_clicks(db: Database, link_id: int, when: Optional[datetime] = None):
    when = to_db_time(when or utcnow())
    with db.transaction() as conn:
        conn.execute(
            """
            UPDATE links
            SET clicks = clicks + 1, last_clicked = ?, updated_at = ?
            WHERE id = ?
            """,
            (when, when, link_id)
        )


def insert_click(
    db: Database,
    *,
    link_id: int,
    ip: str,
    user_agent: str = "",
    referer: str = "",
    device: str = "unknown",
    browser: str = "unknown",
    os: str = "unknown",
    country: str = "Unknown",
    timestamp: Optional[datetime] = None,
) -> Click:
    timestamp = timestamp or utcnow()
    with db.transaction() as conn:
        cursor = conn.execute(
            """
            INSERT INTO clicks (
                link_id, timestamp, ip, user_agent, referer,
                device, browser, os, country
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                link_id, to_db_time(timestamp), ip, user_agent, referer,
                device, browser, os, country,
            )
        )
    return Click(
        id=cursor.lastrowid,
        link_id=link_id,
        timestamp=timestamp,
        ip=ip,
        user_agent=user_agent,
        referer=referer,
        device=device,
        browser=browser,
        os=os,
        country=country,
    )


def count_clicks(db: Database, link_id: int) -> int:
    return db.conn.execute(
        "SELECT COUNT(*) FROM clicks WHERE link_id = ?", (link_id,)
    ).fetchone()[0]
