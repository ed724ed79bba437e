from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Optional

from config import IST_OFFSET_MINUTES
from database import Database, to_db_time, utcnow

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "all": None}
DEFAULT_PERIOD = "7d"
TOP_REFERRERS = 10

# Модификатор SQLite для сдвига UTC -> IST
IST_MODIFIER = f"+{IST_OFFSET_MINUTES} minutes"


def window_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    days = PERIODS.get(period, PERIODS[DEFAULT_PERIOD])
    if days is None:
        return None
    return (now or utcnow()) - timedelta(days=days)


class ClickQuery:
    """Группировки переходов одной ссылки за выбранный период."""

    def __init__(self, db: Database, link_id: int, since: Optional[datetime] = None):
        self.db = db
        self.where = "link_id = ?"
        self.params = [link_id]
        if since is not None:
            self.where += " AND timestamp >= ?"
            self.params.append(to_db_time(since))

    def _rows(self, select: str, group_by: str, order_by: str, limit: Optional[int] = None,
              leading=()):
        sql = f"SELECT {select}, COUNT(*) AS count FROM clicks WHERE {self.where} " \
              f"GROUP BY {group_by} ORDER BY {order_by}"
        if limit:
            sql += f" LIMIT {int(limit)}"
        return self.db.conn.execute(sql, (*leading, *self.params)).fetchall()

    def totals(self):
        row = self.db.conn.execute(
            f"SELECT COUNT(*), COUNT(DISTINCT ip) FROM clicks WHERE {self.where}",
            self.params
        ).fetchone()
        return row[0], row[1]

    def daily(self):
        rows = self._rows(
            "strftime('%Y-%m-%d', timestamp, ?) AS bucket", "bucket", "bucket",
            leading=(IST_MODIFIER,)
        )
        return [{"date": row["bucket"], "clicks": row["count"]} for row in rows]

    def hourly(self):
        rows = self._rows(
            "strftime('%Y-%m-%d %H:00', timestamp, ?) AS bucket", "bucket", "bucket",
            leading=(IST_MODIFIER,)
        )
        return [
            {"datetime": row["bucket"], "hour": int(row["bucket"][11:13]), "clicks": row["count"]}
            for row in rows
        ]

    def peak_hours(self):
        rows = self._rows(
            "CAST(strftime('%H', timestamp, ?) AS INTEGER) AS hour", "hour", "hour",
            leading=(IST_MODIFIER,)
        )
        return [{"hour": row["hour"], "clicks": row["count"]} for row in rows]

    def by_column(self, column: str, limit: Optional[int] = None):
        rows = self._rows(f"{column} AS name", "name", "count DESC, name", limit=limit)
        return [{"name": row["name"] or "Unknown", "value": row["count"]} for row in rows]


def weekly_from_daily(daily):
    weeks = OrderedDict()
    for item in daily:
        iso = date.fromisoformat(item["date"]).isocalendar()
        key = f"{iso[0]}-W{iso[1]:02d}"
        weeks[key] = weeks.get(key, 0) + item["clicks"]
    return [{"week": week, "clicks": clicks} for week, clicks in weeks.items()]


def summarize(db: Database, link_id: int, period: str = DEFAULT_PERIOD,
              now: Optional[datetime] = None):
    if period not in PERIODS:
        period = DEFAULT_PERIOD
    query = ClickQuery(db, link_id, window_start(period, now))

    total, unique = query.totals()
    daily = query.daily()
    return {
        "totalClicks": total,
        "uniqueClicks": unique,
        "period": period,
        "charts": {
            "dailyClicks": daily,
            "hourlyClicks": query.hourly(),
            "weeklyClicks": weekly_from_daily(daily),
            "peakHours": query.peak_hours(),
            "devices": query.by_column("device"),
            "browsers": query.by_column("browser"),
            "os": query.by_column("os"),
            "countries": query.by_column("country"),
            "referrers": query.by_column("referrer_host(referer)", limit=TOP_REFERRERS),
        },
    }


def _link_brief(row):
    return {
        "id": row["id"],
        "shortCode": row["short_code"],
        "originalUrl": row["original_url"],
        "clicks": row["clicks"],
        "lastClicked": row["last_clicked"],
        "createdAt": row["created_at"],
        "title": row["title"],
    }


def overview(db: Database, user_id: int):
    rows = db.conn.execute(
        "SELECT * FROM links WHERE user_id = ? ORDER BY created_at DESC, id DESC",
        (user_id,)
    ).fetchall()
    if not rows:
        return {
            "totalUrls": 0,
            "totalClicks": 0,
            "avgClicksPerUrl": 0,
            "topPerformingUrls": [],
            "recentActivity": [],
        }

    total_clicks = sum(row["clicks"] for row in rows)
    top = sorted((row for row in rows if row["clicks"] > 0), key=lambda r: r["clicks"], reverse=True)
    recent = sorted(rows, key=lambda r: r["last_clicked"] or r["created_at"], reverse=True)
    return {
        "totalUrls": len(rows),
        "totalClicks": total_clicks,
        "avgClicksPerUrl": round(total_clicks / len(rows), 1),
        "topPerformingUrls": [_link_brief(row) for row in top[:5]],
        "recentActivity": [_link_brief(row) for row in recent[:5]],
    }
