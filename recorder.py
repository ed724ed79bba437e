import logging
from dataclasses import dataclass

from fastapi import Request

import store
from database import Database

logger = logging.getLogger(__name__)

# Порядок важен: подстроки пересекаются (Chrome есть и в UA Safari)
DEVICE_RULES = [
    (("Mobile",), "mobile"),
    (("Tablet",), "tablet"),
    (("Windows", "Mac", "Linux"), "desktop"),
]
BROWSER_RULES = [
    (("Chrome",), "Chrome"),
    (("Firefox",), "Firefox"),
    (("Safari",), "Safari"),
    (("Edge",), "Edge"),
]
OS_RULES = [
    (("Windows",), "Windows"),
    (("Mac",), "macOS"),
    (("Linux",), "Linux"),
    (("Android",), "Android"),
    (("iOS",), "iOS"),
]


def _classify(user_agent: str, rules) -> str:
    for needles, label in rules:
        if any(needle in user_agent for needle in needles):
            return label
    return "unknown"


def classify_device(user_agent: str) -> str:
    return _classify(user_agent or "", DEVICE_RULES)


def classify_browser(user_agent: str) -> str:
    return _classify(user_agent or "", BROWSER_RULES)


def classify_os(user_agent: str) -> str:
    return _classify(user_agent or "", OS_RULES)


def client_ip(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.headers.get("x-real-ip") or "unknown"


@dataclass
class ClickInfo:
    ip: str
    user_agent: str = ""
    referer: str = ""

    @classmethod
    def from_request(cls, request: Request) -> "ClickInfo":
        return cls(
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
            referer=request.headers.get("referer", ""),
        )


async def record_click(db: Database, link_id: int, info: ClickInfo):
    """Записывает переход и увеличивает счетчик. Никогда не бросает исключений."""
    try:
        store.insert_click(
            db,
            link_id=link_id,
            ip=info.ip,
            user_agent=info.user_agent,
            referer=info.referer,
            device=classify_device(info.user_agent),
            browser=classify_browser(info.user_agent),
            os=classify_os(info.user_agent),
        )
    except Exception:
        logger.exception("Analytics tracking error for link %s", link_id)

    try:
        store.increment_clicks(db, link_id)
    except Exception:
        logger.exception("Click counter update failed for link %s", link_id)
