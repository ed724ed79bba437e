import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

import allocator
import analytics
import store
from config import BASE_URL
from database import Database
from dependencies import get_current_user, get_db, get_required_user
from enrichment import describe_url, is_suspicious, make_qr_code
from errors import AuthError, NotFoundError, ValidationError
from models import Link, User
from recorder import ClickInfo, record_click
from resolver import Disposition, hash_link_password, resolve_key
from schemas import LinkCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


def normalize_url(url: str) -> Optional[str]:
    default_scheme = "https"
    if not url or not isinstance(url, str):
        return None

    url = url.strip()
    if any(ch.isspace() for ch in url):
        return None

    if '://' not in url:
        url = f"{default_scheme}://{url}"

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not hostname:
        return None
    if '.' not in hostname and hostname != "localhost":
        return None
    return url


def short_url_for(code: str) -> str:
    return f"{BASE_URL}/{code}"


def creation_payload(link: Link, **extra):
    payload = {
        "success": True,
        "shortUrl": short_url_for(link.short_code),
        "shortCode": link.short_code,
        "originalUrl": link.original_url,
        "qrCode": link.qr_code,
        "aiSuggestions": link.ai_suggestions,
        "riskLevel": link.risk_level,
        "expiresAt": link.expires_at,
        "createdAt": link.created_at,
    }
    payload.update(extra)
    return payload


def link_payload(link: Link):
    return {
        "id": link.id,
        "originalUrl": link.original_url,
        "shortCode": link.short_code,
        "shortUrl": short_url_for(link.short_code),
        "customAlias": link.custom_alias,
        "clicks": link.clicks,
        "isActive": link.is_active,
        "isProtected": link.is_protected,
        "expiresAt": link.expires_at,
        "createdAt": link.created_at,
        "lastClicked": link.last_clicked,
        "tags": link.tags,
        "qrCode": link.qr_code,
        "metadata": {
            "aiSuggestions": link.ai_suggestions,
            "isAnalyzed": link.is_analyzed,
            "riskLevel": link.risk_level,
        },
    }


def owned_link(db: Database, link_id: int, user: User) -> Link:
    link = store.get_owned(db, link_id, user.id)
    if not link:
        raise NotFoundError()
    return link


@router.post("/urls", status_code=status.HTTP_201_CREATED)
async def create_url(
    data: LinkCreate,
    response: Response,
    user: Optional[User] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not data.original_url:
        raise ValidationError("URL is required")

    original_url = normalize_url(data.original_url)
    if not original_url:
        raise ValidationError("Invalid URL format")

    # Анонимам доступно только базовое сокращение
    if not user and (data.custom_alias or data.password or data.expires_at):
        raise AuthError("Advanced features require sign-in")

    if is_suspicious(original_url):
        raise ValidationError("URL appears to be suspicious and cannot be shortened")

    if user:
        existing = store.find_duplicate(db, original_url, user.id)
        if existing:
            response.status_code = status.HTTP_200_OK
            return creation_payload(existing, isDuplicate=True)

    short_code = allocator.allocate(db, data.custom_alias)

    # Без внешнего анализа уровень риска всегда low
    ai_suggestions = describe_url(original_url) if user else ""
    risk_level = "low"

    link = store.insert_link(
        db,
        short_code=short_code,
        original_url=original_url,
        custom_alias=short_code if data.custom_alias else None,
        user_id=user.id if user else None,
        expires_at=data.expires_at,
        password_hash=hash_link_password(data.password) if data.password else None,
        tags=data.tags,
        qr_code=make_qr_code(short_url_for(short_code)),
        ai_suggestions=ai_suggestions,
        risk_level=risk_level,
    )
    logger.info("Created link %s (%s) for user %s", link.id, link.short_code, link.user_id)
    return creation_payload(link)


@router.get("/urls")
async def list_urls(
    page: int = 1,
    limit: int = 10,
    user: User = Depends(get_required_user),
    db: Database = Depends(get_db),
):
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    links = store.list_links(db, user.id, limit, (page - 1) * limit)
    total = store.count_links(db, user.id)
    return {
        "urls": [link_payload(link) for link in links],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": -(-total // limit),
        },
    }


@router.get("/urls/{link_id}")
async def get_url(link_id: int, user: User = Depends(get_required_user), db: Database = Depends(get_db)):
    return {"url": link_payload(owned_link(db, link_id, user))}


@router.delete("/urls/{link_id}")
async def delete_url(link_id: int, user: User = Depends(get_required_user), db: Database = Depends(get_db)):
    link = owned_link(db, link_id, user)
    store.delete_link(db, link.id)
    logger.info("Deleted link %s for user %s", link.id, user.id)
    return {"message": "URL deleted successfully"}


@router.post("/urls/{link_id}/qr")
async def regenerate_qr(link_id: int, user: User = Depends(get_required_user), db: Database = Depends(get_db)):
    link = owned_link(db, link_id, user)
    qr_code = make_qr_code(short_url_for(link.short_code))
    if not qr_code:
        raise HTTPException(status_code=500, detail="QR code generation failed")
    store.set_qr_code(db, link.id, qr_code)
    return {"success": True, "qrCode": qr_code}


@router.get("/analytics/overview")
async def analytics_overview(user: User = Depends(get_required_user), db: Database = Depends(get_db)):
    return analytics.overview(db, user.id)


@router.get("/analytics/{link_id}")
async def link_analytics(
    link_id: int,
    period: str = analytics.DEFAULT_PERIOD,
    user: User = Depends(get_required_user),
    db: Database = Depends(get_db),
):
    link = owned_link(db, link_id, user)
    return {
        "url": {
            "id": link.id,
            "originalUrl": link.original_url,
            "shortCode": link.short_code,
            "totalClicks": link.clicks,
            "createdAt": link.created_at,
        },
        "analytics": analytics.summarize(db, link.id, period),
    }


@router.get("/redirect/{code}")
async def api_redirect(
    code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    password: Optional[str] = None,
    db: Database = Depends(get_db),
):
    resolution = resolve_key(db, code, password)
    disposition = resolution.disposition

    if disposition is Disposition.NOT_FOUND:
        return JSONResponse({"error": "URL not found"}, status_code=404)
    if disposition is Disposition.DISABLED:
        return JSONResponse({"error": "URL is disabled"}, status_code=403)
    if disposition is Disposition.EXPIRED:
        return JSONResponse({"error": "URL has expired"}, status_code=410)
    if disposition in (Disposition.PASSWORD_REQUIRED, Disposition.PASSWORD_INVALID):
        message = "Password required" if disposition is Disposition.PASSWORD_REQUIRED else "Invalid password"
        return JSONResponse(
            {"error": message, "requiresPassword": True, "shortCode": code},
            status_code=401
        )

    background_tasks.add_task(record_click, db, resolution.link.id, ClickInfo.from_request(request))
    return RedirectResponse(resolution.url, status_code=302)
