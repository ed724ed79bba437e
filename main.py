import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

import api
import auth
from config import BASE_URL, DB_PATH, LOG_LEVEL, TEMPLATES_DIR
from database import Database
from dependencies import get_current_user, get_db
from models import User
from recorder import ClickInfo, record_click
from resolver import Disposition, resolve_key

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("shortlink")

# Инициализация шаблонов
templates = Jinja2Templates(directory=TEMPLATES_DIR)


def create_app(db_path: str = DB_PATH) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(db_path)
        db.init_schema()
        app.state.db = db
        try:
            yield
        finally:
            db.close()

    app = FastAPI(title="Shortlink", lifespan=lifespan)
    app.include_router(auth.router)
    app.include_router(api.router)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        return JSONResponse({"detail": message}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(sqlite3.OperationalError)
    async def store_error_handler(request: Request, exc: sqlite3.OperationalError):
        logger.error("Database error on %s: %s", request.url.path, exc)
        return JSONResponse(
            {"detail": "Service temporarily unavailable"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    # Страницы
    @app.get("/")
    async def read_root(request: Request, user: Optional[User] = Depends(get_current_user)):
        return templates.TemplateResponse(
            request, "index.html", {"user": user, "base_url": BASE_URL}
        )

    @app.get("/password/{code}")
    async def password_page(request: Request, code: str, error: Optional[str] = None):
        return templates.TemplateResponse(
            request, "password.html", {"code": code, "invalid": error == "invalid"}
        )

    @app.get("/expired")
    async def expired_page(request: Request):
        return templates.TemplateResponse(
            request, "expired.html", {}, status_code=status.HTTP_410_GONE
        )

    @app.get("/404")
    async def not_found_page(request: Request):
        return templates.TemplateResponse(
            request, "not_found.html", {}, status_code=status.HTTP_404_NOT_FOUND
        )

    @app.get("/error")
    async def error_page(request: Request):
        return templates.TemplateResponse(request, "error.html", {})

    # Должен быть последним: перехватывает любой одиночный сегмент пути
    @app.get("/{code}")
    async def redirect(
        code: str,
        request: Request,
        background_tasks: BackgroundTasks,
        password: Optional[str] = None,
        db: Database = Depends(get_db),
    ):
        try:
            resolution = resolve_key(db, code, password)
        except Exception:
            logger.exception("Redirect error for %s", code)
            return RedirectResponse("/error", status_code=302)

        disposition = resolution.disposition
        # Отключенная ссылка для публичного пути неотличима от несуществующей
        if disposition in (Disposition.NOT_FOUND, Disposition.DISABLED):
            return RedirectResponse("/404", status_code=302)
        if disposition is Disposition.EXPIRED:
            return RedirectResponse("/expired", status_code=302)
        if disposition is Disposition.PASSWORD_REQUIRED:
            return RedirectResponse(f"/password/{code}", status_code=302)
        if disposition is Disposition.PASSWORD_INVALID:
            return RedirectResponse(f"/password/{code}?error=invalid", status_code=302)

        background_tasks.add_task(record_click, db, resolution.link.id, ClickInfo.from_request(request))
        return RedirectResponse(resolution.url, status_code=302)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
