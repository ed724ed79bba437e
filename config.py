import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")

DB_PATH = os.getenv("SHORTLINK_DB_PATH", os.path.join(BASE_DIR, "links.db"))
BASE_URL = os.getenv("SHORTLINK_BASE_URL", "http://localhost:8000").rstrip("/")
LOG_LEVEL = os.getenv("SHORTLINK_LOG_LEVEL", "INFO")

# Сессии
SESSION_DAYS = int(os.getenv("SHORTLINK_SESSION_DAYS", "7"))
COOKIE_SECURE = os.getenv("SHORTLINK_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# Короткие коды
SHORT_CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 5
ALIAS_PATTERN = r"^[A-Za-z0-9_-]{3,64}$"
RESERVED_ALIASES = {
    "api", "auth", "password", "expired", "404", "error", "static",
    "docs", "redoc", "openapi.json", "favicon.ico", "robots.txt",
}

# Аналитика всегда считается по IST (UTC+5:30)
IST_OFFSET_MINUTES = 330
