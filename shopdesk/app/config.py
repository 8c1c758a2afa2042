import os
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        self.db_url = os.getenv('DATABASE_URL', 'postgresql://localhost/shopdesk')
        # Comma-separated list of allowed CORS origins for the dashboard frontend.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        self.currency = os.getenv("APP_CURRENCY", "EGP").strip().upper() or "EGP"
        # Used when app_settings has no low_stock_threshold row.
        self.default_low_stock_threshold = _env_int("LOW_STOCK_THRESHOLD", 5)
        self.session_cookie_name = os.getenv("SESSION_COOKIE_NAME", "shopdesk_session").strip() or "shopdesk_session"

settings = Settings()
