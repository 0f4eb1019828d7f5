# ============================================================
# tuition/core/config.py
#
# All configuration comes from environment variables (or a
# local .env file). Nothing secret is hardcoded here.
#
# Usage anywhere in the app:
#   from tuition.core.config import settings
#   print(settings.SUPABASE_URL)
# ============================================================

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List
from decimal import Decimal
from pathlib import Path


class Settings(BaseSettings):
    """
    Settings for the fee setup backend.
    Pydantic reads .env automatically when running locally.
    In Docker / VPS, set these as real environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[3] / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── App Identity ─────────────────────────────────────────
    APP_NAME: str = "Tuition Fee Engine"
    APP_VERSION: str = "1.0.0"

    ENVIRONMENT: str = "development"        # development | production
    DEBUG: bool = False
    # Keep production logs at INFO and silence HTTP wire logs by default.
    HTTP_CLIENT_DEBUG_LOGS: bool = False

    # ── API Settings ─────────────────────────────────────────
    API_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # ── Supabase ─────────────────────────────────────────────
    # Supabase Dashboard → Settings → API
    SUPABASE_URL: str
    SUPABASE_SERVICE_KEY: str               # backend only, bypasses RLS
    DB_SCHEMA: str = "public"

    # ── JWT (verification only) ──────────────────────────────
    # Tokens are issued by the main school suite; we only verify them.
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # ── Fee defaults ─────────────────────────────────────────
    TIMEZONE: str = "Africa/Cairo"
    CURRENCY_LABEL: str = "EGP"
    # Month (1-12) the first installment falls due in, on day 1.
    FIRST_INSTALLMENT_MONTH: int = 9
    # Stage category → base yearly tuition. Overridable per deployment
    # with a JSON value, e.g. STAGE_BASE_PRICES='{"KG": "21000"}'.
    STAGE_BASE_PRICES: Dict[str, Decimal] = {
        "KG":       Decimal("20000"),
        "ابتدائي":  Decimal("30000"),
        "إعدادي":   Decimal("35000"),
        "ثانوي":    Decimal("40000"),
    }

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


# Single instance, import this everywhere
settings = Settings()
