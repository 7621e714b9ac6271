from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../craftshop repo root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float | None = None) -> float | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    backend_url: str
    backend_key: str
    backend_timeout: float
    db_path: str
    export_dir: str
    currency: str
    currency_code: str
    decimals: int
    shipping_fee: float
    site_name: str
    session_cookie: str
    max_carts: int
    bot_token: str
    admin_id: int
    log_level: str


def load_settings() -> Settings:
    return Settings(
        backend_url=_get_env("BACKEND_URL", "SUPABASE_URL", default="") or "",
        backend_key=_get_env("BACKEND_KEY", "SUPABASE_ANON_KEY", default="") or "",
        backend_timeout=_get_float("BACKEND_TIMEOUT", default=10.0) or 10.0,
        db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "craftshop.db")),
        export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
        currency=_get_env("CURRENCY", default="৳") or "৳",
        currency_code=_get_env("CURRENCY_CODE", default="BDT") or "BDT",
        decimals=_get_int("DECIMALS", default=2) or 2,
        shipping_fee=_get_float("SHIPPING_FEE", default=50.0) or 0.0,
        site_name=_get_env("SITE_NAME", default="Cupid Crochy") or "Cupid Crochy",
        session_cookie=_get_env("SESSION_COOKIE", default="craftshop_session") or "craftshop_session",
        max_carts=_get_int("MAX_CARTS", default=1000) or 1000,
        bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
        admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", default=0) or 0,
        log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
    )


settings = load_settings()
