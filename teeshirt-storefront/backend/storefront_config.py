from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]  # repo root, next to pyproject.toml
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int) -> int:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_key: str
    secret_key: str
    profile_retry_attempts: int
    profile_retry_delay: float
    log_level: str


def load_settings() -> Settings:
    return Settings(
        supabase_url=_get_env("SUPABASE_URL", default="") or "",
        supabase_key=_get_env("SUPABASE_ANON_KEY", "SUPABASE_KEY", default="") or "",
        secret_key=_get_env("SECRET_KEY", "FLASK_SECRET_KEY", default="dev-secret-key-change-in-production")
        or "dev-secret-key-change-in-production",
        profile_retry_attempts=_get_int("PROFILE_RETRY_ATTEMPTS", default=3),
        profile_retry_delay=_get_float("PROFILE_RETRY_DELAY", default=1.0),
        log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
    )


settings = load_settings()
