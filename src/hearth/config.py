# src/hearth/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "HEARTH"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load .env from the working directory without overriding real env vars."""
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    store_db_path: Path
    blob_db_path: Path

    # ---- Upstream (OpenAI-compatible) ----
    upstream_api_key: str | None
    upstream_base_url: str
    upstream_model: str
    upstream_temperature: float
    upstream_max_tokens: int | None
    upstream_connect_timeout: float
    upstream_read_timeout: float

    # ---- Tasks ----
    task_retention_seconds: int
    background_enabled: bool

    # ---- Blobs ----
    avatar_max_px: int
    avatar_quality: int

    # ---- Decoding / session ----
    decoder_preview_chars: int
    profile_cache_ttl_seconds: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "hearth") or "hearth"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/hearth"))
        store_db_path = _env_path(_k("STORE_DB_PATH"), data_dir / "store.sqlite3")
        blob_db_path = _env_path(_k("BLOB_DB_PATH"), data_dir / "blobs.sqlite3")

        upstream_api_key = _first_env(_k("UPSTREAM_API_KEY"), "OPENAI_API_KEY", default=None)
        upstream_base_url = _env(_k("UPSTREAM_BASE_URL"), "https://api.openai.com/v1")
        upstream_model = _env(_k("UPSTREAM_MODEL"), "gpt-4o-mini")
        upstream_temperature = _env_float(_k("UPSTREAM_TEMPERATURE"), 0.7)
        max_tokens = _env_int(_k("UPSTREAM_MAX_TOKENS"), 0)
        upstream_connect_timeout = _env_float(_k("UPSTREAM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        upstream_read_timeout = _env_float(_k("UPSTREAM_READ_TIMEOUT_SECONDS"), 60.0)

        task_retention_seconds = _env_int(_k("TASK_RETENTION_SECONDS"), 24 * 60 * 60)
        background_enabled = _env_bool(_k("BACKGROUND_ENABLED"), True)

        avatar_max_px = _env_int(_k("AVATAR_MAX_PX"), 200)
        avatar_quality = _env_int(_k("AVATAR_QUALITY"), 90)

        decoder_preview_chars = _env_int(_k("DECODER_PREVIEW_CHARS"), 500)
        profile_cache_ttl_seconds = _env_float(_k("PROFILE_CACHE_TTL_SECONDS"), 30.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            store_db_path=store_db_path,
            blob_db_path=blob_db_path,
            upstream_api_key=upstream_api_key,
            upstream_base_url=upstream_base_url,
            upstream_model=upstream_model,
            upstream_temperature=upstream_temperature,
            upstream_max_tokens=max_tokens if max_tokens > 0 else None,
            upstream_connect_timeout=upstream_connect_timeout,
            upstream_read_timeout=upstream_read_timeout,
            task_retention_seconds=task_retention_seconds,
            background_enabled=background_enabled,
            avatar_max_px=avatar_max_px,
            avatar_quality=avatar_quality,
            decoder_preview_chars=decoder_preview_chars,
            profile_cache_ttl_seconds=profile_cache_ttl_seconds,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _load_dotenv()
        _SETTINGS = Settings.from_env()
    return _SETTINGS
