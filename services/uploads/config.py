from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_PART_SIZE_BYTES = 15 * 1024 * 1024
# S3 rejects non-final parts smaller than 5 MiB.
MIN_PART_SIZE_BYTES = 5 * 1024 * 1024


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class UploadsConfig:
    storage_bucket: str
    storage_region: str
    storage_access_key: str
    storage_secret_key: str
    storage_endpoint_url: str | None = None
    storage_public_endpoint_url: str | None = None
    storage_object_prefix: str = ""
    storage_object_acl: str | None = None
    storage_max_attempts: int = 3
    part_size_bytes: int = DEFAULT_PART_SIZE_BYTES
    authorization_ttl_seconds: int = 3600
    allowed_origins: tuple[str, ...] = field(
        default_factory=lambda: ("http://localhost:3001",)
    )
    session_store_dsn: str | None = None
    events_backend: str = "logging"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_channel: str = "upload_events"
    log_level: str = "INFO"


def load_config() -> UploadsConfig:
    part_size = _env_int("UPLOADS_PART_SIZE_BYTES", DEFAULT_PART_SIZE_BYTES)
    if part_size < MIN_PART_SIZE_BYTES:
        raise ValueError(
            f"UPLOADS_PART_SIZE_BYTES must be at least {MIN_PART_SIZE_BYTES}"
        )
    events_backend = os.getenv("UPLOADS_EVENTS_BACKEND", "logging").lower()
    if events_backend not in {"logging", "redis"}:
        raise ValueError("UPLOADS_EVENTS_BACKEND must be 'logging' or 'redis'")

    return UploadsConfig(
        storage_bucket=_require_env("UPLOADS_STORAGE_BUCKET"),
        storage_region=_require_env("UPLOADS_STORAGE_REGION"),
        storage_access_key=_require_env("UPLOADS_STORAGE_ACCESS_KEY"),
        storage_secret_key=_require_env("UPLOADS_STORAGE_SECRET_KEY"),
        storage_endpoint_url=os.getenv("UPLOADS_STORAGE_ENDPOINT_URL") or None,
        storage_public_endpoint_url=os.getenv("UPLOADS_STORAGE_PUBLIC_ENDPOINT_URL")
        or None,
        storage_object_prefix=os.getenv("UPLOADS_STORAGE_OBJECT_PREFIX", ""),
        storage_object_acl=os.getenv("UPLOADS_STORAGE_OBJECT_ACL") or None,
        storage_max_attempts=_env_int("UPLOADS_STORAGE_MAX_ATTEMPTS", 3),
        part_size_bytes=part_size,
        authorization_ttl_seconds=_env_int("UPLOADS_AUTHORIZATION_TTL_SECONDS", 3600),
        allowed_origins=_env_list("UPLOADS_ALLOWED_ORIGINS", "http://localhost:3001"),
        session_store_dsn=os.getenv("UPLOADS_SESSION_STORE_DSN") or None,
        events_backend=events_backend,
        redis_host=os.getenv("UPLOADS_REDIS_HOST", "localhost"),
        redis_port=_env_int("UPLOADS_REDIS_PORT", 6379),
        redis_db=_env_int("UPLOADS_REDIS_DB", 0),
        redis_channel=os.getenv("UPLOADS_REDIS_CHANNEL", "upload_events"),
        log_level=os.getenv("UPLOADS_LOG_LEVEL", "INFO").upper(),
    )
