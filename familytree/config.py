from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    return url


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    database_url: str
    upload_dir: Path = Path("uploads")
    max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES
    atomic_writes: bool = True
    pool_min_size: int = 1
    pool_max_size: int = 10
    cors_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment.

        ``DATABASE_URL`` is required; everything else has a default suitable
        for local development.
        """

        origins = os.environ.get("FAMILYTREE_CORS_ORIGINS", "*")
        return cls(
            database_url=get_database_url(),
            upload_dir=Path(os.environ.get("FAMILYTREE_UPLOAD_DIR", "uploads")),
            max_upload_bytes=_env_int("FAMILYTREE_MAX_UPLOAD_BYTES", _DEFAULT_MAX_UPLOAD_BYTES),
            atomic_writes=_env_bool("FAMILYTREE_ATOMIC_WRITES", True),
            pool_min_size=_env_int("FAMILYTREE_POOL_MIN", 1),
            pool_max_size=_env_int("FAMILYTREE_POOL_MAX", 10),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            host=os.environ.get("HOST", "127.0.0.1"),
            port=_env_int("PORT", 5000),
        )
