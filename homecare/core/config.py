"""
Configuration helpers for the home-care records backend.

Settings are read from environment variables once and cached, so that
stores/services do not fetch os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATA_FILE = PROJECT_ROOT / "data" / "homecare.json"
STORAGE_BACKENDS = ("json", "sql", "memory")


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    storage_backend: str
    data_file: Path
    database_url: str
    document_slot: str
    log_level: str


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _choice(value: str | None, allowed: tuple[str, ...], default: str) -> str:
        candidate = (value or "").strip().lower()
        return candidate if candidate in allowed else default

    data_file = (os.getenv("DATA_FILE") or "").strip()
    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        storage_backend=_choice(os.getenv("STORAGE_BACKEND"), STORAGE_BACKENDS, "json"),
        data_file=Path(data_file) if data_file else DEFAULT_DATA_FILE,
        database_url=(os.getenv("DATABASE_URL") or "").strip(),
        document_slot=(os.getenv("DOCUMENT_SLOT") or "main").strip() or "main",
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    )
