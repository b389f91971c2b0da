"""Configuration settings for the upload gateway."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

# Upload limits
MAX_FILE_SIZE = 500 * 1024 * 1024  # 500MB per part
MAX_SINGLE_FILES = 1  # "file" field
MAX_MULTI_FILES = 20  # "files" field
UPLOAD_FIELDS = {"file": MAX_SINGLE_FILES, "files": MAX_MULTI_FILES}
MULTIPART_OVERHEAD = 1024 * 1024  # boundaries, part headers and plain fields

# Allowed MIME types and the extension used when the client filename has none
ALLOWED_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "video/mp4": ".mp4",
}

# Static serving
FILES_PREFIX = "/files"
CACHE_CONTROL = "public, max-age=3600"

# Defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_UPLOAD_DIR = "./public/uploads"
DEFAULT_MAX_AGE_HOURS = 24
DEFAULT_SWEEP_INTERVAL = 60 * 60  # 1 hour


def _get_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    upload_dir: Path
    upload_token: str = ""
    public_base: Optional[str] = None
    max_age_hours: int = DEFAULT_MAX_AGE_HOURS
    sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @property
    def max_age_seconds(self) -> int:
        return self.max_age_hours * 60 * 60

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Create Settings from environment variables."""
        if environ is None:
            environ = os.environ

        log_dir = environ.get("LOG_DIR")
        return cls(
            upload_dir=Path(environ.get("UPLOAD_DIR") or DEFAULT_UPLOAD_DIR),
            upload_token=environ.get("UPLOAD_TOKEN", ""),
            public_base=environ.get("PUBLIC_BASE") or None,
            max_age_hours=_get_int(environ, "MAX_AGE_HOURS", DEFAULT_MAX_AGE_HOURS),
            sweep_interval_seconds=_get_int(environ, "SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL),
            host=environ.get("HOST") or DEFAULT_HOST,
            port=_get_int(environ, "PORT", DEFAULT_PORT),
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
            log_dir=Path(log_dir) if log_dir else None,
        )
