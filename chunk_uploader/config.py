"""Configuration centralisée pour chunk_uploader.

Valeurs lisibles via variables d'environnement pour faciliter le déploiement.
Chaque appel au handler reçoit un `UploadConfig` (defaults + overrides).
"""
import os
import pathlib
import re
import tempfile
from typing import FrozenSet, Iterable, Optional, Union

from pydantic import BaseModel, field_validator


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")

# --- Staging
TARGET_DIR: str = os.getenv("UPLOAD_TARGET_DIR", os.path.join(tempfile.gettempdir(), "plupload"))
FILE_DATA_NAME: str = os.getenv("UPLOAD_FILE_DATA_NAME", "file")

# --- Stale cleanup (max age in seconds, interval 0 = per-request only)
CLEANUP: bool = _get_bool("UPLOAD_CLEANUP", True)
MAX_FILE_AGE: int = int(os.getenv("UPLOAD_MAX_FILE_AGE", str(5 * 3600)))
CLEANUP_INTERVAL: int = int(os.getenv("UPLOAD_CLEANUP_INTERVAL", "0"))

# --- Validation / headers
ALLOW_EXTENSIONS: str = os.getenv("UPLOAD_ALLOW_EXTENSIONS", "")
ALLOW_ORIGIN: str = os.getenv("UPLOAD_ALLOW_ORIGIN", "")

# --- Timing (delay in microseconds, execution time in seconds)
DELAY: int = int(os.getenv("UPLOAD_DELAY", "0"))
MAX_EXECUTION_TIME: int = int(os.getenv("UPLOAD_MAX_EXECUTION_TIME", str(5 * 60)))

_ext_split = re.compile(r"\s*,\s*")


class UploadConfig(BaseModel):
    file_data_name: str = "file"
    target_dir: pathlib.Path = pathlib.Path(TARGET_DIR)
    cleanup: bool = True
    max_file_age: float = 5 * 3600
    file_name: Optional[str] = None
    allow_extensions: Optional[FrozenSet[str]] = None
    allow_origin: Optional[str] = None
    delay: int = 0
    max_execution_time: float = 5 * 60

    @field_validator("allow_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Union[bool, str, Iterable[str], None]):
        # False / "" / None all mean "any extension"
        if not value:
            return None
        if value is True:
            raise ValueError("allow_extensions must be a string or a collection of extensions")
        if isinstance(value, str):
            value = _ext_split.split(value.strip())
        exts = frozenset(e.strip().lstrip(".").lower() for e in value if e and e.strip())
        return exts or None

    @field_validator("allow_origin", mode="before")
    @classmethod
    def _normalize_origin(cls, value):
        return value or None

    @classmethod
    def from_env(cls, **overrides) -> "UploadConfig":
        """Environment defaults merged with per-call overrides."""
        values = {
            "file_data_name": FILE_DATA_NAME,
            "target_dir": TARGET_DIR,
            "cleanup": CLEANUP,
            "max_file_age": MAX_FILE_AGE,
            "allow_extensions": ALLOW_EXTENSIONS,
            "allow_origin": ALLOW_ORIGIN,
            "delay": DELAY,
            "max_execution_time": MAX_EXECUTION_TIME,
        }
        values.update(overrides)
        return cls(**values)


# Helper: export a small dict usable by the frontend
def as_frontend_dict(config: UploadConfig):
    return {
        "file_data_name": config.file_data_name,
        "allow_extensions": sorted(config.allow_extensions) if config.allow_extensions else None,
        "max_file_age": config.max_file_age,
    }
