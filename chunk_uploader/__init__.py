from .config import UploadConfig
from .errors import UploadErrorCode, UploadResult
from .handler import UploadHandler, UploadRequest
from .cleanup import CleanupScheduler, cleanup_stale

__all__ = [
    "UploadConfig",
    "UploadErrorCode",
    "UploadResult",
    "UploadHandler",
    "UploadRequest",
    "CleanupScheduler",
    "cleanup_stale",
]
