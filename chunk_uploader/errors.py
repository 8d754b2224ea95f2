"""Module errors: codes d'erreur stables et type de résultat des uploads."""
from enum import IntEnum
from typing import Any, Dict, Optional


class UploadErrorCode(IntEnum):
    TMPDIR_ERR = 100
    INPUT_ERR = 101
    OUTPUT_ERR = 102
    MOVE_ERR = 103
    TYPE_ERR = 104
    UNKNOWN_ERR = 111


ERROR_MESSAGES: Dict[UploadErrorCode, str] = {
    UploadErrorCode.MOVE_ERR: "Failed to move uploaded file.",
    UploadErrorCode.INPUT_ERR: "Failed to open input stream.",
    UploadErrorCode.OUTPUT_ERR: "Failed to open output stream.",
    UploadErrorCode.TMPDIR_ERR: "Failed to open temp directory.",
    UploadErrorCode.TYPE_ERR: "File type not allowed.",
    UploadErrorCode.UNKNOWN_ERR: "Failed due to unknown error.",
}


def classify(code: Any) -> UploadErrorCode:
    """Map any value to a known error code, falling back to UNKNOWN_ERR."""
    if isinstance(code, bool):
        return UploadErrorCode.UNKNOWN_ERR
    try:
        return UploadErrorCode(code)
    except (ValueError, TypeError):
        return UploadErrorCode.UNKNOWN_ERR


def error_message(code: Any) -> str:
    return ERROR_MESSAGES[classify(code)]


class UploadResult:
    """Outcome of one upload step: a success flag plus at most one error code."""

    def __init__(self, success: bool, code: Optional[UploadErrorCode] = None, name: Optional[str] = None):
        self.success = success
        self.code = None if success else classify(code)
        self.name = name

    @classmethod
    def ok(cls, name: Optional[str] = None) -> "UploadResult":
        return cls(True, name=name)

    @classmethod
    def failure(cls, code: Any) -> "UploadResult":
        return cls(False, code)

    @property
    def message(self) -> str:
        if self.code is None:
            return ""
        return ERROR_MESSAGES[self.code]

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        if self.success:
            return f"UploadResult(ok, name={self.name!r})"
        return f"UploadResult(failed, code={int(self.code)})"

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"ok": 1, "name": self.name}
        return {"ok": 0, "error": {"code": int(self.code), "message": self.message}}
