"""Module handler: UploadRequest and UploadHandler (validation, routing, finalization)."""
import asyncio
import logging
import os
import pathlib
import re
from typing import Any, AsyncIterable, Mapping, Optional

from .cleanup import cleanup_stale
from .config import UploadConfig
from .errors import UploadErrorCode, UploadResult
from .reassembler import write_chunks_to_file
from .sanitize import new_file_token, sanitize_file_name
from .writer import write_file_to

logger = logging.getLogger("handler")

PART_SUFFIX = ".part"
CHUNK_DIR_SUFFIX = "_d.part"
_int_prefix = re.compile(r"\s*([+-]?\d+)")


def _to_int(value: Any) -> int:
    """intval-like coercion: leading integer digits ("12abc" -> 12, "3.0" -> 3),
    0 when there are none, negatives clamp to 0."""
    m = _int_prefix.match(str(value)) if value is not None else None
    if not m:
        return 0
    return max(0, int(m.group(1)))


class UploadRequest:
    def __init__(
        self,
        file_name: Optional[str] = None,
        chunk: int = 0,
        chunks: int = 0,
        field: Any = None,
        stream: Optional[AsyncIterable[bytes]] = None,
        multipart: Optional[bool] = None,
    ):
        self.file_name = file_name or new_file_token()
        self.chunk = chunk
        self.chunks = chunks
        self.field = field
        self.stream = stream
        self.multipart = field is not None if multipart is None else multipart

    @classmethod
    def from_params(cls, params: Mapping[str, Any], field: Any = None,
                    stream: Optional[AsyncIterable[bytes]] = None,
                    multipart: Optional[bool] = None) -> "UploadRequest":
        return cls(
            file_name=params.get("name") or None,
            chunk=_to_int(params.get("chunk", 0)),
            chunks=_to_int(params.get("chunks", 0)),
            field=field,
            stream=stream,
            multipart=multipart,
        )

    @property
    def is_raw(self) -> bool:
        return not self.multipart

    @property
    def is_chunked(self) -> bool:
        return self.chunks > 0

    @property
    def is_last_chunk(self) -> bool:
        return self.chunk == self.chunks - 1


def extension_of(file_name: str) -> str:
    base = pathlib.PurePath(file_name).name
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1].lower()


class UploadHandler:
    def __init__(self, config: Optional[UploadConfig] = None):
        self.config = config or UploadConfig.from_env()

    async def handle(self, request: UploadRequest) -> UploadResult:
        """Process one request; never raises, always returns a fresh result."""
        try:
            return await asyncio.wait_for(self._handle(request), timeout=self.config.max_execution_time)
        except asyncio.TimeoutError:
            logger.error("Upload %s exceeded %ss", request.file_name, self.config.max_execution_time)
            return UploadResult.failure(UploadErrorCode.UNKNOWN_ERR)
        except Exception as e:
            logger.exception("Upload %s failed unexpectedly: %s", request.file_name, e)
            return UploadResult.failure(UploadErrorCode.UNKNOWN_ERR)

    def _ensure_target_dir(self) -> bool:
        target_dir = pathlib.Path(self.config.target_dir)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create staging directory %s: %s", target_dir, e)
            return False
        return target_dir.is_dir() and os.access(target_dir, os.W_OK | os.X_OK)

    async def _cleanup(self) -> None:
        try:
            await asyncio.to_thread(cleanup_stale, self.config.target_dir, self.config.max_file_age)
        except Exception as e:
            logger.warning("Stale upload cleanup failed: %s", e)

    def _is_allowed(self, file_name: str) -> bool:
        allowed = self.config.allow_extensions
        return not allowed or extension_of(file_name) in allowed

    async def _handle(self, request: UploadRequest) -> UploadResult:
        conf = self.config
        if not self._ensure_target_dir():
            return self._fail(UploadErrorCode.TMPDIR_ERR, request)

        if conf.cleanup:
            await self._cleanup()

        # fake network congestion
        if conf.delay:
            await asyncio.sleep(conf.delay / 1_000_000)

        file_name = sanitize_file_name(conf.file_name or request.file_name) or new_file_token()
        if not self._is_allowed(file_name):
            return self._fail(UploadErrorCode.TYPE_ERR, request, file_name)

        file_path = pathlib.Path(conf.target_dir) / file_name
        tmp_path = file_path.with_name(file_name + PART_SUFFIX)
        logger.info("Upload %s: chunk %d/%d", file_name, request.chunk, request.chunks)

        if request.is_chunked:
            if request.chunk >= request.chunks:
                return self._fail(UploadErrorCode.MOVE_ERR, request, file_name)
            chunk_dir = file_path.with_name(file_name + CHUNK_DIR_SUFFIX)
            try:
                chunk_dir.mkdir(exist_ok=True)
            except OSError as e:
                logger.warning("Cannot create chunk directory %s: %s", chunk_dir, e)
                return self._fail(UploadErrorCode.OUTPUT_ERR, request, file_name)

            result = await self._write(chunk_dir / str(request.chunk), request)
            if not result:
                return self._fail(result.code, request, file_name)
            if not request.is_last_chunk:
                return UploadResult.ok(file_name)

            result = await write_chunks_to_file(chunk_dir, tmp_path, request.chunks)
        else:
            result = await self._write(tmp_path, request)
        if not result:
            return self._fail(result.code, request, file_name)

        return self._finalize(tmp_path, file_path, request)

    async def _write(self, dest: pathlib.Path, request: UploadRequest) -> UploadResult:
        return await write_file_to(dest, field=request.field, stream=request.stream, multipart=request.multipart)

    def _finalize(self, tmp_path: pathlib.Path, file_path: pathlib.Path, request: UploadRequest) -> UploadResult:
        try:
            os.replace(tmp_path, file_path)
        except FileNotFoundError:
            # a concurrent request carrying the same last chunk got here first
            if file_path.is_file():
                logger.info("Upload %s already finalized", file_path.name)
                return UploadResult.ok(file_path.name)
            return self._fail(UploadErrorCode.MOVE_ERR, request, file_path.name)
        except OSError as e:
            logger.warning("Cannot finalize %s: %s", file_path, e)
            return self._fail(UploadErrorCode.MOVE_ERR, request, file_path.name)
        logger.info("Upload %s finalized", file_path.name)
        return UploadResult.ok(file_path.name)

    def _fail(self, code, request: UploadRequest, file_name: Optional[str] = None) -> UploadResult:
        result = UploadResult.failure(code)
        logger.warning("Upload %s failed with %d", file_name or request.file_name, result.code)
        return result
