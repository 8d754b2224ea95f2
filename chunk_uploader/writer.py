"""Module writer: persiste le contenu d'une requête (champ multipart ou corps brut) sur disque."""
import logging
import os
import pathlib
import uuid
from typing import Any, AsyncIterable, Optional

import aiofiles
from starlette.datastructures import UploadFile

from .errors import UploadErrorCode, UploadResult

logger = logging.getLogger("writer")

BLOCK_SIZE = 4096


def temp_path_for(dest: pathlib.Path) -> pathlib.Path:
    """Unique sibling of `dest`; keeps the .part suffix so stale ones get reaped."""
    return dest.with_name(f"{dest.name}.{uuid.uuid4().hex[:8]}.part")


def discard(path: pathlib.Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove temporary file %s: %s", path, e)


async def write_file_to(
    dest: pathlib.Path,
    field: Any = None,
    stream: Optional[AsyncIterable[bytes]] = None,
    multipart: Optional[bool] = None,
) -> UploadResult:
    """Write a multipart field, or the raw request body, to `dest`.

    `multipart` defaults to "a field was given". Bytes go to a temporary
    sibling first and are moved onto `dest` in one rename, so an existing
    file at `dest` is replaced whole or not at all.
    """
    dest = pathlib.Path(dest)
    if multipart is None:
        multipart = field is not None
    tmp = temp_path_for(dest)
    if multipart:
        result = await _write_field(field, tmp)
    else:
        result = await _write_stream(stream, tmp)

    if not result:
        discard(tmp)
        return result
    try:
        os.replace(tmp, dest)
    except OSError as e:
        logger.warning("Could not move %s onto %s: %s", tmp, dest, e)
        discard(tmp)
        return UploadResult.failure(UploadErrorCode.MOVE_ERR)
    return UploadResult.ok(dest.name)


async def _write_field(field: Any, tmp: pathlib.Path) -> UploadResult:
    # a missing field or a plain text value posing as the file is refused
    if not isinstance(field, UploadFile):
        logger.warning("Multipart field is not an uploaded file: %s", type(field).__name__)
        return UploadResult.failure(UploadErrorCode.MOVE_ERR)
    try:
        await field.seek(0)
        async with aiofiles.open(tmp, "wb") as out_file:
            while True:
                block = await field.read(BLOCK_SIZE)
                if not block:
                    break
                await out_file.write(block)
    except (OSError, ValueError) as e:
        logger.warning("Failed to relocate uploaded file %s: %s", field.filename, e)
        return UploadResult.failure(UploadErrorCode.MOVE_ERR)
    return UploadResult.ok()


async def _write_stream(stream: Optional[AsyncIterable[bytes]], tmp: pathlib.Path) -> UploadResult:
    if stream is None or not hasattr(stream, "__aiter__"):
        logger.warning("No readable request body")
        return UploadResult.failure(UploadErrorCode.INPUT_ERR)
    source = stream.__aiter__()
    result = UploadResult.ok()
    try:
        async with aiofiles.open(tmp, "wb") as out_file:
            while True:
                try:
                    block = await source.__anext__()
                except StopAsyncIteration:
                    break
                except Exception as e:
                    # starlette raises ClientDisconnect / RuntimeError("Stream consumed")
                    logger.warning("Input stream failed while reading: %s", e)
                    result = UploadResult.failure(UploadErrorCode.INPUT_ERR)
                    break
                if block:
                    await out_file.write(block)
    except OSError as e:
        logger.warning("Failed to write output %s: %s", tmp, e)
        result = UploadResult.failure(UploadErrorCode.OUTPUT_ERR)
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
    return result
