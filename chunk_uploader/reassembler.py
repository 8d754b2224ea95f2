"""Module reassembler: concatenates indexed chunk files into one artifact."""
import asyncio
import logging
import os
import pathlib

import aiofiles

from .cleanup import remove_tree
from .errors import UploadErrorCode, UploadResult
from .writer import BLOCK_SIZE, discard, temp_path_for

logger = logging.getLogger("reassembler")


async def _copy_chunk(chunk_path: pathlib.Path, out_file) -> UploadResult:
    try:
        async with aiofiles.open(chunk_path, "rb") as in_file:
            while True:
                try:
                    block = await in_file.read(BLOCK_SIZE)
                except OSError as e:
                    logger.warning("Failed to read chunk %s: %s", chunk_path, e)
                    return UploadResult.failure(UploadErrorCode.INPUT_ERR)
                if not block:
                    break
                try:
                    await out_file.write(block)
                except OSError as e:
                    logger.warning("Failed to write chunk %s to output: %s", chunk_path, e)
                    return UploadResult.failure(UploadErrorCode.OUTPUT_ERR)
    except FileNotFoundError:
        # removed by a concurrent finalization
        return UploadResult.failure(UploadErrorCode.MOVE_ERR)
    except OSError as e:
        logger.warning("Failed to open chunk %s: %s", chunk_path, e)
        return UploadResult.failure(UploadErrorCode.INPUT_ERR)
    return UploadResult.ok()


async def write_chunks_to_file(chunk_dir, dest, chunks: int) -> UploadResult:
    """Write chunks `0..chunks-1` of `chunk_dir` to `dest` in index order.

    Nothing is written to `dest` and the chunk directory is kept unless every
    chunk was present and readable; on success the directory is removed.
    """
    chunk_dir = pathlib.Path(chunk_dir)
    dest = pathlib.Path(dest)
    tmp = temp_path_for(dest)

    result = UploadResult.ok(dest.name)
    try:
        async with aiofiles.open(tmp, "wb") as out_file:
            for i in range(chunks):
                chunk_path = chunk_dir / str(i)
                if not chunk_path.exists():
                    logger.warning("Chunk %d of %d missing in %s", i, chunks, chunk_dir)
                    result = UploadResult.failure(UploadErrorCode.MOVE_ERR)
                    break
                copied = await _copy_chunk(chunk_path, out_file)
                if not copied:
                    result = copied
                    break
    except OSError as e:
        logger.warning("Failed to open output %s: %s", tmp, e)
        result = UploadResult.failure(UploadErrorCode.OUTPUT_ERR)

    if not result:
        discard(tmp)
        return result
    try:
        os.replace(tmp, dest)
    except OSError as e:
        logger.warning("Could not move %s onto %s: %s", tmp, dest, e)
        discard(tmp)
        return UploadResult.failure(UploadErrorCode.MOVE_ERR)

    if not await asyncio.to_thread(remove_tree, chunk_dir):
        logger.warning("Chunk directory %s was not fully removed", chunk_dir)
    logger.info("Reassembled %d chunks into %s", chunks, dest)
    return result
