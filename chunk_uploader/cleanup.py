"""Module cleanup: removal of stale staging entries (.part files and chunk directories)."""
import asyncio
import logging
import os
import pathlib
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger("cleanup")


class CleanupResult:
    def __init__(self, max_file_age: float):
        self.max_file_age = max_file_age
        self.scanned = 0
        self.deleted = 0
        self.deleted_paths: List[str] = []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_file_age": self.max_file_age,
            "scanned": self.scanned,
            "deleted": self.deleted,
            "deleted_paths": list(self.deleted_paths),
        }


def remove_tree(path) -> bool:
    """Remove a directory tree entry by entry, bottom-up.

    Entries that disappear while walking are skipped, so calling it again on
    a half-removed tree finishes the job. Returns True once `path` is gone.
    """
    path = pathlib.Path(path)
    if not path.exists():
        return True
    if not path.is_dir():
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove %s: %s", path, e)
        return not path.exists()

    for root, dirs, files in os.walk(path, topdown=False):
        for name in files:
            try:
                os.unlink(os.path.join(root, name))
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove %s: %s", os.path.join(root, name), e)
        for name in dirs:
            entry = os.path.join(root, name)
            try:
                if os.path.islink(entry):
                    os.unlink(entry)
                else:
                    os.rmdir(entry)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove %s: %s", entry, e)
    try:
        path.rmdir()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
    return not path.exists()


def cleanup_stale(target_dir, max_file_age: float, now: Optional[float] = None) -> CleanupResult:
    """Remove in-flight entries of `target_dir` at least `max_file_age` seconds old."""
    res = CleanupResult(max_file_age)
    root = pathlib.Path(target_dir)
    if not root.is_dir():
        return res
    if now is None:
        now = time.time()

    for entry in root.glob("*.part"):
        res.scanned += 1
        try:
            if now - entry.stat().st_mtime < max_file_age:
                continue
            if entry.is_dir() and not entry.is_symlink():
                removed = remove_tree(entry)
            else:
                entry.unlink()
                removed = True
        except FileNotFoundError:
            # gone already (finalized or reaped concurrently)
            continue
        except OSError as e:
            logger.warning("Could not clean up %s: %s", entry, e)
            continue
        if removed:
            res.deleted += 1
            res.deleted_paths.append(str(entry))

    if res.deleted:
        logger.info("Removed %d stale upload(s) from %s", res.deleted, root)
    return res


class CleanupScheduler:
    """Runs `cleanup_stale` every `interval` seconds on the event loop."""

    def __init__(self, target_dir, max_file_age: float, interval: float):
        self.target_dir = target_dir
        self.max_file_age = max_file_age
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Cleanup scheduled every %ss for %s", self.interval, self.target_dir)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> Optional[CleanupResult]:
        try:
            return await asyncio.to_thread(cleanup_stale, self.target_dir, self.max_file_age)
        except Exception as e:
            logger.exception("Scheduled cleanup failed: %s", e)
            return None

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)
