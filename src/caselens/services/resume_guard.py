"""PID lock file that keeps two processes from resuming the same run."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import os
from pathlib import Path
from typing import Iterator, Optional

from caselens.errors import ResumeLockError

logger = logging.getLogger(__name__)


def pid_is_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    return True


class ResumeGuard:
    """
    Advisory lock at <lock_dir>/.resume_lock_<run_id>.pid holding the owner PID.

    A lock whose PID is gone (or that cannot be read as a PID) is stale:
    it is removed with a warning and acquisition proceeds.

    Re-entrant within one process: nested acquisitions through the same
    guard are counted and the file is removed by the release matching the
    first acquire.
    """

    def __init__(self, lock_dir: str | Path) -> None:
        self.lock_dir = Path(lock_dir)
        self._depth: dict[str, int] = {}

    def lock_path(self, run_id: str) -> Path:
        return self.lock_dir / f".resume_lock_{run_id}.pid"

    def _read_pid(self, path: Path) -> Optional[int]:
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError):
            return None
        first = raw.splitlines()[0].strip() if raw else ""
        return int(first) if first.isdigit() else None

    def acquire(self, run_id: str) -> Path:
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        path = self.lock_path(run_id)
        me = os.getpid()

        while True:
            try:
                fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                try:
                    holder = self._read_pid(path)
                except FileNotFoundError:
                    # released between our open and read
                    continue

                if holder == me:
                    self._depth[run_id] = self._depth.get(run_id, 0) + 1
                    logger.debug("Resume lock for run %s already held by this process", run_id)
                    return path
                if holder is not None and pid_is_running(holder):
                    raise ResumeLockError(run_id, holder, str(path))

                logger.warning(
                    "Stale resume lock for run %s (PID %s not running). Removing %s",
                    run_id,
                    holder if holder is not None else "unreadable",
                    path,
                )
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(f"{me}\n")
            self._depth[run_id] = 1
            logger.info("Resume lock acquired for run %s (PID %d)", run_id, me)
            return path

    def release(self, run_id: str) -> None:
        depth = self._depth.pop(run_id, 0)
        if depth > 1:
            self._depth[run_id] = depth - 1
            return
        path = self.lock_path(run_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        logger.info("Resume lock released for run %s", run_id)

    @contextmanager
    def hold(self, run_id: str) -> Iterator[Path]:
        path = self.acquire(run_id)
        try:
            yield path
        finally:
            self.release(run_id)
