"""
Single-instance lock backed by a pid file.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

from .errors import InstanceLocked

logger = logging.getLogger(__name__)


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class InstanceLock:
    """Ensures only one scheduler runs per config directory."""

    def __init__(self, path: Union[str, Path], grace_period: float = 10.0):
        self.path = Path(path)
        self.grace_period = grace_period
        self._held = False

    def owner(self) -> Optional[int]:
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def _age(self) -> float:
        try:
            return time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return float("inf")

    def acquire(self) -> None:
        """Take the lock, reclaiming it from a dead owner.

        A pid file without a readable pid is treated as held until it is
        older than ``grace_period`` seconds.

        Raises:
            InstanceLocked: if a live process holds the lock, or another
                process has just created it.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                pid = self.owner()
                if pid is not None and pid != os.getpid() and _pid_alive(pid):
                    raise InstanceLocked(f"recap is already running (pid {pid})")
                if pid is None and self._age() < self.grace_period:
                    # owner created the file but has not written its pid yet
                    raise InstanceLocked(f"recap is starting up (lock {self.path} has no pid yet)")
                logger.info(f"Removing stale lock {self.path} (pid {pid})")
                self.path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            self._held = True
            return
        raise InstanceLocked(f"could not acquire {self.path}")

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
