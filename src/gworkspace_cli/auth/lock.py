"""Cross-process lock for the token file.

The lock is a sidecar ``<path>.lock`` file created with ``O_CREAT | O_EXCL``,
which is atomic on every filesystem we care about and needs no OS-specific
advisory locking. The holder writes its PID into the file to make stuck locks
easier to debug.

A lock older than ``STALE_LOCK_AGE`` is assumed to belong to a crashed process
and is reclaimed. Only the age is checked: PIDs are reused and are meaningless
across containers, while no legitimate token write takes anywhere near that
long.

Example:
    ```python
    with file_lock(token_path):
        write_token()
    ```
"""

import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from gworkspace_cli.auth.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
LOCK_TIMEOUT = 5.0
LOCK_POLL_INTERVAL = 0.05
STALE_LOCK_AGE = 30.0


def get_lock_path(path: Path | str) -> Path:
    """Return the sidecar lock path for ``path``."""
    return Path(f"{path}{LOCK_SUFFIX}")


def _remove_stale_lock(lock_path: Path, stale_after: float) -> bool:
    """Remove ``lock_path`` if it is older than ``stale_after`` seconds.

    Returns:
        True if a stale lock was removed.
    """
    try:
        seen = lock_path.stat()
    except FileNotFoundError:
        # Released between our create attempt and the stat.
        return False

    age = time.time() - seen.st_mtime
    if age <= stale_after:
        return False

    try:
        holder = lock_path.read_text().strip()
    except OSError:
        holder = "unknown"

    # Another waiter may have reclaimed it and a new holder taken it since the
    # first stat. Only unlink the exact file that was judged stale.
    try:
        current = lock_path.stat()
    except FileNotFoundError:
        return False
    if (current.st_ino, current.st_mtime_ns) != (seen.st_ino, seen.st_mtime_ns):
        logger.debug(f"Lock {lock_path} changed hands, not removing")
        return False

    logger.warning(f"Removing stale lock {lock_path} (pid {holder}, age {age:.1f}s)")
    try:
        lock_path.unlink()
    except FileNotFoundError:
        pass
    return True


def acquire_lock(
    path: Path | str,
    *,
    timeout: float = LOCK_TIMEOUT,
    poll_interval: float = LOCK_POLL_INTERVAL,
    stale_after: float = STALE_LOCK_AGE,
) -> Callable[[], None]:
    """Acquire the sidecar lock for ``path``.

    Args:
        path: File being protected. The lock lives at ``<path>.lock``.
        timeout: Seconds to wait before giving up.
        poll_interval: Seconds to sleep between attempts.
        stale_after: Age in seconds after which an existing lock is reclaimed.

    Returns:
        A release function. Calling it more than once is harmless.

    Raises:
        LockTimeoutError: If the lock is still held after ``timeout``.
        OSError: If the lock file cannot be created for any other reason.
    """
    lock_path = get_lock_path(path)
    deadline = time.monotonic() + timeout

    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            if _remove_stale_lock(lock_path, stale_after):
                continue
            if time.monotonic() >= deadline:
                raise LockTimeoutError(str(lock_path)) from None
            time.sleep(poll_interval)
            continue

        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        logger.debug(f"Acquired lock {lock_path}")
        break

    released = False

    def release() -> None:
        nonlocal released
        if released:
            return
        released = True
        try:
            lock_path.unlink()
        except FileNotFoundError:
            logger.debug(f"Lock {lock_path} already removed")

    return release


@contextmanager
def file_lock(path: Path | str, **kwargs: float) -> Iterator[None]:
    """Hold the sidecar lock for ``path`` for the duration of the block.

    Keyword arguments are passed through to ``acquire_lock``.
    """
    release = acquire_lock(path, **kwargs)
    try:
        yield
    finally:
        release()
