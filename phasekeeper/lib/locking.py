"""
Advisory lock around the state file's read-modify-write window.

Uses flock on a sibling lock file. The atomic rename already prevents
torn writes; the lock prevents lost updates when two processes race.
"""

import fcntl
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


POLL_INTERVAL = 0.1


def is_locked(lock_file: Path) -> bool:
    """Check whether another process currently holds the lock."""
    if not lock_file.exists():
        return False

    with open(lock_file, 'r') as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


@contextmanager
def acquire_lock(lock_file: Path, timeout: float, lock_name: str = "state lock"):
    """
    Acquire an exclusive file lock, yield, release on exit.

    Lock files are never deleted: unlinking a lock file lets two processes
    hold "exclusive" locks on different inodes under the same path.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages

    Raises:
        LockTimeout: if the lock is still held by someone else after timeout
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = open(lock_file, 'a+')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start >= timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(POLL_INTERVAL)

    logger.debug(f"[LOCK] acquired {lock_name} ({lock_file})")
    try:
        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()
        logger.debug(f"[LOCK] released {lock_name}")
