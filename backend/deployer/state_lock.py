"""
Advisory lock around state-mutating operations.

deploy, rollback, cleanup and init read the state file, drive external
actions for minutes, then write the state back. Two of them interleaving
would lose one writer's update, so each holds an exclusive flock on
.deployer/deployer.lock for its whole duration. The lock is released on every
exit path, including fatal aborts; the kernel drops it if the process dies.
"""

import fcntl
import logging
import os
from contextlib import contextmanager

from .exceptions import LockUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def state_lock(lock_path: str):
    """
    Hold an exclusive, non-blocking advisory lock.

    Raises:
        LockUnavailable: If another process holds the lock
    """
    os.makedirs(os.path.dirname(lock_path) or '.', exist_ok=True)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise LockUnavailable(lock_path)

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug(f"Acquired state lock {lock_path}")
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug(f"Released state lock {lock_path}")
    finally:
        os.close(fd)
