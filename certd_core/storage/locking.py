"""
certd_core.storage.locking
--------------------------
Per-entry mutual exclusion across threads and processes.

Each entry has a ``<entry>.lock`` sidecar so the entry itself can be
replaced with ``os.replace`` without disturbing the lock. ``flock`` locks
belong to the open file description, and every acquisition opens its own
descriptor, so two threads of one process contend exactly like two
processes do. Acquisition is not re-entrant.
"""

from __future__ import annotations
import errno
import fcntl
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from certd_core.constants import DEFAULT_LOCK_POLL_INTERVAL
from certd_core.errors import LockInterruptedError, WouldBlockError
from certd_core.logger import child_logger

log = child_logger("storage.locking")


class LockManager:
    def __init__(self, poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL) -> None:
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self.poll_interval = poll_interval

    @contextmanager
    def acquire(
        self,
        lock_path: Path,
        blocking: bool = True,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Iterator[None]:
        """Hold the lock at ``lock_path`` for the duration of the context.

        Non-blocking: raises WouldBlockError at once if the lock is held.
        Blocking: waits until the lock is free; raises LockInterruptedError
        if ``cancel`` is set or ``timeout`` expires first. In both failure
        cases no lock is held on return.
        """
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT | os.O_CLOEXEC, 0o644)
        try:
            self._lock(fd, lock_path, blocking, cancel, timeout)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _lock(
        self,
        fd: int,
        lock_path: Path,
        blocking: bool,
        cancel: Optional[threading.Event],
        timeout: Optional[float],
    ) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        contended = False
        while True:
            if blocking and cancel is not None and cancel.is_set():
                raise LockInterruptedError(f"Cancelled while waiting for {lock_path}")
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                if contended:
                    log.debug("Acquired %s after waiting", lock_path)
                return
            except OSError as e:
                if e.errno not in (errno.EAGAIN, errno.EACCES):
                    raise
            if not blocking:
                raise WouldBlockError(f"Entry is locked: {lock_path}")
            if not contended:
                log.debug("Waiting for %s", lock_path)
                contended = True
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockInterruptedError(f"Timed out waiting for {lock_path}")
                wait = min(wait, remaining)
            if cancel is not None:
                cancel.wait(wait)
            else:
                time.sleep(wait)
