"""Named locks and the transaction handles built on them.

A database identity string names one lock. :class:`FileLockRegistry` backs
each name with an ``flock``-ed file in a fixed directory (by default the
database's own ``pkgdb/``), so separate processes and separate handles in
one process exclude each other. :class:`MemoryLockRegistry` is an
in-process stand-in for tests.
"""

from __future__ import annotations

import abc
import fcntl
import logging
import threading
import time
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Dict, Optional, Union

from mqpkg.constants import Constants
from mqpkg.errors import TransactionLockedError

if TYPE_CHECKING:
    from mqpkg.pkgdb import State

logger = logging.getLogger(__name__)


class Lock(abc.ABC):
    """A held lock; ``release`` is idempotent."""

    @abc.abstractmethod
    def release(self) -> None:
        """Release the lock."""


class LockRegistry(abc.ABC):
    """Hands out exclusive locks keyed by identity string."""

    @abc.abstractmethod
    def acquire(self, identity: str, blocking: bool = True, timeout: Optional[float] = None) -> Lock:
        """Acquire the lock for ``identity``.

        Raises:
            TransactionLockedError: the lock is held elsewhere and ``blocking``
                is False, or ``timeout`` elapsed.
        """

    @abc.abstractmethod
    def is_locked(self, identity: str) -> bool:
        """Return True when some holder currently owns ``identity``."""


class _FileLock(Lock):
    def __init__(self, handle: IO[Any]):
        self._handle: Optional[IO[Any]] = handle

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None


class FileLockRegistry(LockRegistry):
    """Cross-process locks as ``<directory>/<identity>.lock`` files."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, identity: str) -> Path:
        return self.directory / f"{identity}.lock"

    def _open(self, identity: str) -> IO[Any]:
        self.directory.mkdir(parents=True, exist_ok=True)
        return open(self.path_for(identity), "a+", encoding="utf-8")

    def acquire(self, identity: str, blocking: bool = True, timeout: Optional[float] = None) -> Lock:
        handle = self._open(identity)
        try:
            if blocking and timeout is None:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                return _FileLock(handle)

            deadline = time.monotonic() + (timeout or 0.0)
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    return _FileLock(handle)
                except BlockingIOError:
                    if not blocking or time.monotonic() >= deadline:
                        raise TransactionLockedError(identity) from None
                    time.sleep(Constants.LOCK_POLL_INTERVAL_SEC)
        except BaseException:
            handle.close()
            raise

    def is_locked(self, identity: str) -> bool:
        if not self.path_for(identity).exists():
            return False
        with self._open(identity) as handle:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
            except BlockingIOError:
                return True
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            return False


class _MemoryLock(Lock):
    def __init__(self, lock: threading.Lock):
        self._lock: Optional[threading.Lock] = lock

    def release(self) -> None:
        if self._lock is not None:
            self._lock.release()
            self._lock = None


class MemoryLockRegistry(LockRegistry):
    """In-process lock registry for tests and embedding."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, identity: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(identity, threading.Lock())

    def acquire(self, identity: str, blocking: bool = True, timeout: Optional[float] = None) -> Lock:
        lock = self._lock_for(identity)
        if not blocking:
            acquired = lock.acquire(blocking=False)
        else:
            acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise TransactionLockedError(identity)
        return _MemoryLock(lock)

    def is_locked(self, identity: str) -> bool:
        return self._lock_for(identity).locked()


class Transaction:
    """Exclusive right to read and mutate one database's state.

    Use as a context manager or call :meth:`release`; leaving the scope
    without :meth:`mqpkg.pkgdb.Database.commit` discards every change.
    """

    def __init__(self, identity: str, lock: Lock):
        self.identity = identity
        self._lock = lock
        self._active = True
        # Loaded lazily by the database on first access, dropped on release.
        self.state: Optional["State"] = None

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        if not self._active:
            return
        self._active = False
        self.state = None
        self._lock.release()
        logger.debug("released transaction lock %s", self.identity)

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    def __del__(self) -> None:
        if getattr(self, "_active", False):
            self.release()

    def __copy__(self) -> "Transaction":
        raise TypeError("transactions cannot be copied")

    def __deepcopy__(self, memo: Dict[int, Any]) -> "Transaction":
        raise TypeError("transactions cannot be copied")


class TransactionManager:
    """Entry point for transactions on one identity; holds no lock itself."""

    def __init__(self, identity: str, locks: LockRegistry):
        self.identity = identity
        self._locks = locks

    def begin(self, blocking: bool = True, timeout: Optional[float] = None) -> Transaction:
        lock = self._locks.acquire(self.identity, blocking=blocking, timeout=timeout)
        logger.debug("acquired transaction lock %s", self.identity)
        return Transaction(self.identity, lock)

    def is_active(self) -> bool:
        return self._locks.is_locked(self.identity)
