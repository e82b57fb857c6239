"""The package database: what the user asked for, and what was resolved.

State lives in ``<target>/pkgdb/state.yml`` and is only ever touched inside
a transaction::

    db = Database(target)
    with db.atomic() as txn:
        db.add(txn, PackageSpecifier.parse("foo^1.0"))

The state is loaded on first use inside a transaction, kept on the
transaction handle, and written back by :meth:`Database.commit` with a
write-then-rename so a crash never leaves a truncated file behind.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import tempfile
import types
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, TypeVar, Union

import yaml

from mqpkg.constants import Constants
from mqpkg.errors import DBError, InvalidStateError, MQPkgError, NoTransactionError
from mqpkg.pkgdb.transactions import (
    FileLockRegistry,
    LockRegistry,
    MemoryLockRegistry,
    Transaction,
    TransactionManager,
)
from mqpkg.resolver import Solution
from mqpkg.types import PackageName, PackageSpecifier, VersionConstraint

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "Database",
    "FileLockRegistry",
    "MemoryLockRegistry",
    "PackageRequest",
    "ResolvedPackage",
    "State",
    "Transaction",
    "TransactionManager",
    "database_identity",
]


@dataclass(frozen=True)
class PackageRequest:
    name: PackageName
    version: VersionConstraint


@dataclass(frozen=True)
class ResolvedPackage:
    version: str
    source: str = ""


@dataclass
class State:
    """Everything the database persists."""

    requested: Dict[PackageName, PackageRequest] = field(default_factory=dict)
    resolved: Dict[PackageName, ResolvedPackage] = field(default_factory=dict)

    @classmethod
    def load(cls, target: Path) -> "State":
        filename = state_path(target)
        logger.debug("loading state from %s", filename)
        if not filename.is_file():
            logger.debug("could not find state, using default")
            return cls()
        try:
            with open(filename, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except OSError as exc:
            raise InvalidStateError(str(filename), str(exc)) from exc
        except yaml.YAMLError as exc:
            raise InvalidStateError(str(filename), f"malformed YAML: {exc}") from exc
        try:
            return cls.from_dict(data)
        except (MQPkgError, ValueError, TypeError, KeyError, AttributeError) as exc:
            raise InvalidStateError(str(filename), str(exc)) from exc

    @classmethod
    def from_dict(cls, data: Any) -> "State":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("state must be a mapping")

        requested: Dict[PackageName, PackageRequest] = {}
        for key, entry in (data.get("requested") or {}).items():
            if not isinstance(entry, dict):
                raise ValueError(f"requested entry for {key!r} must be a mapping")
            name = PackageName.parse(entry.get("name") or key)
            requested[name] = PackageRequest(name=name, version=VersionConstraint(entry["version"]))

        resolved: Dict[PackageName, ResolvedPackage] = {}
        for key, entry in (data.get("resolved") or {}).items():
            if not isinstance(entry, dict):
                raise ValueError(f"resolved entry for {key!r} must be a mapping")
            resolved[PackageName.parse(key)] = ResolvedPackage(
                version=str(entry["version"]), source=str(entry.get("source") or "")
            )
        return cls(requested=requested, resolved=resolved)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "requested": {
                str(name): {"name": str(req.name), "version": str(req.version)}
                for name, req in sorted(self.requested.items())
            }
        }
        if self.resolved:
            data["resolved"] = {
                str(name): {"version": pkg.version, "source": pkg.source}
                for name, pkg in sorted(self.resolved.items())
            }
        return data

    def save(self, target: Path) -> None:
        directory = pkgdb_path(target)
        directory.mkdir(parents=True, exist_ok=True)
        filename = state_path(target)
        logger.debug("saving state to %s", filename)

        fd, tmpname = tempfile.mkstemp(dir=directory, prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                yaml.safe_dump(self.to_dict(), fh, default_flow_style=False, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmpname, filename)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmpname)
            raise


def pkgdb_path(target: Path) -> Path:
    return Path(target) / Constants.PKGDB_DIR


def state_path(target: Path) -> Path:
    return pkgdb_path(target) / Constants.STATE_FILE


def database_identity(target: Union[str, os.PathLike]) -> str:
    """Stable lock name derived from the canonical target path."""
    canonical = str(Path(target).resolve())
    return Constants.IDENTITY_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class Database:
    """Transactional access to one target directory's package state."""

    def __init__(
        self,
        target: Union[str, os.PathLike],
        identity: Optional[str] = None,
        locks: Optional[LockRegistry] = None,
    ):
        self.target = Path(target).resolve()
        self.id = identity or database_identity(self.target)
        # <target>/pkgdb/<identity>.lock
        self._locks = locks if locks is not None else FileLockRegistry(pkgdb_path(self.target))

    @property
    def state_path(self) -> Path:
        return state_path(self.target)

    def transaction(self) -> TransactionManager:
        return TransactionManager(self.id, self._locks)

    def begin(
        self,
        txnm: TransactionManager,
        blocking: bool = True,
        timeout: Optional[float] = None,
    ) -> Transaction:
        txn = txnm.begin(blocking=blocking, timeout=timeout)
        logger.debug("begin transaction")
        return txn

    def commit(self, txn: Transaction) -> None:
        """Persist the transaction's state and release its lock.

        The lock is released even if writing fails; the previous state file
        is then left as it was.
        """
        self._check(txn)
        logger.debug("commit transaction")
        try:
            if txn.state is not None:
                try:
                    txn.state.save(self.target)
                except OSError as exc:
                    raise DBError(f"unable to save state to {self.state_path}: {exc}") from exc
                except yaml.YAMLError as exc:
                    raise InvalidStateError(str(self.state_path), str(exc)) from exc
        finally:
            txn.release()

    def add(self, txn: Transaction, package: PackageSpecifier) -> None:
        state = self._state(txn)
        logger.debug("adding %s(%s) to requested packages", package.name, package.version)
        state.requested[package.name] = PackageRequest(name=package.name, version=package.version)

    def remove(self, txn: Transaction, name: PackageName) -> bool:
        """Drop ``name`` from the requested set; returns False if it was absent."""
        state = self._state(txn)
        name = PackageName.parse(name)
        logger.debug("removing %s from requested packages", name)
        return state.requested.pop(name, None) is not None

    def requested(self, txn: Transaction) -> Mapping[PackageName, PackageRequest]:
        return types.MappingProxyType(self._state(txn).requested)

    def resolved(self, txn: Transaction) -> Mapping[PackageName, ResolvedPackage]:
        return types.MappingProxyType(self._state(txn).resolved)

    def record_resolved(self, txn: Transaction, solution: Solution) -> None:
        """Replace the resolved snapshot with ``solution``."""
        state = self._state(txn)
        state.resolved = {
            name: ResolvedPackage(version=str(candidate.version), source=str(candidate.source))
            for name, candidate in solution.items()
        }

    @contextlib.contextmanager
    def atomic(self, blocking: bool = True, timeout: Optional[float] = None) -> Iterator[Transaction]:
        """Run a block in a transaction: commit on success, always release."""
        txn = self.begin(self.transaction(), blocking=blocking, timeout=timeout)
        try:
            yield txn
            self.commit(txn)
        finally:
            txn.release()

    def run_in_transaction(self, body: Callable[[Transaction], T], **kwargs: Any) -> T:
        with self.atomic(**kwargs) as txn:
            return body(txn)

    def _check(self, txn: Optional[Transaction]) -> Transaction:
        if txn is None or not txn.active or txn.identity != self.id:
            raise NoTransactionError()
        return txn

    def _state(self, txn: Transaction) -> State:
        txn = self._check(txn)
        if txn.state is None:
            txn.state = State.load(self.target)
        return txn.state
