"""High level operations tying configuration, repositories, resolution and state."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Mapping, Optional

import requests

from mqpkg.config import Config
from mqpkg.pkgdb import Database, LockRegistry, PackageRequest, Transaction
from mqpkg.repository import Repository
from mqpkg.resolver import Resolver, Solution
from mqpkg.types import PackageName, PackageSpecifier

logger = logging.getLogger(__name__)


class MQPkg:
    """Package manager bound to one configured target directory."""

    def __init__(
        self,
        config: Config,
        locks: Optional[LockRegistry] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self.db = Database(config.target, locks=locks)
        self._session = session

    def install(
        self,
        packages: Iterable[PackageSpecifier],
        progress: Optional[Callable[[], None]] = None,
    ) -> Solution:
        """Request ``packages`` and resolve the whole requested set.

        Nothing is persisted unless resolution succeeds.
        """
        with self.db.atomic() as txn:
            for package in packages:
                logger.info("requesting %s", package)
                self.db.add(txn, package)
            return self._resolve(txn, progress)

    def remove(
        self,
        names: Iterable[PackageName],
        progress: Optional[Callable[[], None]] = None,
    ) -> Solution:
        """Drop ``names`` from the requested set and re-resolve what remains."""
        with self.db.atomic() as txn:
            for name in names:
                if not self.db.remove(txn, name):
                    logger.warning("%s was not requested", name)
            return self._resolve(txn, progress)

    def requested(self) -> Dict[PackageName, PackageRequest]:
        """Snapshot of the requested set; reads under the lock, writes nothing."""
        with self.db.begin(self.db.transaction()) as txn:
            return dict(self.db.requested(txn))

    def _resolve(self, txn: Transaction, progress: Optional[Callable[[], None]]) -> Solution:
        repository = Repository(session=self._session).fetch(self.config.repositories, progress)
        requested: Mapping[PackageName, PackageRequest] = self.db.requested(txn)
        solution = Resolver(repository.candidates).resolve(
            {name: request.version for name, request in requested.items()}
        )
        for name, candidate in solution.items():
            logger.info("resolved %s %s from %s", name, candidate.version, candidate.source)
        self.db.record_resolved(txn, solution)
        return solution
