"""Repository metadata: fetching documents and turning them into candidates.

A repository document is JSON::

    {
      "meta": {"name": "example"},
      "packages": {
        "foo": {
          "1.0.0": {
            "dependencies": {"bar": "^2.0"},
            "urls": ["https://example.com/foo-1.0.0.zip"],
            "digests": {"sha256": "..."}
          }
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import requests

from mqpkg import config
from mqpkg.common.http_client import build_session, get_json
from mqpkg.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from mqpkg.constants import Constants
from mqpkg.errors import InvalidRepositoryData, InvalidURLError, MQPkgError, TransportError
from mqpkg.resolver import Candidate, StaticDependencies
from mqpkg.types import PackageName, Source, Version, VersionConstraint, parse_version

logger = logging.getLogger(__name__)


@dataclass
class Release:
    """One version of a package; urls and digests are only used by installers."""

    dependencies: Dict[PackageName, VersionConstraint] = field(default_factory=dict)
    urls: List[str] = field(default_factory=list)
    digests: Dict[str, str] = field(default_factory=dict)


@dataclass
class RepoData:
    """Parsed repository document."""

    name: str
    packages: Dict[PackageName, Dict[Version, Release]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any, url: str = "") -> "RepoData":
        """Validate and convert a decoded JSON document.

        Raises:
            InvalidRepositoryData: the document does not have the expected shape
                or contains invalid names, versions or constraints.
        """
        def fail(reason: str) -> InvalidRepositoryData:
            return InvalidRepositoryData(f"invalid repository data: {reason}", url=url)

        if not isinstance(data, dict):
            raise fail("document must be an object")
        meta = data.get("meta")
        if not isinstance(meta, dict) or not isinstance(meta.get("name"), str):
            raise fail("missing meta.name")
        raw_packages = data.get("packages")
        if not isinstance(raw_packages, dict):
            raise fail("missing packages")

        packages: Dict[PackageName, Dict[Version, Release]] = {}
        try:
            for raw_name, raw_versions in raw_packages.items():
                name = PackageName.parse(raw_name)
                if not isinstance(raw_versions, dict):
                    raise fail(f"versions of {raw_name} must be an object")
                releases = packages.setdefault(name, {})
                for raw_version, raw_release in raw_versions.items():
                    releases[parse_version(raw_version)] = _parse_release(raw_release, fail)
        except (MQPkgError, ValueError) as exc:
            if isinstance(exc, InvalidRepositoryData):
                raise
            raise fail(str(exc)) from exc

        return cls(name=meta["name"], packages=packages)


def _parse_release(raw: Any, fail: Callable[[str], InvalidRepositoryData]) -> Release:
    if not isinstance(raw, dict):
        raise fail("release must be an object")
    raw_deps = raw.get("dependencies") or {}
    urls = raw.get("urls")
    digests = raw.get("digests")
    if not isinstance(raw_deps, dict):
        raise fail("dependencies must be an object")
    if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
        raise fail("urls must be a list of strings")
    if not isinstance(digests, dict) or not all(isinstance(v, str) for v in digests.values()):
        raise fail("digests must map algorithm names to strings")
    dependencies = {
        PackageName.parse(dep): VersionConstraint(constraint)
        for dep, constraint in raw_deps.items()
    }
    return Release(dependencies=dependencies, urls=list(urls), digests=dict(digests))


class RepositorySource(Source):
    """A candidate offered by the configured repository at ``repository_id``."""

    def __init__(self, repository_id: int, repository: config.Repository):
        self.repository_id = repository_id
        self.repository = repository

    @property
    def id(self) -> int:
        return Constants.REPOSITORY_SOURCE_ID

    @property
    def discriminator(self) -> int:
        return self.repository_id

    def __str__(self) -> str:
        return f"Repository(id={self.repository_id}, {self.repository.label})"

    __repr__ = __str__


class Repository:
    """Fetched repository documents in configuration order."""

    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session
        self.data: Dict[config.Repository, RepoData] = {}

    def fetch(
        self,
        repos: Sequence[config.Repository],
        callback: Optional[Callable[[], None]] = None,
    ) -> "Repository":
        """Fetch every repository in order.

        ``callback`` is called once after each repository is fetched. The
        first failure aborts the loop and leaves ``self.data`` untouched.
        """
        logger.info("fetching package metadata")
        fetched: Dict[config.Repository, RepoData] = {}
        for repo in repos:
            with Timer() as t:
                fetched[repo] = self._fetch_one(repo)
            if is_debug_enabled(logger):
                logger.debug(
                    "Fetched repository",
                    extra=extra_context(
                        event="fetch",
                        component="repository",
                        action="fetch",
                        outcome="success",
                        target=safe_url(repo.url),
                        duration_ms=t.duration_ms(),
                    ),
                )
            if callback is not None:
                callback()

        self.data = fetched
        return self

    def _fetch_one(self, repo: config.Repository) -> RepoData:
        try:
            url = config.validate_url(repo.url)
        except InvalidURLError:
            logger.error("invalid repository url %s", repo.url)
            raise

        if urllib.parse.urlsplit(url).scheme == "file":
            document = self._read_file(url)
        else:
            if self._session is None:
                self._session = build_session()
            document = get_json(url, context=repo.label, session=self._session)
        return RepoData.from_json(document, url=url)

    @staticmethod
    def _read_file(url: str) -> Any:
        path = urllib.request.url2pathname(urllib.parse.urlsplit(url).path)
        try:
            with open(path, encoding="utf-8") as fh:
                return json.load(fh)
        except OSError as exc:
            raise TransportError(f"unable to read repository file: {exc}", url=url) from exc
        except ValueError as exc:
            raise InvalidRepositoryData(f"malformed JSON in repository file: {exc}", url=url) from exc

    def candidates(self, package: PackageName) -> List[Candidate]:
        """Every release of ``package`` across all repositories.

        Repositories appear in configuration order; versions within one
        repository are in document order, which callers must not rely on.
        """
        name = PackageName.parse(package)
        candidates: List[Candidate] = []
        for idx, (repo, data) in enumerate(self.data.items()):
            releases: Mapping[Version, Release] = data.packages.get(name, {})
            source = RepositorySource(idx, repo)
            for version, release in releases.items():
                candidates.append(
                    Candidate(
                        name=name,
                        version=version,
                        source=source,
                        provider=StaticDependencies(release.dependencies),
                    )
                )
        return candidates
