"""Configuration discovery and loading.

A target directory is any directory holding an ``MQPackage.yml``::

    repositories:
      - https://example.com/repo.json
      - name: local
        url: file:///srv/repo.json

Repository order matters: earlier repositories win when the same release is
offered more than once.
"""

from __future__ import annotations

import logging
import os
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Tuple, Union

import yaml

from mqpkg.common.logging_utils import extra_context, is_debug_enabled
from mqpkg.constants import Constants
from mqpkg.errors import InvalidConfigError, InvalidURLError, NoConfigError, NoTargetDirectoryFound

logger = logging.getLogger(__name__)

_SUPPORTED_SCHEMES = ("file", "http", "https")


def validate_url(url: str) -> str:
    """Return ``url`` unchanged if it is a usable repository URL."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidURLError(str(url), "empty url")
    try:
        parts = urllib.parse.urlsplit(url.strip())
    except ValueError as exc:
        raise InvalidURLError(url, str(exc)) from exc
    if parts.scheme not in _SUPPORTED_SCHEMES:
        raise InvalidURLError(url, "unsupported url scheme")
    if parts.scheme == "file":
        if not parts.path:
            raise InvalidURLError(url, "file url without a path")
    elif not parts.netloc:
        raise InvalidURLError(url, "url without a host")
    return url.strip()


@dataclass(frozen=True)
class Repository:
    """One configured repository; hashable so it can key fetched documents."""

    url: str
    name: str = ""

    def __post_init__(self) -> None:
        validate_url(self.url)

    @property
    def label(self) -> str:
        return self.name or self.url

    @classmethod
    def from_yaml(cls, item: Any) -> "Repository":
        """Accept either a bare URL string or a ``{name, url}`` mapping."""
        if isinstance(item, str):
            return cls(url=item)
        if isinstance(item, dict):
            url = item.get("url")
            if not isinstance(url, str):
                raise InvalidConfigError(f"repository entry without url: {item!r}")
            name = item.get("name") or ""
            if not isinstance(name, str):
                raise InvalidConfigError(f"repository name must be a string: {item!r}")
            return cls(url=url, name=name)
        raise InvalidConfigError(f"invalid repository entry: {item!r}")


@dataclass(frozen=True)
class Config:
    """Canonicalized target directory plus ordered repositories."""

    target: Path
    repositories: Tuple[Repository, ...] = field(default_factory=tuple)

    @classmethod
    def load(cls, path: Union[str, os.PathLike]) -> "Config":
        """Load ``MQPackage.yml`` from the directory ``path``."""
        try:
            target = Path(path).resolve(strict=True)
        except OSError as exc:
            raise NoConfigError(f"no configuration file: {exc}") from exc

        configfile = target / Constants.CONFIG_FILENAME
        try:
            with open(configfile, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except OSError as exc:
            raise NoConfigError(f"no configuration file: {exc}") from exc
        except yaml.YAMLError as exc:
            raise InvalidConfigError(f"invalid configuration: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidConfigError("invalid configuration: expected a mapping")
        raw_repos = data.get("repositories") or []
        if not isinstance(raw_repos, list):
            raise InvalidConfigError("invalid configuration: repositories must be a list")

        repositories: List[Repository] = [Repository.from_yaml(item) for item in raw_repos]
        if is_debug_enabled(logger):
            logger.debug(
                "Loaded configuration",
                extra=extra_context(
                    event="config_load",
                    component="config",
                    action="load",
                    target=str(target),
                    count=len(repositories),
                ),
            )
        return cls(target=target, repositories=tuple(repositories))

    @classmethod
    def find(cls, path: Union[str, os.PathLike]) -> "Config":
        """Walk up from ``path`` to the first directory holding a config file."""
        start = Path(path).resolve()
        for candidate in (start, *start.parents):
            if (candidate / Constants.CONFIG_FILENAME).is_file():
                return cls.load(candidate)
        raise NoTargetDirectoryFound(str(start))
