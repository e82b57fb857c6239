"""Exception hierarchy for mqpkg.

Every error raised by the library derives from :class:`MQPkgError` so callers
can catch the whole family at the boundary (the CLI does exactly that).
"""

from __future__ import annotations

from typing import Optional


class MQPkgError(Exception):
    """Base class for all mqpkg errors."""


# Validation


class PackageNameError(MQPkgError, ValueError):
    """Invalid package name."""

    def __init__(self, message: str, name: str = "", character: Optional[str] = None):
        super().__init__(message)
        self.name = name
        self.character = character


class TooShortError(PackageNameError):
    """Package name is empty."""

    def __init__(self, name: str = ""):
        super().__init__("names must have at least one character", name=name)


class NoStartingAlphaError(PackageNameError):
    """Package name does not begin with an ASCII letter."""

    def __init__(self, name: str, character: str):
        super().__init__(
            f"names must begin with an alpha character (got {character!r} in {name!r})",
            name=name,
            character=character,
        )


class InvalidCharacterError(PackageNameError):
    """Package name contains a non alphanumeric character."""

    def __init__(self, name: str, character: str):
        super().__init__(
            f"names must contain only alphanumeric characters (got {character!r} in {name!r})",
            name=name,
            character=character,
        )


class InvalidVersionConstraint(MQPkgError, ValueError):
    """Version constraint text could not be parsed."""

    def __init__(self, text: str, reason: str = ""):
        message = f"invalid version constraint {text!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.text = text


class InvalidSpecifier(MQPkgError, ValueError):
    """A ``name<constraint>`` specifier could not be parsed."""

    def __init__(self, text: str, reason: str = ""):
        message = f"invalid package specifier {text!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.text = text


# Configuration


class ConfigError(MQPkgError):
    """Base class for configuration errors."""


class NoConfigError(ConfigError):
    """Configuration file missing or unreadable."""


class InvalidConfigError(ConfigError):
    """Configuration file is not valid YAML or has the wrong shape."""


class NoTargetDirectoryFound(ConfigError):
    """No directory containing a configuration file was found."""

    def __init__(self, start: str):
        super().__init__(f"unable to locate a valid directory from {start!r}")
        self.start = start


# Repository fetching


class RepositoryError(MQPkgError):
    """Base class for repository fetch errors."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class TransportError(RepositoryError):
    """Network failure or unreadable local repository file."""


class HTTPStatusError(RepositoryError):
    """Repository responded with a non-success status."""

    def __init__(self, url: str, status_code: int):
        super().__init__(f"repository returned HTTP {status_code}", url=url)
        self.status_code = status_code


class InvalidRepositoryData(RepositoryError):
    """Repository document is malformed JSON or has an invalid shape."""


class InvalidURLError(ConfigError, RepositoryError):
    """A repository URL is not usable."""

    def __init__(self, url: str, reason: str = "invalid url"):
        super().__init__(f"{reason}: {url!r}", url=url)


# State store


class DBError(MQPkgError):
    """Base class for package database errors."""


class InvalidStateError(DBError):
    """Persisted state exists but cannot be read or parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"invalid state in {path}: {reason}")
        self.path = path


class NoTransactionError(DBError):
    """State was accessed without an active transaction."""

    def __init__(self) -> None:
        super().__init__("no active transaction")


class TransactionLockedError(DBError):
    """Another transaction holds the lock for this database."""

    def __init__(self, identity: str):
        super().__init__(f"transaction already in progress for {identity}")
        self.identity = identity
