"""Identifiers, version constraints and the source interface.

Everything here is pure data: no I/O and no logging.
"""

from __future__ import annotations

import abc
import functools
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

import semantic_version

from mqpkg.errors import (
    InvalidCharacterError,
    InvalidSpecifier,
    InvalidVersionConstraint,
    NoStartingAlphaError,
    TooShortError,
)

Version = semantic_version.Version


def _is_ascii_alpha(c: str) -> bool:
    return c.isascii() and c.isalpha()


def _is_ascii_alnum(c: str) -> bool:
    return c.isascii() and c.isalnum()


@functools.total_ordering
class PackageName:
    """Validated, lowercased package name.

    Equality, hashing and ordering all use the normalized form, so two names
    differing only in case are the same key in any mapping.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, "PackageName"]):
        self._value = self._validate(str(value))

    @classmethod
    def parse(cls, text: Union[str, "PackageName"]) -> "PackageName":
        """Parse ``text`` into a PackageName.

        Raises:
            TooShortError: ``text`` is empty.
            NoStartingAlphaError: first character is not an ASCII letter.
            InvalidCharacterError: any character is not ASCII alphanumeric.
        """
        if isinstance(text, PackageName):
            return text
        return cls(text)

    @staticmethod
    def _validate(value: str) -> str:
        if not value:
            raise TooShortError(value)
        if not _is_ascii_alpha(value[0]):
            raise NoStartingAlphaError(value, value[0])
        for c in value:
            if not _is_ascii_alnum(c):
                raise InvalidCharacterError(value, c)
        return value.lower()

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"PackageName({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageName):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: "PackageName") -> bool:
        if not isinstance(other, PackageName):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash(self._value)


def parse_version(text: str) -> Version:
    """Parse a full semantic version such as ``1.2.3`` or ``2.0.0-rc.1``."""
    return semantic_version.Version(str(text).strip())


def _normalize_constraint(text: str) -> str:
    """Rewrite user-facing requirements into SimpleSpec syntax.

    A bare version means caret compatibility, a single ``=`` means an exact
    match and whitespace inside a clause is dropped.
    """
    clauses = []
    for clause in text.split(","):
        clause = "".join(clause.split())
        if not clause:
            raise InvalidVersionConstraint(text, "empty clause")
        if clause[0].isdigit():
            clause = "^" + clause
        elif clause.startswith("=") and not clause.startswith("=="):
            clause = "=" + clause
        clauses.append(clause)
    return ",".join(clauses)


class VersionConstraint:
    """Semantic version range such as ``^1.2`` or ``>=2,<3``."""

    __slots__ = ("raw", "_spec")

    def __init__(self, text: Union[str, "VersionConstraint"]):
        if isinstance(text, VersionConstraint):
            text = text.raw
        raw = str(text).strip()
        if not raw:
            raise InvalidVersionConstraint(str(text), "empty constraint")
        try:
            self._spec = semantic_version.SimpleSpec(_normalize_constraint(raw))
        except ValueError as exc:
            raise InvalidVersionConstraint(raw, str(exc)) from exc
        self.raw = raw

    @classmethod
    def any(cls) -> "VersionConstraint":
        return cls("*")

    def matches(self, version: Version) -> bool:
        """Return True when ``version`` satisfies this constraint."""
        return self._spec.match(version)

    def select(self, versions: Iterable[Version]) -> Optional[Version]:
        """Return the highest version satisfying this constraint, if any."""
        return self._spec.select(versions)

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"VersionConstraint({self.raw!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionConstraint):
            return NotImplemented
        return self.raw == other.raw

    def __hash__(self) -> int:
        return hash(self.raw)


_SPECIFIER_RE = re.compile(r"^(?P<name>[^\s<>=!^~@,*]*)\s*@?\s*(?P<constraint>.*)$")


@dataclass(frozen=True)
class PackageSpecifier:
    """A user request: package name plus version constraint.

    Accepted forms are ``foo``, ``foo^1.0``, ``foo>=1,<2`` and ``foo@1.0``.
    """

    name: PackageName
    version: VersionConstraint

    @classmethod
    def parse(cls, text: str) -> "PackageSpecifier":
        match = _SPECIFIER_RE.match(text.strip())
        if match is None:
            raise InvalidSpecifier(text)
        name = PackageName.parse(match.group("name"))
        constraint = match.group("constraint").strip()
        version = VersionConstraint(constraint) if constraint else VersionConstraint.any()
        return cls(name=name, version=version)

    def __str__(self) -> str:
        if self.version.raw == "*":
            return str(self.name)
        return f"{self.name}{self.version}"


class Source(abc.ABC):
    """Where a candidate came from.

    ``id`` names the source category and ``discriminator`` orders sources
    within one category. Lower values win on both.
    """

    @property
    @abc.abstractmethod
    def id(self) -> int:
        """Source category id."""

    @property
    @abc.abstractmethod
    def discriminator(self) -> int:
        """Order within the category."""

    def sort_key(self) -> Tuple[int, int]:
        return (self.id, self.discriminator)
