"""Dependency resolution.

The resolver picks one version per package so that every user request and
every dependency edge of every chosen release is satisfied. The search
itself is resolvelib's backjumping resolver; this module supplies the
provider that tells it which candidates exist, in what order to try them
(newest first, ties broken by source priority) and what each one depends on.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import resolvelib

from mqpkg.common.logging_utils import Timer, extra_context, is_debug_enabled
from mqpkg.constants import Constants
from mqpkg.errors import MQPkgError
from mqpkg.types import PackageName, Source, Version, VersionConstraint

logger = logging.getLogger(__name__)


class DependencyProvider(abc.ABC):
    """Supplies the dependency edges of a candidate."""

    @abc.abstractmethod
    def dependencies(self, candidate: "Candidate") -> Mapping[PackageName, VersionConstraint]:
        """Return the required packages and their constraints."""


class StaticDependencies(DependencyProvider):
    """Dependencies read straight from repository metadata."""

    def __init__(self, dependencies: Optional[Mapping[PackageName, VersionConstraint]] = None):
        self._dependencies: Dict[PackageName, VersionConstraint] = dict(dependencies or {})

    def dependencies(self, candidate: "Candidate") -> Mapping[PackageName, VersionConstraint]:
        return self._dependencies

    def __repr__(self) -> str:
        return f"StaticDependencies({self._dependencies!r})"


@dataclass(frozen=True, eq=False)
class Candidate:
    """One concretely installable release of a package."""

    name: PackageName
    version: Version
    source: Source
    provider: DependencyProvider = field(default_factory=StaticDependencies)

    def dependencies(self) -> Mapping[PackageName, VersionConstraint]:
        return self.provider.dependencies(self)

    def same_artifact(self, other: "Candidate") -> bool:
        return self.name == other.name and self.version == other.version

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


@dataclass(frozen=True)
class Requirement:
    """A constraint on ``name``; ``parent`` is None for a user request."""

    name: PackageName
    constraint: VersionConstraint
    parent: Optional[Candidate] = None

    def __str__(self) -> str:
        origin = "requested" if self.parent is None else f"required by {self.parent}"
        return f"{self.name} {self.constraint} ({origin})"


class ResolutionError(MQPkgError):
    """Base class for resolution failures."""


class ResolutionImpossible(ResolutionError):
    """No assignment satisfies every constraint.

    Attributes:
        package: the package for which no candidate could be chosen.
        requirements: the constraints on ``package`` that excluded every candidate.
        chains: for each requirement, the path from a user request down to it.
        candidates: every known candidate for ``package``.
    """

    def __init__(
        self,
        package: PackageName,
        requirements: Sequence[Requirement],
        chains: Sequence[Tuple[Candidate, ...]],
        candidates: Sequence[Candidate],
    ):
        self.package = package
        self.requirements = tuple(requirements)
        self.chains = tuple(chains)
        self.candidates = tuple(candidates)
        super().__init__(self.explain())

    def explain(self) -> str:
        lines = [f"unable to find a version of {self.package} satisfying all constraints:"]
        for requirement, chain in zip(self.requirements, self.chains):
            path = " -> ".join(["<root>", *(str(c) for c in chain), str(self.package)])
            lines.append(f"  {requirement.constraint} via {path}")
        if self.candidates:
            versions = ", ".join(str(c.version) for c in self.candidates)
            lines.append(f"  available versions: {versions}")
        else:
            lines.append("  no versions available")
        return "\n".join(lines)


class ResolutionTooDeep(ResolutionError):
    """The search gave up after too many rounds."""

    def __init__(self, rounds: int):
        super().__init__(f"resolution did not finish within {rounds} rounds")
        self.rounds = rounds


Solution = Dict[PackageName, Candidate]
CandidateFinder = Callable[[PackageName], List[Candidate]]


class CandidateProvider(resolvelib.AbstractProvider):
    """resolvelib provider over a candidate finder.

    Identifiers are package names. Matches are newest first; among equal
    versions only the candidate whose source sorts first is offered.
    """

    def __init__(self, find_candidates: CandidateFinder):
        self._find_candidates = find_candidates
        self._cache: Dict[PackageName, List[Candidate]] = {}
        self._satisfied: Dict[Tuple[VersionConstraint, Version], bool] = {}
        # First requirement seen for each name, used to rebuild dependent chains.
        self.origins: Dict[PackageName, Requirement] = {}

    def candidates(self, name: PackageName) -> List[Candidate]:
        if name not in self._cache:
            found = sorted(self._find_candidates(name), key=lambda c: c.source.sort_key())
            # Stable sort keeps source order among equal versions.
            found.sort(key=lambda c: c.version, reverse=True)
            unique: List[Candidate] = []
            for candidate in found:
                if unique and unique[-1].same_artifact(candidate):
                    continue
                unique.append(candidate)
            self._cache[name] = unique
        return self._cache[name]

    def _matches(self, constraint: VersionConstraint, version: Version) -> bool:
        key = (constraint, version)
        if key not in self._satisfied:
            self._satisfied[key] = constraint.matches(version)
        return self._satisfied[key]

    def identify(self, requirement_or_candidate: Any) -> PackageName:
        return requirement_or_candidate.name

    def get_preference(
        self,
        identifier: PackageName,
        resolutions: Mapping[PackageName, Candidate],
        candidates: Mapping[PackageName, Iterable[Candidate]],
        information: Mapping[PackageName, Iterable[Any]],
        backtrack_causes: Sequence[Any],
    ) -> Tuple[bool, PackageName]:
        """Packages involved in the last conflict first, then by name."""
        conflicting = any(cause.requirement.name == identifier for cause in backtrack_causes)
        return (not conflicting, identifier)

    def find_matches(
        self,
        identifier: PackageName,
        requirements: Mapping[PackageName, Iterable[Requirement]],
        incompatibilities: Mapping[PackageName, Iterable[Candidate]],
    ) -> List[Candidate]:
        constraints = [r.constraint for r in requirements.get(identifier, ())]
        excluded: Set[Version] = {c.version for c in incompatibilities.get(identifier, ())}
        return [
            c for c in self.candidates(identifier)
            if c.version not in excluded and all(self._matches(k, c.version) for k in constraints)
        ]

    def is_satisfied_by(self, requirement: Requirement, candidate: Candidate) -> bool:
        return self._matches(requirement.constraint, candidate.version)

    def get_dependencies(self, candidate: Candidate) -> List[Requirement]:
        dependencies = candidate.dependencies()
        requirements = []
        for dep in sorted(dependencies):
            requirement = Requirement(dep, dependencies[dep], candidate)
            self.origins.setdefault(dep, requirement)
            requirements.append(requirement)
        return requirements


class _LoggingReporter(resolvelib.BaseReporter):
    def pinning(self, candidate: Candidate) -> None:
        if is_debug_enabled(logger):
            logger.debug("pinning %s", candidate)

    def resolving_conflicts(self, causes: Sequence[Any]) -> None:
        if is_debug_enabled(logger):
            logger.debug("backtracking on %s", ", ".join(str(c.requirement) for c in causes))


class Resolver:
    """Resolves requested constraints over a candidate finder.

    ``find_candidates`` is usually :meth:`mqpkg.repository.Repository.candidates`;
    its ordering is not relied upon, and it is called at most once per name.
    """

    def __init__(self, find_candidates: CandidateFinder, max_rounds: int = Constants.RESOLVER_MAX_ROUNDS):
        self._provider = CandidateProvider(find_candidates)
        self._max_rounds = max_rounds

    def candidates(self, name: PackageName) -> List[Candidate]:
        """All candidates for ``name``, newest first, one per version."""
        return self._provider.candidates(name)

    def resolve(self, requested: Mapping[PackageName, VersionConstraint]) -> Solution:
        """Return a mapping of package name to chosen candidate.

        Raises:
            ResolutionImpossible: the requested set cannot be satisfied.
            ResolutionTooDeep: the search exceeded the round limit.
        """
        roots = []
        for name in sorted(requested):
            requirement = Requirement(name, VersionConstraint(requested[name]))
            self._provider.origins[name] = requirement
            roots.append(requirement)

        logger.info("resolving %d requested package(s)", len(roots))
        resolver = resolvelib.Resolver(self._provider, _LoggingReporter())
        with Timer() as t:
            try:
                result = resolver.resolve(roots, max_rounds=self._max_rounds)
            except resolvelib.ResolutionImpossible as exc:
                failure = self._impossible(exc.causes)
                logger.info("resolution failed: no acceptable version of %s", failure.package)
                raise failure from None
            except resolvelib.ResolutionTooDeep as exc:
                raise ResolutionTooDeep(self._max_rounds) from exc

        solution = {name: result.mapping[name] for name in sorted(result.mapping)}
        if is_debug_enabled(logger):
            logger.debug(
                "Resolution complete",
                extra=extra_context(
                    event="resolve",
                    component="resolver",
                    action="resolve",
                    outcome="success",
                    count=len(solution),
                    duration_ms=t.duration_ms(),
                ),
            )
        return solution

    def _impossible(self, causes: Sequence[Any]) -> ResolutionImpossible:
        package = causes[0].requirement.name
        requirements: List[Requirement] = []
        for cause in causes:
            requirement = cause.requirement
            if requirement.name == package and requirement not in requirements:
                requirements.append(requirement)
        return ResolutionImpossible(
            package=package,
            requirements=requirements,
            chains=[self._chain(r) for r in requirements],
            candidates=self.candidates(package),
        )

    def _chain(self, requirement: Requirement) -> Tuple[Candidate, ...]:
        chain: List[Candidate] = []
        parent = requirement.parent
        seen = set()
        while parent is not None and parent.name not in seen:
            seen.add(parent.name)
            chain.append(parent)
            origin = self._provider.origins.get(parent.name)
            parent = origin.parent if origin is not None else None
        return tuple(reversed(chain))


def resolve(
    find_candidates: CandidateFinder,
    requested: Mapping[PackageName, VersionConstraint],
) -> Solution:
    """Convenience wrapper around :class:`Resolver`."""
    return Resolver(find_candidates).resolve(requested)
