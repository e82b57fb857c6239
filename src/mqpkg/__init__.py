"""mqpkg: dependency resolution and transactional package state."""

from mqpkg.config import Config
from mqpkg.core import MQPkg
from mqpkg.errors import MQPkgError
from mqpkg.pkgdb import Database
from mqpkg.repository import Repository
from mqpkg.resolver import Candidate, ResolutionError, ResolutionImpossible, Resolver
from mqpkg.types import PackageName, PackageSpecifier, VersionConstraint

__all__ = [
    "Candidate",
    "Config",
    "Database",
    "MQPkg",
    "MQPkgError",
    "PackageName",
    "PackageSpecifier",
    "Repository",
    "ResolutionError",
    "ResolutionImpossible",
    "Resolver",
    "VersionConstraint",
]
