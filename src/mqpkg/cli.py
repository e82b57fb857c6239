"""Command line entry point."""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

from mqpkg.args import parse_args
from mqpkg.common.logging_utils import configure_logging, extra_context, is_debug_enabled
from mqpkg.config import Config
from mqpkg.constants import ExitCodes
from mqpkg.core import MQPkg
from mqpkg.errors import (
    ConfigError,
    InvalidSpecifier,
    InvalidVersionConstraint,
    MQPkgError,
    PackageNameError,
    RepositoryError,
    TransactionLockedError,
)
from mqpkg.resolver import ResolutionError, Solution
from mqpkg.types import PackageName, PackageSpecifier

logger = logging.getLogger(__name__)


def _exit_code_for(exc: MQPkgError) -> ExitCodes:
    if isinstance(exc, (PackageNameError, InvalidSpecifier, InvalidVersionConstraint)):
        return ExitCodes.USAGE_ERROR
    if isinstance(exc, ConfigError):
        return ExitCodes.FILE_ERROR
    if isinstance(exc, RepositoryError):
        return ExitCodes.CONNECTION_ERROR
    if isinstance(exc, ResolutionError):
        return ExitCodes.RESOLUTION_ERROR
    if isinstance(exc, TransactionLockedError):
        return ExitCodes.LOCKED
    return ExitCodes.FILE_ERROR


def _print_solution(solution: Solution) -> None:
    for name, candidate in solution.items():
        print(f"{name} {candidate.version}")


def run(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return an exit code."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    try:
        config = Config.find(args.DIRECTORY)
        pkg = MQPkg(config)
        progress = None if args.QUIET else (lambda: print(".", end="", file=sys.stderr, flush=True))

        if args.COMMAND == "install":
            specifiers = [PackageSpecifier.parse(text) for text in args.PACKAGES]
            _print_solution(pkg.install(specifiers, progress=progress))
        elif args.COMMAND == "remove":
            names = [PackageName.parse(text) for text in args.PACKAGES]
            _print_solution(pkg.remove(names, progress=progress))
        elif args.COMMAND == "list":
            for name, request in sorted(pkg.requested().items()):
                print(f"{name} {request.version}")
    except MQPkgError as exc:
        logger.error("%s", exc)
        return _exit_code_for(exc).value

    return ExitCodes.SUCCESS.value


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
