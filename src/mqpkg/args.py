"""Argument parsing functionality for mqpkg."""

import argparse


def build_parser():
    """Builds the argument parser for the program."""
    parser = argparse.ArgumentParser(
        prog="mqpkg",
        description="mqpkg - resolve and record package requests",
        add_help=True,
    )

    parser.add_argument("-C", "--directory",
                        dest="DIRECTORY",
                        help="Start searching for MQPackage.yml here (default: current directory)",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: $MQPKG_LOG_LEVEL or INFO)",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not show progress output.",
                        action="store_true")

    commands = parser.add_subparsers(dest="COMMAND", required=True)

    install = commands.add_parser("install", help="Request packages and resolve them")
    install.add_argument("PACKAGES",
                         nargs="+",
                         help="Package specifiers, e.g. foo, foo^1.2, 'foo>=1,<2'")

    remove = commands.add_parser("remove", help="Stop requesting packages")
    remove.add_argument("PACKAGES", nargs="+", help="Package names")

    commands.add_parser("list", help="Show requested packages")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
