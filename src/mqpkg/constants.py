"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3
    LOCKED = 4
    USAGE_ERROR = 5


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    CONFIG_FILENAME = "MQPackage.yml"
    PKGDB_DIR = "pkgdb"
    STATE_FILE = "state.yml"
    IDENTITY_PREFIX = "mqpkg-"

    # Source category ids; lower ids win when the same release is offered twice.
    REPOSITORY_SOURCE_ID = 100

    RESOLVER_MAX_ROUNDS = 200000

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "MQPKG_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    LOCK_POLL_INTERVAL_SEC = 0.1
