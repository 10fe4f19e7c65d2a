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
    INSTALL_ERROR = 3
    CANCELED = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    APP_NAME = "gman"
    APP_FOLDER_NAME = "gman_5a8f853f-d7e7-4a83-aa21-6ed0585b0c40"
    DEFAULT_CONFIG_FILE = "gman_config_client.yaml"
    DEFAULT_CACHE_DIR = "~/.gman/cache"
    ENV_CONFIG = "GMAN_CONFIG"
    ENV_LOG_LEVEL = "GMAN_LOG_LEVEL"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    # Repository wire constants
    # None means requests blocks until the server answers or the socket drops.
    REQUEST_TIMEOUT = None
    DEFAULT_CHUNK_SIZE = 1024 * 1024
    DOWNLOAD_STREAM_BLOCK = 64 * 1024
    DEFAULT_IDENTIFIER = "master"
    CACHE_FIELD_SEPARATOR = "@"
    CACHE_FIELD_COUNT = 6

    # Installer constants
    MAX_TRY_LIMIT = 200
    MSI_EXIT_USER_CANCEL = 1602
    MAC_APPLICATIONS_DIR = "/Applications"
