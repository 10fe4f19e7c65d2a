"""Exception hierarchy shared by the gman engine and CLI."""
from __future__ import annotations

from typing import Optional


class GManError(Exception):
    """Base class for all gman failures."""


class ConfigError(GManError):
    """Configuration file missing, unreadable or invalid."""


class CandidateError(GManError):
    """A search or cached entry could not be mapped onto the catalog."""


class RepositoryError(GManError):
    """A build repository could not be queried.

    Attributes:
        status_code: HTTP status when the server answered, None for transport failures.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DownloadError(GManError):
    """An artifact transfer failed; the partial temp file is left in place."""


class InstallError(GManError):
    """The platform installer failed or could not be driven."""


class UninstallError(GManError):
    """An installed product could not be stopped or removed."""
