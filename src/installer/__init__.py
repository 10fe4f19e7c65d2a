"""Platform installer package.

- base.py: installer/inventory interfaces, command runner, free-path search
- windows.py: MSI, MSIX and AppX installs; AppX and registry inventory
- mac.py: DMG (.app/.pkg) installs; /Applications inventory
- unsupported.py: hosts without native integration
"""
from __future__ import annotations

import os
from typing import Tuple

from catalog.models import Platform
from constants import Constants

from .base import (  # noqa: F401
    PlatformInstaller,
    PlatformInventory,
    find_free_destination,
    run_command,
)


def get_platform_collaborators(platform: Platform, config) -> Tuple[PlatformInstaller, PlatformInventory]:
    """Pick the installer and inventory for ``platform``."""
    if platform == Platform.WINDOWS:
        from .windows import WindowsInstaller, WindowsInventory  # pylint: disable=import-outside-toplevel
        work_dir = os.path.join(os.path.dirname(config.temp_download_directory), "extract")
        return WindowsInstaller(work_dir), WindowsInventory(config.publisher_ids(platform))
    if platform == Platform.MAC:
        from .mac import MacInstaller, MacInventory  # pylint: disable=import-outside-toplevel
        return MacInstaller(Constants.MAC_APPLICATIONS_DIR), MacInventory(Constants.MAC_APPLICATIONS_DIR)
    from .unsupported import EmptyInventory, UnsupportedInstaller  # pylint: disable=import-outside-toplevel
    return UnsupportedInstaller(platform.value), EmptyInventory()


__all__ = [
    "PlatformInstaller",
    "PlatformInventory",
    "find_free_destination",
    "run_command",
    "get_platform_collaborators",
]
