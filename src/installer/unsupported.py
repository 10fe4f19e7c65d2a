"""Fallback collaborators for hosts without a native installer integration."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from common.errors import InstallError, UninstallError
from catalog.candidates import (
    InstallationCandidate,
    InstallationResult,
    InstalledProduct,
    InstallOverwriteOptions,
)
from catalog.models import Product

from .base import PlatformInstaller, PlatformInventory

logger = logging.getLogger(__name__)


class UnsupportedInstaller(PlatformInstaller):

    def __init__(self, platform_name: str):
        self.platform_name = platform_name

    def install(
        self,
        candidate: InstallationCandidate,
        artifact_path: Path,
        mode: InstallOverwriteOptions,
    ) -> InstallationResult:
        raise InstallError(
            f"Installing {candidate.flavor.package_type.value} packages is not supported on {self.platform_name}"
        )

    def uninstall(self, installed: InstalledProduct) -> None:
        raise UninstallError(f"Uninstalling is not supported on {self.platform_name}")

    def launch(self, candidate: InstallationCandidate) -> None:
        logger.debug("Launching is not supported on %s", self.platform_name)


class EmptyInventory(PlatformInventory):

    def list_installed(self, products: List[Product]) -> List[InstalledProduct]:
        return []
