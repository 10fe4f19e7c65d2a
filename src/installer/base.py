"""Platform installer and inventory interfaces plus shared command helpers."""
from __future__ import annotations

import abc
import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

from constants import Constants
from common.errors import InstallError
from common.logging_utils import extra_context, is_debug_enabled, redact, Timer
from catalog.candidates import (
    InstallationCandidate,
    InstallationResult,
    InstalledProduct,
    InstallOverwriteOptions,
)
from catalog.models import PackageType, Product

logger = logging.getLogger(__name__)


def run_command(args: Sequence[str], *, context: str) -> subprocess.CompletedProcess:
    """Run an external command, capturing text output.

    Raises:
        InstallError: the executable could not be started at all.
    """
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "Running command",
                extra=extra_context(
                    event="subprocess",
                    component="installer",
                    action=context,
                    target=redact(" ".join(str(a) for a in args)),
                ),
            )
        try:
            result = subprocess.run(  # noqa: S603
                [str(a) for a in args],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise InstallError(f"{context}: could not run {args[0]}: {exc}") from exc
    if is_debug_enabled(logger):
        logger.debug(
            "Command finished",
            extra=extra_context(
                event="subprocess",
                component="installer",
                action=context,
                outcome="success" if result.returncode == 0 else "error",
                returncode=result.returncode,
                duration_ms=t.duration_ms(),
            ),
        )
    return result


def run_powershell(script: str, *, context: str) -> subprocess.CompletedProcess:
    return run_command(["powershell", "-NoProfile", "-Command", script], context=context)


def find_free_destination(parent, name: str, max_tries: int = Constants.MAX_TRY_LIMIT) -> Path:
    """Return ``parent/name`` or the first free ``parent/name_N``.

    Raises:
        InstallError: no free name within ``max_tries`` attempts.
    """
    parent = Path(parent)
    candidate = parent / name
    attempt = 0
    while candidate.exists():
        attempt += 1
        if attempt >= max_tries:
            logger.error("Tried %d times to find a valid free path, terminating.", max_tries)
            raise InstallError(
                f"Tried {max_tries} times to find a valid free path during installation"
            )
        candidate = parent / f"{name}_{attempt}"
    return candidate


class PlatformInstaller(abc.ABC):
    """Drives the native installer for one host platform."""

    @abc.abstractmethod
    def install(
        self,
        candidate: InstallationCandidate,
        artifact_path: Path,
        mode: InstallOverwriteOptions,
    ) -> InstallationResult:
        """Install the artifact; SUCCEEDED or CANCELED, InstallError otherwise."""

    @abc.abstractmethod
    def uninstall(self, installed: InstalledProduct) -> None:
        """Remove ``installed``; raises UninstallError on failure."""

    def shutdown_if_running(self, installed: InstalledProduct) -> None:
        """Stop a running instance before removal. Default: nothing to stop."""
        logger.debug("Shutting down %s if running", installed.product_name)

    def should_uninstall(self, installed: InstalledProduct, artifact_path: Path) -> bool:
        """Whether installing ``artifact_path`` would collide with ``installed``."""
        return True

    @abc.abstractmethod
    def launch(self, candidate: InstallationCandidate) -> None:
        """Start the freshly installed application; raises InstallError on failure."""

    def supports_add_alongside(self, package_type: PackageType) -> bool:
        return False


class PlatformInventory(abc.ABC):
    """Enumerates products from the catalog that are installed on this host."""

    @abc.abstractmethod
    def list_installed(self, products: List[Product]) -> List[InstalledProduct]:
        ...
