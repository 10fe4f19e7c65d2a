"""macOS installer (DMG containing a .app or .pkg) and /Applications inventory."""
from __future__ import annotations

import logging
import plistlib
import re
from pathlib import Path
from typing import List, Optional, Tuple

from constants import Constants
from common.errors import InstallError, UninstallError
from catalog.candidates import (
    InstallationCandidate,
    InstallationResult,
    InstalledProduct,
    InstallOverwriteOptions,
)
from catalog.models import PackageType, Platform, Product
from versioning.version import Version

from .base import PlatformInstaller, PlatformInventory, find_free_destination, run_command

logger = logging.getLogger(__name__)

MOUNTED_VOLUME_REGEX = re.compile(r"(/Volumes/.+$)")


def _read_plist(app_dir: Path) -> Optional[dict]:
    plist_path = app_dir / "Contents" / "Info.plist"
    try:
        with open(plist_path, "rb") as fh:
            data = plistlib.load(fh)
    except FileNotFoundError:
        return None
    except (OSError, plistlib.InvalidFileException, ValueError) as exc:
        logger.warning("Failed to read contents of %s: %s", plist_path, exc)
        return None
    return data if isinstance(data, dict) else None


class MacInstaller(PlatformInstaller):

    def __init__(self, applications_dir: str = Constants.MAC_APPLICATIONS_DIR):
        self.applications_dir = Path(applications_dir)

    # Disk image handling

    def mount(self, image: Path) -> Path:
        res = run_command(["hdiutil", "attach", str(image)], context="mount")
        if res.returncode != 0:
            raise InstallError(f"Failed to mount {image}: exit code {res.returncode}")
        for line in res.stdout.splitlines():
            match = MOUNTED_VOLUME_REGEX.search(line.strip())
            if match:
                logger.debug("Mounted %s at %s", image, match.group(1))
                return Path(match.group(1))
        raise InstallError("Failed to get mount point")

    def unmount(self, volume: Path, check: bool = True) -> None:
        """Detach ``volume``; with ``check`` off a failure is only logged."""
        res = run_command(["hdiutil", "detach", str(volume)], context="unmount")
        if res.returncode != 0:
            if not check:
                logger.warning("Failed to unmount volume at %s: exit code %d", volume, res.returncode)
                return
            raise InstallError(f"Failed to unmount volume at {volume}")
        logger.debug("Unmounted volume at %s", volume)

    @staticmethod
    def find_mounted_package(volume: Path) -> Optional[Tuple[PackageType, Path]]:
        """First ``.app`` on the volume, else the first ``.pkg``."""
        try:
            names = sorted(p.name for p in volume.iterdir())
        except OSError as exc:
            raise InstallError(f"Failed to list mounted directory {volume}: {exc}") from exc
        for suffix, package_type in ((".app", PackageType.APP), (".pkg", PackageType.PKG)):
            for name in names:
                if name.endswith(suffix):
                    return package_type, volume / name
        return None

    # Installer operations

    def install(
        self,
        candidate: InstallationCandidate,
        artifact_path: Path,
        mode: InstallOverwriteOptions,
    ) -> InstallationResult:
        if mode is InstallOverwriteOptions.CANCEL:
            return InstallationResult.CANCELED
        volume = self.mount(artifact_path)
        try:
            found = self.find_mounted_package(volume)
            if found is None:
                raise InstallError("Mounted item but contents were neither app nor pkg")
            package_type, path = found
            if package_type == PackageType.APP:
                return self._install_app(path, mode)
            return self._install_pkg(path)
        finally:
            # The install result stands even when the image stays attached.
            self.unmount(volume, check=False)

    def _install_app(self, source: Path, mode: InstallOverwriteOptions) -> InstallationResult:
        if mode is InstallOverwriteOptions.ADD:
            destination = find_free_destination(self.applications_dir, source.name)
        else:
            destination = self.applications_dir / source.name
        logger.info("Copying %s to %s", source.name, destination)
        res = run_command(["cp", "-R", "-a", "-f", str(source), str(destination)], context="install_app")
        if res.returncode != 0:
            raise InstallError(f"Failed to copy {source.name} to {destination}: {res.stderr.strip()}")
        return InstallationResult.SUCCEEDED

    @staticmethod
    def _install_pkg(package: Path) -> InstallationResult:
        res = run_command(["installer", "-pkg", str(package), "-target", "/"], context="install_pkg")
        if res.returncode != 0:
            raise InstallError(f"Failed to run installer for package contents: exit code {res.returncode}")
        return InstallationResult.SUCCEEDED

    def should_uninstall(self, installed: InstalledProduct, artifact_path: Path) -> bool:
        """Only a .app with the same folder name as the image's bundle collides."""
        if installed.package_type != PackageType.APP:
            return True
        volume = self.mount(artifact_path)
        try:
            found = self.find_mounted_package(volume)
        finally:
            self.unmount(volume)
        if found is None:
            return False
        return installed.path is not None and Path(installed.path) == self.applications_dir / found[1].name

    def _running_labels(self) -> List[str]:
        res = run_command(["launchctl", "list"], context="launchctl_list")
        if res.returncode != 0:
            raise UninstallError("Couldn't list running applications")
        labels = []
        for line in res.stdout.splitlines():
            parts = line.split("\t")
            if len(parts) > 2:
                labels.append(parts[2])
        return labels

    def shutdown_if_running(self, installed: InstalledProduct) -> None:
        for label in self._running_labels():
            if installed.package_name and installed.package_name in label:
                logger.debug("Stopping application %s", label)
                res = run_command(["launchctl", "stop", label], context="launchctl_stop")
                if res.returncode != 0:
                    raise UninstallError(
                        f"Failed to stop {label} for application {installed.package_name}"
                    )
                return
        logger.debug("%s is not running", installed.package_name)

    def _application_path(self, installed: InstalledProduct) -> Optional[Path]:
        if installed.path is not None and Path(installed.path).is_dir():
            return Path(installed.path)
        try:
            children = sorted(self.applications_dir.iterdir())
        except OSError as exc:
            raise UninstallError(f"Failed to read {self.applications_dir}: {exc}") from exc
        for child in children:
            plist = _read_plist(child) if child.is_dir() else None
            if plist and plist.get("CFBundleIdentifier") == installed.package_name:
                return child
        return None

    def uninstall(self, installed: InstalledProduct) -> None:
        path = self._application_path(installed)
        if path is None:
            logger.debug("No entries known for %s, may already be uninstalled", installed.product_name)
            return
        logger.debug("Removing %s", path)
        res = run_command(["rm", "-r", str(path)], context="uninstall_app")
        if res.returncode != 0:
            raise UninstallError(f"Failed to remove application from {self.applications_dir}: {res.stderr.strip()}")

    def launch(self, candidate: InstallationCandidate) -> None:
        metadata = candidate.flavor.metadata
        if metadata is None or not metadata.cf_bundle_name:
            logger.debug("No bundle name to launch for %s", candidate.flavor.id)
            return
        logger.info("Attempting to automatically launch application")
        args = ["open", "-a", metadata.cf_bundle_name]
        if metadata.launch_args:
            args += ["--args", *metadata.launch_args]
        res = run_command(args, context="launch")
        if res.returncode != 0:
            raise InstallError(f"Failed to launch {metadata.cf_bundle_name}: exit code {res.returncode}")

    def supports_add_alongside(self, package_type: PackageType) -> bool:
        return package_type == PackageType.APP


class MacInventory(PlatformInventory):
    """Matches /Applications bundles to catalog flavors by CFBundleIdentifier."""

    def __init__(self, applications_dir: str = Constants.MAC_APPLICATIONS_DIR):
        self.applications_dir = Path(applications_dir)

    def list_installed(self, products: List[Product]) -> List[InstalledProduct]:
        known = {}
        for product in products:
            for flavor in product.flavors_for(Platform.MAC):
                if flavor.metadata and flavor.metadata.cf_bundle_id:
                    known.setdefault(flavor.metadata.cf_bundle_id, product.name)

        try:
            children = sorted(self.applications_dir.iterdir())
        except OSError as exc:
            logger.error("Failed to read %s directory: %s", self.applications_dir, exc)
            raise InstallError(f"Failed to read {self.applications_dir}: {exc}") from exc

        installed = []
        for child in children:
            if not child.is_dir():
                continue
            plist = _read_plist(child)
            if plist is None:
                continue
            bundle_id = plist.get("CFBundleIdentifier")
            short_version = plist.get("CFBundleShortVersionString")
            build = plist.get("CFBundleVersion")
            if not all(isinstance(v, str) for v in (bundle_id, short_version, build)):
                logger.debug("Skipping %s: incomplete bundle information", child.name)
                continue
            if bundle_id not in known:
                continue
            installed.append(
                InstalledProduct(
                    product_name=known[bundle_id],
                    version=Version(f"{short_version}.{build}"),
                    package_name=bundle_id,
                    package_type=PackageType.APP,
                    path=child,
                )
            )
        return installed
