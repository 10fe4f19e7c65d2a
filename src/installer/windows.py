"""Windows installer (MSI, MSIX, sideloaded AppX) and inventory (AppX + Uninstall registry)."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional

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

from .base import PlatformInstaller, PlatformInventory, run_command, run_powershell

logger = logging.getLogger(__name__)

UNINSTALL_KEY = r"HKLM:\Software\Microsoft\Windows\CurrentVersion\Uninstall"

_REGISTRY_SCRIPT = """foreach($obj in Get-ChildItem "%s") {
  $dn = $obj.GetValue('DisplayName')
  $publisher = $obj.GetValue('Publisher')
  if($dn -ne $null -and (%s)) {
    $key_name = ($obj | Select-Object Name | Split-Path -Leaf).replace('}}', '}')
    $ver = $obj.GetValue('DisplayVersion')
    @{ "Name" = $dn; "Version" = $ver; "PackageFullName" = $key_name } | ConvertTo-Json -Compress
  }
}"""

_LAUNCH_APPX_SCRIPT = (
    "$x = Get-StartApps | Where-Object {$_.AppId.StartsWith('%s')} | Select-Object -First 1 | Select -ExpandProperty AppId\n"
    "if ($x -eq $null) { exit 1 }\n"
    'explorer.exe "shell:AppsFolder\\$x"'
)


def _ps_quote(value: str) -> str:
    return value.replace('"', '`"')


class WindowsInstaller(PlatformInstaller):

    def __init__(self, work_directory):
        self.work_directory = Path(work_directory)

    def install(
        self,
        candidate: InstallationCandidate,
        artifact_path: Path,
        mode: InstallOverwriteOptions,
    ) -> InstallationResult:
        package_type = candidate.flavor.package_type
        if package_type == PackageType.APPX:
            return self._install_appx(candidate, artifact_path)
        if package_type == PackageType.MSIX:
            res = run_powershell(f'Add-AppxPackage "{_ps_quote(str(artifact_path))}"', context="install_msix")
            if res.returncode != 0:
                raise InstallError(
                    f"Failed to install {candidate.product_name}, couldn't run MSIX installer successfully"
                )
            return InstallationResult.SUCCEEDED
        if package_type == PackageType.MSI:
            res = run_command(["msiexec", "/i", str(artifact_path), "/passive"], context="install_msi")
            if res.returncode == 0:
                logger.debug("Successfully installed %s", candidate.product_name)
                return InstallationResult.SUCCEEDED
            if res.returncode == Constants.MSI_EXIT_USER_CANCEL:
                logger.info("User canceled installation")
                return InstallationResult.CANCELED
            raise InstallError(f"msiexec exited with code {res.returncode}")
        raise InstallError(f"Package type {package_type.value} cannot be installed on Windows")

    def _install_appx(self, candidate: InstallationCandidate, artifact_path: Path) -> InstallationResult:
        extract_dir = self.work_directory / candidate.make_cached_file_name()
        try:
            extract_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InstallError(f"Could not create extraction folder {extract_dir}: {exc}") from exc

        res = run_powershell(
            f'Expand-Archive "{_ps_quote(str(artifact_path))}" "{_ps_quote(str(extract_dir))}" -Force',
            context="extract_appx",
        )
        if res.returncode != 0:
            raise InstallError(
                f"Failed to install {candidate.product_name}, couldn't extract to temp directory"
            )

        script = self._find_install_script(extract_dir)
        if script is None:
            raise InstallError(f"No Install.ps1 found in {extract_dir}")
        logger.debug("Found %s install script %s", candidate.product_name, script)
        res = run_powershell(f'& "{_ps_quote(str(script))}"', context="install_appx")
        if res.returncode != 0:
            raise InstallError(
                f"Failed to install {candidate.product_name}, couldn't run install script successfully"
            )
        return InstallationResult.SUCCEEDED

    @staticmethod
    def _find_install_script(extract_dir: Path) -> Optional[Path]:
        direct = extract_dir / "Install.ps1"
        if direct.is_file():
            return direct
        for child in sorted(extract_dir.iterdir()):
            if child.is_dir() and (child / "Install.ps1").is_file():
                return child / "Install.ps1"
        return None

    def uninstall(self, installed: InstalledProduct) -> None:
        logger.debug("Uninstalling %s", installed.product_name)
        if installed.package_type in (PackageType.APPX, PackageType.MSIX):
            res = run_powershell(f"Remove-AppxPackage {installed.package_name}", context="uninstall_appx")
        elif installed.package_type == PackageType.MSI:
            res = run_command(["msiexec", "/x", installed.package_name, "/passive"], context="uninstall_msi")
        else:
            raise UninstallError(f"Don't know how to remove {installed.package_type.value} packages")
        if res.returncode != 0:
            raise UninstallError(
                f"Failed to uninstall {installed.product_name}: exit code {res.returncode}"
            )
        logger.debug("Successfully uninstalled %s", installed.product_name)

    def launch(self, candidate: InstallationCandidate) -> None:
        logger.info("Attempting to automatically launch application")
        flavor = candidate.flavor
        metadata = flavor.metadata
        if flavor.package_type in (PackageType.APPX, PackageType.MSIX):
            if metadata is None or not metadata.name_regex:
                raise InstallError(
                    "Can't autorun application: name_regex must be supplied for AppX and MsiX package types"
                )
            res = run_powershell(_LAUNCH_APPX_SCRIPT % metadata.name_regex.replace("'", "''"), context="launch")
            if res.returncode != 0:
                raise InstallError(f"Failed to autorun application: exit code {res.returncode}")
            return
        if metadata is not None and metadata.install_path:
            args = ", ".join(f"'{a}'" for a in (metadata.launch_args or []))
            script = f'Start-Process -FilePath "{_ps_quote(metadata.install_path)}"'
            if args:
                script += f" -ArgumentList {args}"
            res = run_powershell(script, context="launch")
            if res.returncode != 0:
                raise InstallError(f"Failed to autorun application: exit code {res.returncode}")
            return
        logger.debug("No launch information for %s", flavor.id)


def _match_product(
    name: str,
    products: Iterable[Product],
    package_types: Iterable[PackageType],
    regex_of: Callable,
) -> Optional[Product]:
    types = tuple(package_types)
    for product in products:
        for flavor in product.flavors_for(Platform.WINDOWS):
            if flavor.package_type not in types:
                continue
            pattern = regex_of(flavor)
            if not pattern:
                continue
            try:
                if re.search(pattern, name):
                    return product
            except re.error as exc:
                raise InstallError(
                    f"Invalid regex {pattern!r} on product {product.name}: {exc}"
                ) from exc
    return None


def _parse_json_records(text: str) -> List[dict]:
    """PowerShell emits either one object, an array, or one object per line."""
    text = text.strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = [json.loads(line) for line in text.splitlines() if line.strip()]
    if isinstance(data, dict):
        data = [data]
    return [d for d in data if isinstance(d, dict)]


class WindowsInventory(PlatformInventory):

    def __init__(self, publisher_ids: List[str]):
        self.publisher_ids = publisher_ids

    def list_installed(self, products: List[Product]) -> List[InstalledProduct]:
        if not self.publisher_ids:
            logger.warning(
                "No publishers specified, therefore can't get any Windows installed application information"
            )
            return []
        return self._list_appx(products) + self._list_registry(products)

    def _list_appx(self, products: List[Product]) -> List[InstalledProduct]:
        where = " -or ".join(f'$_.Publisher -eq "{_ps_quote(p)}"' for p in self.publisher_ids)
        script = (
            f"Get-AppxPackage | Where-Object {{{where}}} | "
            "Select Name, Version, PackageFullName | ConvertTo-Json -Compress"
        )
        res = run_powershell(script, context="list_appx")
        if res.returncode != 0:
            raise InstallError("Failed to get installations: AppX items")

        installed = []
        for record in _parse_json_records(res.stdout):
            product = _match_product(
                str(record.get("Name", "")),
                products,
                (PackageType.APPX, PackageType.MSIX),
                lambda f: f.metadata.name_regex if f.metadata else None,
            )
            if product is None:
                continue
            installed.append(
                InstalledProduct(
                    product_name=product.name,
                    version=Version(str(record.get("Version", ""))),
                    package_name=str(record.get("PackageFullName", "")),
                    package_type=PackageType.APPX,
                )
            )
        return installed

    def _list_registry(self, products: List[Product]) -> List[InstalledProduct]:
        where = " -or ".join(f'$publisher -eq "{_ps_quote(p)}"' for p in self.publisher_ids)
        res = run_powershell(_REGISTRY_SCRIPT % (UNINSTALL_KEY, where), context="list_msi")
        if res.returncode != 0:
            raise InstallError(f"Failed to get installations: MSI items: exit code {res.returncode}")

        installed = []
        for record in _parse_json_records(res.stdout):
            product = _match_product(
                str(record.get("Name", "")),
                products,
                (PackageType.MSI,),
                lambda f: f.metadata.display_name_regex if f.metadata else None,
            )
            if product is None:
                continue
            installed.append(
                InstalledProduct(
                    product_name=product.name,
                    version=Version(str(record.get("Version") or "")),
                    package_name=str(record.get("PackageFullName", "")),
                    package_type=PackageType.MSI,
                )
            )
        return installed
