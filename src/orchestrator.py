"""Install/uninstall orchestration.

The Client decides between cache and repository, runs the optional upgrade
check, detects existing installations and dispatches to the platform
installer. All collaborators are injected so tests can run against fakes and
isolated directories.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

import registry.teamcity as teamcity
from artifact_cache import ArtifactCache
from client_config import ClientConfig
from common.errors import GManError, RepositoryError
from common.logging_utils import extra_context, is_debug_enabled
from catalog.candidates import (
    InstallationCandidate,
    InstallationResult,
    InstalledProduct,
    InstallOutcome,
    InstallOverwriteOptions,
    SearchCandidate,
)
from catalog.models import Platform
from installer.base import PlatformInstaller, PlatformInventory
from util import remove_dir_contents
from versioning.version import Version

logger = logging.getLogger(__name__)


class Client:
    """Entry point for every gman operation on one host platform."""

    def __init__(
        self,
        config: ClientConfig,
        installer: PlatformInstaller,
        inventory: PlatformInventory,
        prompter,
        platform: Platform,
        progress: Optional[Callable[[int, int], None]] = None,
    ):
        self.config = config
        self.installer = installer
        self.inventory = inventory
        self.prompter = prompter
        self.platform = platform
        self.progress = progress
        self.cache = ArtifactCache(config.cache_directory, config.products)

    # Queries

    def valid_repositories(self) -> list:
        return self.config.valid_repositories(self.platform)

    def get_installed(self) -> List[InstalledProduct]:
        logger.debug("Getting installed items")
        return self.inventory.list_installed(self.config.products)

    def list_cache(self) -> List[InstallationCandidate]:
        logger.debug("Listing contents of cache directory %s", self.config.cache_directory)
        items = self.cache.list_cache()
        logger.debug("Found %d cached items", len(items))
        return items

    def clear_cache(self) -> None:
        self.cache.clear_cache()

    def clear_temp(self) -> None:
        """Empty the temp download directory; partial downloads never resume."""
        logger.debug("Clearing temporary folder %s", self.config.temp_download_directory)
        try:
            remove_dir_contents(self.config.temp_download_directory)
        except OSError as exc:
            logger.warning("Could not clear temp folder %s: %s", self.config.temp_download_directory, exc)

    def list_candidates(self, show_installed: bool = False) -> List[InstallationCandidate]:
        """Latest build per branch from every repository, annotated with install state.

        Without ``show_installed`` products that are already installed are
        dropped. With it, installed products missing from the listing are
        added as placeholder rows.
        """
        candidates = teamcity.get_builds(self.platform, self.config.products, self.valid_repositories())
        installed = self.get_installed()

        for item in installed:
            if not show_installed:
                candidates = [c for c in candidates if not c.product_equals(item)]
            elif not any(c.product_equals(item) and c.version == item.version for c in candidates):
                candidates.append(InstallationCandidate.placeholder_for(item, self.platform))

        for candidate in candidates:
            for item in installed:
                if candidate.product_equals(item) and candidate.version == item.version:
                    candidate.installed = True
        return candidates

    # Resolution

    def _download(self, candidate: InstallationCandidate, repo) -> Path:
        return teamcity.download_artifact(
            candidate,
            repo,
            self.config.temp_download_directory,
            self.config.cache_directory,
            self.config.teamcity_download_chunk_size,
            progress=self.progress,
        )

    def _upgrade_check(self, cached: InstallationCandidate, search: SearchCandidate) -> InstallationCandidate:
        """Prefer a newer repository build, falling back to ``cached`` whenever possible."""
        try:
            found = teamcity.get_with_build_id_by_candidate(search, self.valid_repositories())
        except RepositoryError as exc:
            logger.error(
                "Encountered an error when contacting repository for up to date information. "
                "Installing from cache: %s",
                exc,
            )
            return cached
        if found is None:
            logger.info("Build was not found on any repository, will install from cache")
            return cached

        discovered, repo = found
        already_cached = self.cache.locate_in_cache(search.pinned_to(discovered.version, discovered.identifier))
        if already_cached is not None:
            logger.info(
                "Most recent build (%s) is already in cache, skipping download", discovered.version
            )
            return already_cached

        if discovered.version.is_greater_than(cached.version):
            logger.info(
                "Repository has a newer build than the cache (cached: %s, found: %s), downloading",
                cached.version,
                discovered.version,
            )
            self._download(discovered, repo)
            return discovered

        logger.info("Cache is up to date with repository version %s", discovered.version)
        return cached

    def _resolve(self, search: SearchCandidate, automatic_upgrade: Optional[bool]) -> Optional[InstallationCandidate]:
        cached = self.cache.locate_in_cache(search)
        if cached is not None:
            logger.debug(
                "Found installation executable for %s@%s in cache",
                search.product_name,
                search.version_or_identifier_string(),
            )
            if search.version is not None:
                return cached
            if automatic_upgrade is False:
                logger.info("Using cached %s %s; automatic upgrade is off", cached.product_name, cached.version)
                return cached
            if automatic_upgrade is None:
                question = (
                    f"{cached.product_name} {cached.version} was found in the local cache but may be outdated. "
                    "Check the repositories for a newer build?"
                )
                if not self.prompter.confirm(question):
                    return cached
            return self._upgrade_check(cached, search)

        logger.debug(
            "%s@%s not found in cache, asking repositories",
            search.product_name,
            search.version_or_identifier_string(),
        )
        found = teamcity.get_with_build_id_by_candidate(search, self.valid_repositories())
        if found is None:
            return None
        candidate, repo = found
        self._download(candidate, repo)
        return candidate

    # Install / uninstall

    def _remove(self, item: InstalledProduct) -> None:
        self.installer.shutdown_if_running(item)
        self.installer.uninstall(item)
        logger.info("Uninstalled %s %s", item.product_name, item.version)

    def _eligible_installed(self, candidate: InstallationCandidate, artifact_path: Path) -> List[InstalledProduct]:
        eligible = []
        for item in self.get_installed():
            if not candidate.product_equals(item):
                continue
            try:
                if self.installer.should_uninstall(item, artifact_path):
                    eligible.append(item)
            except GManError as exc:
                logger.warning("Could not compare %s with the new artifact: %s", item.product_name, exc)
        return eligible

    def install(
        self,
        search: SearchCandidate,
        automatic_upgrade: Optional[bool] = None,
        prompt: bool = True,
        autorun: Optional[bool] = None,
    ) -> InstallOutcome:
        """Resolve, acquire and install ``search``; never raises for gman failures."""
        logger.debug(
            "Setting up installation for %s@%s",
            search.product_name,
            search.version_or_identifier_string(),
        )
        try:
            outcome = self._install(search, automatic_upgrade, prompt, autorun)
        except GManError as exc:
            logger.error("Installation of %s failed: %s", search.product_name, exc)
            outcome = InstallOutcome(InstallationResult.ERROR, str(exc))

        if is_debug_enabled(logger):
            logger.debug(
                "Install finished",
                extra=extra_context(
                    event="function_exit",
                    component="orchestrator",
                    action="install",
                    outcome=outcome.result.value,
                    target=search.product_name,
                ),
            )
        return outcome

    def _install(
        self,
        search: SearchCandidate,
        automatic_upgrade: Optional[bool],
        prompt: bool,
        autorun: Optional[bool],
    ) -> InstallOutcome:
        candidate = self._resolve(search, automatic_upgrade)
        if candidate is None:
            logger.warning("No candidates found for %s %s", search.product_name, search.version_or_identifier_string())
            return InstallOutcome(InstallationResult.SKIPPED, "No candidates found")

        artifact_path = self.cache.path_for(candidate)
        eligible = self._eligible_installed(candidate, artifact_path)

        if any(item.version == candidate.version for item in eligible):
            logger.warning(
                "This version (%s) of %s is already installed. Skipping.", candidate.version, candidate.product_name
            )
            return InstallOutcome(InstallationResult.SKIPPED, "Already installed")

        if not eligible:
            mode = InstallOverwriteOptions.OVERWRITE
        elif prompt and len(eligible) > 1:
            mode = self.prompter.choose_conflict_resolution(candidate.product_name)
        else:
            mode = InstallOverwriteOptions.OVERWRITE

        if mode is InstallOverwriteOptions.ADD and not self.installer.supports_add_alongside(
            candidate.flavor.package_type
        ):
            logger.debug("Adding alongside is not supported for %s, overwriting", candidate.flavor.package_type.value)
            mode = InstallOverwriteOptions.OVERWRITE

        if mode is InstallOverwriteOptions.CANCEL:
            logger.info("Won't continue with installation")
            return InstallOutcome(InstallationResult.CANCELED, "Canceled by user")

        if mode is InstallOverwriteOptions.OVERWRITE:
            for item in eligible:
                self._remove(item)
        else:
            logger.info("Will create an additional installation for %s", candidate.product_name)

        result = self.installer.install(candidate, artifact_path, mode)
        if result is InstallationResult.CANCELED:
            return InstallOutcome(InstallationResult.CANCELED, "Installer was canceled")
        if result is not InstallationResult.SUCCEEDED:
            logger.error("Installer for %s returned %s", candidate.product_name, result.value)
            return InstallOutcome(InstallationResult.ERROR, f"Installer returned {result.value}")
        logger.info("Successfully installed %s %s", candidate.product_name, candidate.version)

        should_launch = candidate.flavor.autorun if autorun is None else autorun
        if should_launch:
            try:
                self.installer.launch(candidate)
            except GManError as exc:
                logger.error("Installed %s but could not launch it: %s", candidate.product_name, exc)
                return InstallOutcome(InstallationResult.SUCCEEDED, f"Launch failed: {exc}")
        return InstallOutcome(InstallationResult.SUCCEEDED)

    def uninstall(self, name: str, version: Optional[str] = None, prompt: bool = True) -> InstallOutcome:
        """Remove installed products named ``name`` (optionally only ``version``)."""
        logger.debug("Attempting to find uninstallation target for %s", name)
        wanted = Version(version) if version else None
        name_lower = name.lower()
        try:
            matches = [
                item for item in self.get_installed()
                if item.product_name.lower() == name_lower and (wanted is None or item.version == wanted)
            ]
            if not matches:
                logger.error("No item named %s found on system, cannot uninstall", name)
                return InstallOutcome(InstallationResult.ERROR, "No item found")

            ask = prompt and len(matches) > 1
            removed = 0
            for item in matches:
                if ask:
                    location = f" ({item.path})" if item.path else ""
                    if not self.prompter.confirm(f"Uninstall {item.product_name} {item.version}{location}?"):
                        logger.info("Will not uninstall %s %s", item.product_name, item.version)
                        continue
                self._remove(item)
                removed += 1
        except GManError as exc:
            logger.error("Uninstall of %s failed: %s", name, exc)
            return InstallOutcome(InstallationResult.ERROR, str(exc))

        if removed == 0:
            return InstallOutcome(InstallationResult.CANCELED, "Nothing selected")
        return InstallOutcome(InstallationResult.SUCCEEDED)
