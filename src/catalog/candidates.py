"""Candidate vocabulary shared by the cache, the repository client and the orchestrator."""
from __future__ import annotations

import logging
import ntpath
import posixpath
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from constants import Constants
from common.errors import CandidateError
from catalog.models import Flavor, PackageType, Platform, Product, TeamCityMetadata
from versioning.version import Version, VERSION_PATTERN

logger = logging.getLogger(__name__)


class InstallationResult(Enum):
    """Terminal outcomes of an install or uninstall invocation."""
    SUCCEEDED = "Succeeded"
    SKIPPED = "Skipped"
    CANCELED = "Canceled"
    ERROR = "Error"


class InstallOverwriteOptions(Enum):
    """How to treat an existing installation of the same product."""
    OVERWRITE = "overwrite"
    ADD = "add"
    CANCEL = "cancel"

    @classmethod
    def from_answer(cls, answer: str) -> "InstallOverwriteOptions":
        """Map a console answer; anything unrecognised cancels."""
        text = (answer or "").strip().lower()
        if text in ("o", "overwrite"):
            return cls.OVERWRITE
        if text in ("a", "add"):
            return cls.ADD
        return cls.CANCEL


@dataclass
class InstallOutcome:
    result: InstallationResult
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not InstallationResult.ERROR


@dataclass(frozen=True)
class SearchCandidate:
    """What the user asked for: a product flavor pinned by version, branch, or neither."""
    product_name: str
    flavor: Flavor
    version: Optional[Version] = None
    identifier: Optional[str] = None

    @classmethod
    def new(
        cls,
        product_name: str,
        version: Optional[str],
        identifier: Optional[str],
        flavor_id: Optional[str],
        products: List[Product],
        platform: Platform,
    ) -> "SearchCandidate":
        """Resolve product and flavor against the catalog.

        The flavor is the explicitly named one, otherwise the first flavor
        defined for ``platform``.

        Raises:
            CandidateError: unknown product or no usable flavor.
        """
        product = Product.from_name(product_name, products)
        if product is None:
            raise CandidateError(f"Unknown product: {product_name}")
        if flavor_id:
            flavor = product.find_flavor(flavor_id)
        else:
            flavors = product.flavors_for(platform)
            flavor = flavors[0] if flavors else None
        if flavor is None:
            raise CandidateError(
                f"No flavor {flavor_id or '(default)'} of {product.name} for {platform.value}"
            )
        return cls(
            product_name=product.name,
            flavor=flavor,
            version=Version(version) if version else None,
            identifier=identifier or None,
        )

    def pinned_to(self, version: Version, identifier: Optional[str]) -> "SearchCandidate":
        """Same product and flavor, restricted to one exact build."""
        return replace(self, version=version, identifier=identifier)

    def version_or_identifier_string(self) -> str:
        if self.version is not None:
            return str(self.version)
        return self.identifier or ""


@dataclass
class InstalledProduct:
    """A product found on the machine by the platform inventory."""
    product_name: str
    version: Version
    package_name: str
    package_type: PackageType
    path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "name": self.product_name,
            "version": str(self.version),
            "package_name": self.package_name,
            "package_type": self.package_type.value,
            "path": str(self.path) if self.path else "",
        }


def binary_file_name(artifact_path: str) -> str:
    """Last component of a build artifact path, whichever separator it uses."""
    name = posixpath.basename(ntpath.basename(artifact_path or ""))
    return name or "--"


@dataclass
class InstallationCandidate:
    """A concrete build artifact, either cached locally or on a repository.

    Only ``installed`` changes after construction.
    """
    remote_id: str
    repo_location: str
    product_name: str
    version: Version
    identifier: str
    flavor: Flavor
    installed: bool = False

    def binary_file_name(self) -> str:
        return binary_file_name(self.flavor.teamcity_metadata.teamcity_binary_path)

    def make_cached_file_name(self) -> str:
        """Encode as ``product@platform@flavor@identifier@version@binary``."""
        return Constants.CACHE_FIELD_SEPARATOR.join(
            (
                self.product_name,
                self.flavor.platform.value,
                self.flavor.id,
                self.identifier,
                str(self.version),
                self.binary_file_name(),
            )
        )

    @classmethod
    def from_cached_file_name(cls, name: str) -> "InstallationCandidate":
        """Decode a cache entry name.

        The returned flavor is a placeholder carrying only id, platform and
        artifact name; callers re-attach the catalog flavor.

        Raises:
            CandidateError: wrong field count or unknown platform.
        """
        fields = name.split(Constants.CACHE_FIELD_SEPARATOR)
        if len(fields) != Constants.CACHE_FIELD_COUNT:
            raise CandidateError(
                f"Cache entry {name!r} has {len(fields)} fields, expected {Constants.CACHE_FIELD_COUNT}"
            )
        product_name, platform_name, flavor_id, identifier, version, binary = fields
        try:
            platform = Platform.from_name(platform_name)
        except ValueError as exc:
            raise CandidateError(f"Cache entry {name!r}: {exc}") from exc
        placeholder = replace(
            Flavor.empty(platform),
            id=flavor_id,
            teamcity_metadata=TeamCityMetadata(teamcity_id="", teamcity_binary_path=binary),
        )
        return cls(
            remote_id="",
            repo_location="",
            product_name=product_name,
            version=Version(version),
            identifier=identifier,
            flavor=placeholder,
        )

    def output_path(self, directory: Union[str, Path]) -> Path:
        return Path(directory) / self.make_cached_file_name()

    def product_equals(self, installed: InstalledProduct) -> bool:
        return installed.product_name.lower() == self.product_name.lower()

    def to_dict(self) -> dict:
        return {
            "name": self.product_name,
            "version": str(self.version),
            "identifier": self.identifier,
            "flavor": self.flavor.id,
            "installed": self.installed,
            "path": self.make_cached_file_name(),
        }

    @classmethod
    def placeholder_for(cls, installed: InstalledProduct, platform: Platform) -> "InstallationCandidate":
        """Listing row for an installed product that no repository offers."""
        return cls(
            remote_id="",
            repo_location="",
            product_name=installed.product_name,
            version=installed.version,
            identifier="--",
            flavor=Flavor.empty(platform),
            installed=True,
        )


def split_build_or_branch(text: Optional[str]):
    """Interpret a CLI hint as ``(version, identifier)``.

    Anything matching the version grammar pins a build number, everything
    else names a branch. No hint means the default branch.
    """
    if not text:
        return None, Constants.DEFAULT_IDENTIFIER
    if VERSION_PATTERN.match(text):
        return text, None
    return None, text
