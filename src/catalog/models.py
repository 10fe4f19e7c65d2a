"""Product catalog model: platforms, package types, products and their flavors."""
from __future__ import annotations

import logging
import platform as _platform
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

RASPBERRY_PI_MODEL_FILE = "/proc/device-tree/model"


class Platform(Enum):
    """Target platforms. Values are the names used in cache entries and config."""
    WINDOWS = "Windows"
    MAC = "Mac"
    LINUX = "Linux"
    RASPBERRY_PI = "RaspberryPi"
    ANDROID = "Android"
    IOS = "iOS"

    @classmethod
    def from_name(cls, name: str) -> "Platform":
        """Case-insensitive lookup by value; raises ValueError for unknown names."""
        lowered = str(name).strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise ValueError(f"Unknown platform: {name}")

    @classmethod
    def current(cls) -> Optional["Platform"]:
        """Detect the host platform, None when it is not one gman can target."""
        if sys.platform.startswith("win"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MAC
        if sys.platform.startswith("linux"):
            if _platform.machine().lower().startswith(("arm", "aarch")) and _is_raspberry_pi():
                return cls.RASPBERRY_PI
            return cls.LINUX
        return None


def _is_raspberry_pi() -> bool:
    try:
        with open(RASPBERRY_PI_MODEL_FILE, encoding="utf-8", errors="ignore") as fh:
            return "raspberry pi" in fh.read().lower()
    except OSError:
        return False


class PackageType(Enum):
    """Artifact packaging; decides which installer path handles it."""
    APPX = "AppX"
    MSI = "Msi"
    MSIX = "MsiX"
    STANDALONE_EXE = "StandaloneExe"
    APP = "App"
    PKG = "Pkg"
    DEB = "Deb"
    APK = "Apk"
    IPA = "Ipa"

    @classmethod
    def from_name(cls, name: str) -> "PackageType":
        lowered = str(name).strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise ValueError(f"Unknown package type: {name}")

    def is_compatible_with(self, platform: Platform) -> bool:
        return platform in _COMPATIBILITY.get(self, ())


_COMPATIBILITY = {
    PackageType.APPX: (Platform.WINDOWS,),
    PackageType.MSI: (Platform.WINDOWS,),
    PackageType.MSIX: (Platform.WINDOWS,),
    PackageType.STANDALONE_EXE: (Platform.WINDOWS, Platform.LINUX, Platform.RASPBERRY_PI),
    PackageType.APP: (Platform.MAC,),
    PackageType.PKG: (Platform.MAC,),
    PackageType.DEB: (Platform.LINUX, Platform.RASPBERRY_PI),
    PackageType.APK: (Platform.ANDROID,),
    PackageType.IPA: (Platform.IOS,),
}


@dataclass(frozen=True)
class TeamCityMetadata:
    """Where a flavor's artifact lives on the build server."""
    teamcity_id: str
    teamcity_binary_path: str


@dataclass(frozen=True)
class FlavorMetadata:
    """Optional platform hints; a missing field disables the matching capability."""
    name_regex: Optional[str] = None
    display_name_regex: Optional[str] = None
    install_path: Optional[str] = None
    cf_bundle_id: Optional[str] = None
    cf_bundle_name: Optional[str] = None
    launch_args: Optional[List[str]] = None
    run_as_service: Optional[bool] = None
    stop_command: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FlavorMetadata"]:
        if not data:
            return None
        launch_args = data.get("launch_args")
        if isinstance(launch_args, str):
            launch_args = launch_args.split()
        return cls(
            name_regex=data.get("name_regex"),
            display_name_regex=data.get("display_name_regex"),
            install_path=data.get("install_path"),
            cf_bundle_id=data.get("cf_bundle_id"),
            cf_bundle_name=data.get("cf_bundle_name"),
            launch_args=list(launch_args) if launch_args else None,
            run_as_service=data.get("run_as_service"),
            stop_command=data.get("stop_command"),
        )


@dataclass(frozen=True)
class Flavor:
    """A platform and packaging specific variant of a product."""
    id: str
    platform: Platform
    package_type: PackageType
    teamcity_metadata: TeamCityMetadata
    metadata: Optional[FlavorMetadata] = None
    autorun: bool = False

    @classmethod
    def empty(cls, platform: Platform = Platform.WINDOWS) -> "Flavor":
        """Placeholder flavor for rows that have no catalog entry."""
        return cls(
            id="",
            platform=platform,
            package_type=PackageType.STANDALONE_EXE,
            teamcity_metadata=TeamCityMetadata(teamcity_id="", teamcity_binary_path=""),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flavor":
        """Build a flavor from a config mapping; raises ValueError/KeyError on bad input."""
        platform = Platform.from_name(data["platform"])
        package_type = PackageType.from_name(data["package_type"])
        if not package_type.is_compatible_with(platform):
            raise ValueError(
                f"Package type {package_type.value} is not installable on {platform.value}"
            )
        tc = data.get("teamcity_metadata") or {}
        return cls(
            id=str(data["id"]),
            platform=platform,
            package_type=package_type,
            teamcity_metadata=TeamCityMetadata(
                teamcity_id=str(tc["teamcity_id"]),
                teamcity_binary_path=str(tc["teamcity_binary_path"]),
            ),
            metadata=FlavorMetadata.from_dict(data.get("metadata")),
            autorun=bool(data.get("autorun", False)),
        )


@dataclass(frozen=True)
class Product:
    name: str
    flavors: List[Flavor] = field(default_factory=list)

    @classmethod
    def from_name(cls, name: str, products: List["Product"]) -> Optional["Product"]:
        lowered = name.lower()
        for product in products:
            if product.name.lower() == lowered:
                return product
        return None

    def flavors_for(self, platform: Platform) -> List[Flavor]:
        return [f for f in self.flavors if f.platform == platform]

    def find_flavor(self, flavor_id: str, platform: Optional[Platform] = None) -> Optional[Flavor]:
        """Case-insensitive flavor id lookup, optionally restricted to a platform."""
        lowered = flavor_id.lower()
        for flavor in self.flavors:
            if flavor.id.lower() == lowered and (platform is None or flavor.platform == platform):
                return flavor
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        return cls(
            name=str(data["name"]),
            flavors=[Flavor.from_dict(f) for f in data.get("flavors") or []],
        )
