"""Catalog package.

- models.py: platforms, package types, products and flavors
- candidates.py: search/installation candidates and installed products
"""

from .models import (  # noqa: F401
    Flavor,
    FlavorMetadata,
    PackageType,
    Platform,
    Product,
    TeamCityMetadata,
)
from .candidates import (  # noqa: F401
    InstallationCandidate,
    InstallationResult,
    InstalledProduct,
    InstallOutcome,
    InstallOverwriteOptions,
    SearchCandidate,
)

__all__ = [
    "Flavor",
    "FlavorMetadata",
    "PackageType",
    "Platform",
    "Product",
    "TeamCityMetadata",
    "InstallationCandidate",
    "InstallationResult",
    "InstalledProduct",
    "InstallOutcome",
    "InstallOverwriteOptions",
    "SearchCandidate",
]
