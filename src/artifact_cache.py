"""Local artifact cache: a flat directory of encoded artifact file names."""
from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import List, Optional

from common.errors import CandidateError
from common.logging_utils import extra_context, is_debug_enabled
from catalog.candidates import InstallationCandidate, SearchCandidate
from catalog.models import Product
from util import remove_dir_contents
from versioning.version import Comparison

logger = logging.getLogger(__name__)


def _cache_order(left: InstallationCandidate, right: InstallationCandidate) -> int:
    """Flavor id ascending, version descending, identifier ascending.

    Incomparable versions count as equal here so they keep their relative order.
    """
    if left.flavor.id != right.flavor.id:
        return -1 if left.flavor.id < right.flavor.id else 1
    cmp = left.version.compare(right.version)
    if cmp is Comparison.GREATER:
        return -1
    if cmp is Comparison.LESS:
        return 1
    if left.identifier != right.identifier:
        return -1 if left.identifier < right.identifier else 1
    return 0


class ArtifactCache:
    """Index over the cache directory.

    Entries whose product or flavor is no longer in the catalog are ignored.
    """

    def __init__(self, cache_directory, products: List[Product]):
        self.cache_directory = Path(cache_directory)
        self.products = products

    def _attach_flavor(self, entry: InstallationCandidate) -> Optional[InstallationCandidate]:
        product = Product.from_name(entry.product_name, self.products)
        if product is None:
            return None
        flavor = product.find_flavor(entry.flavor.id, entry.flavor.platform)
        if flavor is None:
            return None
        entry.flavor = flavor
        entry.product_name = product.name
        return entry

    def list_cache(self) -> List[InstallationCandidate]:
        """Decode, re-attach and sort every cache entry."""
        try:
            names = sorted(os.listdir(self.cache_directory))
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.error("Could not read cache directory %s: %s", self.cache_directory, exc)
            return []

        entries: List[InstallationCandidate] = []
        for name in names:
            if not (self.cache_directory / name).is_file():
                continue
            try:
                decoded = InstallationCandidate.from_cached_file_name(name)
            except CandidateError as exc:
                logger.debug("Ignoring cache entry: %s", exc)
                continue
            attached = self._attach_flavor(decoded)
            if attached is None:
                logger.debug("Ignoring cache entry %s: not in catalog", name)
                continue
            entries.append(attached)

        entries.sort(key=functools.cmp_to_key(_cache_order))
        return entries

    def locate_in_cache(self, search: SearchCandidate) -> Optional[InstallationCandidate]:
        """First cached entry satisfying ``search``.

        A requested version is a hard filter, then a requested identifier;
        with neither, the newest entry for the flavor wins.
        """
        product_lower = search.product_name.lower()
        flavor_lower = search.flavor.id.lower()
        found = None
        for entry in self.list_cache():
            if entry.flavor.platform != search.flavor.platform:
                continue
            if entry.product_name.lower() != product_lower or entry.flavor.id.lower() != flavor_lower:
                continue
            if search.version is not None:
                if entry.version.matches(search.version.raw):
                    found = entry
                    break
                continue
            if search.identifier:
                if entry.identifier.lower() == search.identifier.lower():
                    found = entry
                    break
                continue
            found = entry
            break

        if is_debug_enabled(logger):
            logger.debug(
                "Cache lookup",
                extra=extra_context(
                    event="decision",
                    component="artifact_cache",
                    action="locate",
                    outcome="hit" if found else "miss",
                    target=f"{search.product_name} {search.version_or_identifier_string()}",
                ),
            )
        return found

    def path_for(self, candidate: InstallationCandidate) -> Path:
        return candidate.output_path(self.cache_directory)

    def clear_cache(self) -> None:
        """Delete every entry but keep the directory."""
        remove_dir_contents(self.cache_directory)
        logger.info("Cache cleared: %s", self.cache_directory)
