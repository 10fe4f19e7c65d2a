"""TeamCity build discovery: enumerate branches and resolve a search to one build."""
from __future__ import annotations

import json
import logging
from typing import List, Optional, Tuple
from urllib.parse import quote

from common.errors import RepositoryError
from common.http_client import HEADERS_JSON, build_auth, merge_headers
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from catalog.candidates import InstallationCandidate, SearchCandidate
from catalog.models import Platform, Product
from versioning.version import Version

import registry.teamcity as teamcity_pkg
from .models import TeamCityBuilds, parse_branches

logger = logging.getLogger(__name__)

BRANCHES_QUERY = (
    "locator=default:true,policy:ACTIVE_HISTORY_AND_ACTIVE_VCS_BRANCHES"
    "&fields=branch(name,builds(build(id,number,finishDate,artifacts($locator(count:1),count:1)),"
    "count,$locator(state:finished,status:SUCCESS,count:1)))"
)
BUILDS_QUERY_PREFIX = "locator=default:false,policy:ALL_BRANCHES&locator="


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` unless the URL already names http or https."""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"https://{url}"


def _server_base(repo) -> str:
    return ensure_scheme(repo.repository_server).rstrip("/")


def branches_url(repo, teamcity_id: str) -> str:
    return f"{_server_base(repo)}/app/rest/buildTypes/id:{teamcity_id}/branches?{BRANCHES_QUERY}"


def builds_url(repo, search: SearchCandidate) -> str:
    locator = f"buildType:{search.flavor.teamcity_metadata.teamcity_id},count:1"
    if search.version is not None:
        locator += f",number:{quote(str(search.version), safe='.-')}"
    elif search.identifier:
        locator += f",branch:{quote(search.identifier, safe='')}"
    return f"{_server_base(repo)}/app/rest/builds?{BUILDS_QUERY_PREFIX}{locator}"


def request_kwargs(repo) -> dict:
    """JSON accept header plus the repository's own credentials."""
    return merge_headers(build_auth(repo.repository_credentials), HEADERS_JSON)


def _log_rejected(repo, status_code: int) -> None:
    if status_code in (401, 403):
        logger.warning("Not authorized to access repository %s", repo.name)
    elif status_code == 404:
        logger.warning("Repository endpoint not found for repo %s", repo.name)
    logger.warning(
        "Failed to get TeamCity repository information for repo %s, status code: %s",
        repo.name,
        status_code,
    )


def get_builds(
    platform: Platform,
    products: List[Product],
    repositories: list,
) -> List[InstallationCandidate]:
    """List the latest successful build of every active branch.

    Every repository is asked for every flavor of every product that targets
    ``platform``. Failures are logged per repository and skipped.
    """
    candidates: List[InstallationCandidate] = []
    for repo in repositories:
        if not repo.repository_server:
            if repo.repository_folder:
                logger.info("Repository %s is a local folder; folder listings are not supported", repo.name)
            continue
        for product in products:
            if not repo.serves_product(product.name):
                continue
            for flavor in product.flavors_for(platform):
                url = branches_url(repo, flavor.teamcity_metadata.teamcity_id)
                try:
                    res = teamcity_pkg.safe_get(url, context="teamcity", **request_kwargs(repo))
                except RepositoryError as exc:
                    logger.warning("Skipping repository %s: %s", repo.name, exc)
                    continue
                if res.status_code != 200:
                    _log_rejected(repo, res.status_code)
                    continue
                try:
                    branches = parse_branches(json.loads(res.text))
                except ValueError as exc:  # includes JSONDecodeError
                    logger.error(
                        "Failed to parse TeamCity repository information for repo %s: %s",
                        safe_url(repo.repository_server),
                        exc,
                    )
                    continue
                for branch in branches:
                    for build in branch.builds:
                        candidates.append(
                            InstallationCandidate(
                                remote_id=str(build.id),
                                repo_location=repo.repository_server,
                                product_name=product.name,
                                version=Version(build.build_number),
                                identifier=branch.name,
                                flavor=flavor,
                            )
                        )
                if is_debug_enabled(logger):
                    logger.debug(
                        "Branches listed",
                        extra=extra_context(
                            event="decision",
                            component="teamcity",
                            action="get_builds",
                            target=flavor.teamcity_metadata.teamcity_id,
                            repository=repo.name,
                            count=len(branches),
                        ),
                    )
    return candidates


def get_with_build_id_by_candidate(
    search: SearchCandidate,
    repositories: list,
) -> Optional[Tuple[InstallationCandidate, object]]:
    """Resolve ``search`` to a concrete build on the first repository that has one.

    Returns:
        (candidate, repository) or None when every repository answered but none had a match.

    Raises:
        RepositoryError: no repositories were supplied, or nothing was found and
            at least one repository could not be reached at all.
    """
    if not repositories:
        raise RepositoryError("No repositories supplied for searching")

    transport_failure: Optional[RepositoryError] = None
    for repo in repositories:
        if not repo.repository_server:
            if repo.repository_folder:
                logger.info("Repository %s is a local folder; folder lookups are not supported", repo.name)
            continue
        if not repo.serves_product(search.product_name):
            continue

        url = builds_url(repo, search)
        logger.debug("Sending get_build_id request to repo: %s", safe_url(url))
        try:
            res = teamcity_pkg.safe_get(url, context="teamcity", **request_kwargs(repo))
        except RepositoryError as exc:
            logger.warning("Repository %s unreachable: %s", repo.name, exc)
            transport_failure = exc
            continue
        if res.status_code != 200:
            _log_rejected(repo, res.status_code)
            continue
        try:
            builds = TeamCityBuilds.from_json(json.loads(res.text))
        except ValueError as exc:
            logger.error(
                "Failed to parse TeamCity repository information for repo %s (%s)",
                safe_url(repo.repository_server),
                exc,
            )
            continue
        if not builds.builds:
            continue

        build = builds.builds[0]
        candidate = InstallationCandidate(
            remote_id=str(build.id),
            repo_location=repo.repository_server,
            product_name=search.product_name,
            version=Version(build.build_number),
            identifier=build.branch_name or build.build_number,
            flavor=search.flavor,
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Build resolved",
                extra=extra_context(
                    event="decision",
                    component="teamcity",
                    action="resolve",
                    outcome="found",
                    repository=repo.name,
                    target=candidate.make_cached_file_name(),
                ),
            )
        return candidate, repo

    if transport_failure is not None:
        raise RepositoryError(
            f"No build found for {search.product_name} {search.version_or_identifier_string()}; "
            f"last transport error: {transport_failure}"
        ) from transport_failure
    return None
