"""Chunked, range-based artifact download from a TeamCity server into the cache."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Iterator, Optional

from constants import Constants
from common.errors import DownloadError, RepositoryError
from common.http_client import build_auth, merge_headers
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from catalog.candidates import InstallationCandidate

import registry.teamcity as teamcity_pkg
from .client import ensure_scheme

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def artifact_url(candidate: InstallationCandidate, repo) -> str:
    tc = candidate.flavor.teamcity_metadata
    base = ensure_scheme(repo.repository_server).rstrip("/")
    return f"{base}/repository/download/{tc.teamcity_id}/{candidate.remote_id}:id/{tc.teamcity_binary_path}"


def partial_ranges(start: int, end: int, chunk_size: int) -> Iterator[str]:
    """Yield ``Range`` header values covering ``start..end`` inclusive.

    Raises:
        ValueError: ``chunk_size`` is not positive.
    """
    if chunk_size <= 0:
        raise ValueError("invalid chunk size, give a value greater than zero.")
    while start <= end:
        step = min(chunk_size, end - start + 1)
        yield f"bytes={start}-{start + step - 1}"
        start += step


def _content_length(candidate: InstallationCandidate, repo, url: str, auth: dict) -> int:
    res = teamcity_pkg.safe_head(url, context="teamcity", **auth)
    if res.status_code != 200:
        logger.warning(
            "Failed to get TeamCity download file size from %s (%s)", repo.name, res.status_code
        )
        if res.status_code in (401, 403):
            raise DownloadError(f"Not authorized to access repository {repo.name}")
        if res.status_code == 404:
            raise DownloadError(f"File not found on repo {repo.name}")
        raise DownloadError(f"Unexpected status {res.status_code} from {repo.name}")
    raw = res.headers.get("Content-Length")
    if raw is None:
        raise DownloadError("response doesn't include the content length")
    try:
        length = int(raw)
    except ValueError as exc:
        raise DownloadError(f"invalid Content-Length header: {raw!r}") from exc
    if length < 0:
        raise DownloadError(f"invalid Content-Length header: {raw!r}")
    return length


def download_artifact(
    candidate: InstallationCandidate,
    repo,
    temp_dir,
    cache_dir,
    chunk_size: int = Constants.DEFAULT_CHUNK_SIZE,
    progress: Optional[ProgressCallback] = None,
) -> Path:
    """Download ``candidate`` through the temp directory into the cache.

    Ranges are fetched one after another and appended to the temp file. On
    failure the partial temp file is left where it is.

    Returns:
        Path of the artifact inside ``cache_dir``.

    Raises:
        DownloadError: missing length, rejected request, bad range status or I/O error.
    """
    if not repo.repository_server:
        raise DownloadError(f"Repository {repo.name} did not have a server specified")
    if chunk_size <= 0:
        raise DownloadError("invalid chunk size, give a value greater than zero.")

    url = artifact_url(candidate, repo)
    auth = build_auth(repo.repository_credentials)
    logger.debug("Downloading from url %s", safe_url(url))

    try:
        with Timer() as t:
            length = _content_length(candidate, repo, url, auth)

            temp_path = candidate.output_path(temp_dir)
            temp_path.parent.mkdir(parents=True, exist_ok=True)
            requested = 0
            with open(temp_path, "wb") as out:
                for byte_range in partial_ranges(0, length - 1, chunk_size):
                    res = teamcity_pkg.safe_get(
                        url,
                        context="teamcity",
                        stream=True,
                        **merge_headers(auth, {"Range": byte_range}),
                    )
                    if res.status_code not in (200, 206):
                        raise DownloadError(
                            f"Unexpected status {res.status_code} while downloading {byte_range}"
                        )
                    for block in res.iter_content(chunk_size=Constants.DOWNLOAD_STREAM_BLOCK):
                        if block:
                            out.write(block)
                    requested = min(requested + chunk_size, length)
                    if progress is not None:
                        progress(requested, length)

            cache_path = candidate.output_path(cache_dir)
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(temp_path), str(cache_path))
    except RepositoryError as exc:
        raise DownloadError(str(exc)) from exc
    except OSError as exc:
        raise DownloadError(f"Could not write artifact: {exc}") from exc

    logger.info("Downloaded %s (%d bytes)", candidate.make_cached_file_name(), length)
    if is_debug_enabled(logger):
        logger.debug(
            "Artifact downloaded",
            extra=extra_context(
                event="download",
                component="teamcity",
                action="download_artifact",
                outcome="success",
                duration_ms=t.duration_ms(),
                target=str(cache_path),
                size=length,
            ),
        )
    return cache_path
