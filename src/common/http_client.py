"""Shared HTTP helpers used by the build repository clients.

Encapsulates request error handling so client modules avoid duplicating
try/except blocks. Transport failures surface as RepositoryError; status
codes are left for callers to classify.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from constants import Constants
from common.errors import RepositoryError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

HEADERS_JSON = {"Accept": "application/json"}


def build_auth(credentials) -> Dict[str, Any]:
    """Translate repository credentials into ``requests`` keyword arguments.

    Args:
        credentials: RepositoryCredentials or None.

    Returns:
        dict with an optional ``headers`` entry (bearer) or ``auth`` tuple (basic).
    """
    if credentials is None:
        return {}
    if credentials.token:
        return {"headers": {"Authorization": f"Bearer {credentials.token}"}}
    if credentials.username:
        return {"auth": (credentials.username, credentials.password or "")}
    return {}


def merge_headers(auth_kwargs: Dict[str, Any], extra: Optional[Dict[str, str]]) -> Dict[str, Any]:
    """Combine auth kwargs with additional headers without mutating either input."""
    merged = dict(auth_kwargs)
    headers = dict(auth_kwargs.get("headers") or {})
    headers.update(extra or {})
    if headers:
        merged["headers"] = headers
    return merged


def _request(method: str, url: str, *, context: str, **kwargs: Any) -> requests.Response:
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action=method,
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            res = requests.request(method, url, timeout=Constants.REQUEST_TIMEOUT, **kwargs)
        except requests.Timeout as exc:
            logger.error("%s request timed out: %s", context, safe_target)
            raise RepositoryError(f"{context} request timed out: {safe_target}") from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise RepositoryError(f"{context} connection error: {exc}") from exc
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=method,
                    outcome="success" if res.ok else "error",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res


def safe_get(url: str, *, context: str, **kwargs: Any) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces."""
    return _request("GET", url, context=context, **kwargs)


def safe_head(url: str, *, context: str, **kwargs: Any) -> requests.Response:
    """Perform a HEAD request with consistent error handling and DEBUG traces."""
    kwargs.setdefault("allow_redirects", True)
    return _request("HEAD", url, context=context, **kwargs)
