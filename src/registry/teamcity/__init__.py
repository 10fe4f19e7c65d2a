"""TeamCity build repository package.

- models.py: typed views over REST responses
- client.py: branch enumeration and single build resolution
- download.py: chunked range download into the artifact cache

Public API is re-exported here.
"""

# Patch points exposed for tests (e.g., monkeypatch in tests)
from common.http_client import safe_get, safe_head  # noqa: F401

# Public API re-exports
from .client import (  # noqa: F401
    ensure_scheme,
    get_builds,
    get_with_build_id_by_candidate,
)
from .download import download_artifact, partial_ranges  # noqa: F401

__all__ = [
    "ensure_scheme",
    "get_builds",
    "get_with_build_id_by_candidate",
    "download_artifact",
    "partial_ranges",
    # Patch points for tests
    "safe_get",
    "safe_head",
]
