"""Client configuration: repositories, product catalog and local directories.

Configuration is a YAML (or JSON) document. Keys are snake_case; PascalCase
keys such as ``RepositoryServer`` are accepted and normalized.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants
from common.errors import ConfigError
from common.logging_utils import extra_context, is_debug_enabled
from catalog.models import Platform, Product

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


@dataclass
class RepositoryCredentials:
    """Bearer token, or username/password for HTTP basic auth."""
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> Optional["RepositoryCredentials"]:
        """Accept a mapping, or a bare string which is taken as a bearer token."""
        if not value:
            return None
        if isinstance(value, str):
            return cls(token=_expand(value))
        if not isinstance(value, dict):
            raise ConfigError(f"Invalid repository credentials: {type(value).__name__}")
        creds = cls(
            token=_expand(value.get("token")),
            username=_expand(value.get("username")),
            password=_expand(value.get("password")),
        )
        if not creds.token and not creds.username:
            raise ConfigError("Repository credentials need a token or a username")
        return creds

    def __repr__(self) -> str:
        kind = "token" if self.token else "basic"
        return f"RepositoryCredentials({kind})"


@dataclass
class CandidateRepository:
    """A place builds can come from: a TeamCity server or a local folder."""
    name: str
    platforms: List[Platform] = field(default_factory=list)
    repository_folder: Optional[str] = None
    repository_server: Optional[str] = None
    repository_credentials: Optional[RepositoryCredentials] = None
    products: List[str] = field(default_factory=list)

    def is_valid_for(self, platform: Platform) -> bool:
        """A location is set and the platform list is empty or names ``platform``."""
        has_location = bool(self.repository_folder or self.repository_server)
        return has_location and (not self.platforms or platform in self.platforms)

    def serves_product(self, product_name: str) -> bool:
        if not self.products:
            return True
        lowered = product_name.lower()
        return any(p.lower() == lowered for p in self.products)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateRepository":
        if not isinstance(data, dict) or not data.get("name"):
            raise ConfigError("Every repository needs a name")
        try:
            platforms = [Platform.from_name(p) for p in data.get("platforms") or []]
        except ValueError as exc:
            raise ConfigError(f"Repository {data['name']}: {exc}") from exc
        return cls(
            name=str(data["name"]),
            platforms=platforms,
            repository_folder=_expand(data.get("repository_folder")),
            repository_server=_expand(data.get("repository_server")),
            repository_credentials=RepositoryCredentials.from_value(data.get("repository_credentials")),
            products=[str(p) for p in data.get("products") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "platforms": [p.value for p in self.platforms],
            "repository_folder": self.repository_folder,
            "repository_server": self.repository_server,
            "products": list(self.products),
        }
        if self.repository_credentials is not None:
            creds = self.repository_credentials
            out["repository_credentials"] = (
                {"token": creds.token} if creds.token
                else {"username": creds.username, "password": creds.password}
            )
        return out


@dataclass
class PublisherIdentity:
    """Code-signing publisher whose packages the Windows inventory considers."""
    name: str
    id: str
    platforms: List[Platform] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublisherIdentity":
        try:
            return cls(
                name=str(data["name"]),
                id=str(data["id"]),
                platforms=[Platform.from_name(p) for p in data.get("platforms") or []],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid publisher identity: {exc}") from exc


@dataclass
class ClientConfig:
    repositories: List[CandidateRepository] = field(default_factory=list)
    products: List[Product] = field(default_factory=list)
    publisher_identities: List[PublisherIdentity] = field(default_factory=list)
    temp_download_directory: str = field(default_factory=lambda: default_temp_directory())
    cache_directory: str = field(default_factory=lambda: os.path.expanduser(Constants.DEFAULT_CACHE_DIR))
    log_level: Optional[str] = None
    teamcity_download_chunk_size: int = Constants.DEFAULT_CHUNK_SIZE
    request_timeout: Optional[float] = Constants.REQUEST_TIMEOUT

    def valid_repositories(self, platform: Platform) -> List[CandidateRepository]:
        repos = [r for r in self.repositories if r.is_valid_for(platform)]
        if not repos:
            logger.warning("No repositories configured for %s", platform.value)
        return repos

    def publisher_ids(self, platform: Platform) -> List[str]:
        return [
            p.id for p in self.publisher_identities
            if not p.platforms or platform in p.platforms
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        data = normalize_keys(data or {})
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")
        config = cls()
        config.repositories = [CandidateRepository.from_dict(r) for r in data.get("repositories") or []]
        try:
            config.products = [Product.from_dict(p) for p in data.get("products") or []]
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid product definition: {exc}") from exc
        config.publisher_identities = [
            PublisherIdentity.from_dict(p) for p in data.get("publisher_identities") or []
        ]
        if data.get("temp_download_directory"):
            config.temp_download_directory = _expand(data["temp_download_directory"])
        if data.get("cache_directory"):
            config.cache_directory = _expand(data["cache_directory"])
        if data.get("log_level"):
            level = str(data["log_level"]).upper()
            if level not in Constants.LOG_LEVELS:
                raise ConfigError(f"Invalid log_level: {data['log_level']}")
            config.log_level = level
        if data.get("teamcity_download_chunk_size") is not None:
            try:
                chunk = int(data["teamcity_download_chunk_size"])
            except (TypeError, ValueError) as exc:
                raise ConfigError("teamcity_download_chunk_size must be an integer") from exc
            if chunk <= 0:
                raise ConfigError("teamcity_download_chunk_size must be positive")
            config.teamcity_download_chunk_size = chunk
        if data.get("request_timeout") is not None:
            config.request_timeout = float(data["request_timeout"])
        return config


def default_temp_directory() -> str:
    return os.path.join(tempfile.gettempdir(), Constants.APP_FOLDER_NAME, "downloads")


def _expand(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return os.path.expandvars(os.path.expanduser(str(value)))


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def normalize_keys(data: Any) -> Any:
    """Recursively convert mapping keys to snake_case; values are untouched."""
    if isinstance(data, dict):
        return {
            (_snake(k) if isinstance(k, str) else k): normalize_keys(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [normalize_keys(v) for v in data]
    return data


def resolve_config_path(cli_path: Optional[str]) -> str:
    """CLI flag first, then ``GMAN_CONFIG``, then the default file name."""
    return cli_path or os.environ.get(Constants.ENV_CONFIG) or Constants.DEFAULT_CONFIG_FILE


def load_config(path: str) -> ClientConfig:
    """Load and validate a configuration file.

    Raises:
        ConfigError: file missing, unreadable, malformed or semantically invalid.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Could not read config {path}: {exc}") from exc
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Malformed config {path}: {exc}") from exc

    config = ClientConfig.from_dict(data or {})
    if is_debug_enabled(logger):
        logger.debug(
            "Config loaded",
            extra=extra_context(
                event="config_loaded",
                component="client_config",
                action="load",
                target=path,
                repositories=len(config.repositories),
                products=len(config.products),
            ),
        )
    return config


def make_sample() -> Dict[str, Any]:
    """Example configuration covering every supported key."""
    return {
        "repositories": [
            {
                "name": "Primary",
                "platforms": [],
                "repository_server": "https://teamcity.example.com",
                "repository_credentials": {"token": "${GMAN_TEAMCITY_TOKEN}"},
                "products": [],
            },
            {
                "name": "Fallback",
                "platforms": ["Windows", "Mac"],
                "repository_server": "https://teamcity-mirror.example.com",
                "repository_credentials": {"username": "builder", "password": "${GMAN_MIRROR_PASSWORD}"},
            },
        ],
        "products": [
            {
                "name": "HubKit",
                "flavors": [
                    {
                        "id": "WindowsHubkit",
                        "platform": "Windows",
                        "package_type": "Msi",
                        "autorun": False,
                        "teamcity_metadata": {
                            "teamcity_id": "Gravio_GravioHubKit4",
                            "teamcity_binary_path": "GravioHubKit.msi",
                        },
                        "metadata": {"display_name_regex": "Gravio HubKit.*"},
                    },
                    {
                        "id": "MacHubkit",
                        "platform": "Mac",
                        "package_type": "Pkg",
                        "teamcity_metadata": {
                            "teamcity_id": "Gravio_GravioHubKit4Mac",
                            "teamcity_binary_path": "GravioHubKit.dmg",
                        },
                        "metadata": {
                            "cf_bundle_id": "com.asteria.mac.gravio4",
                            "stop_command": "com.asteria.gravio.hubkit",
                        },
                    },
                ],
            },
            {
                "name": "GravioStudio",
                "flavors": [
                    {
                        "id": "Sideloading",
                        "platform": "Windows",
                        "package_type": "AppX",
                        "autorun": True,
                        "teamcity_metadata": {
                            "teamcity_id": "Gravio_GravioStudio4forWindows",
                            "teamcity_binary_path": "GravioStudio.zip",
                        },
                        "metadata": {"name_regex": ".*GravioStudio$"},
                    },
                    {
                        "id": "DeveloperId",
                        "platform": "Mac",
                        "package_type": "App",
                        "autorun": True,
                        "teamcity_metadata": {
                            "teamcity_id": "Gravio_GravioStudio4ForMac",
                            "teamcity_binary_path": "GravioStudio.dmg",
                        },
                        "metadata": {
                            "cf_bundle_id": "com.asteria.mac.graviostudio4",
                            "cf_bundle_name": "Gravio Studio",
                        },
                    },
                ],
            },
        ],
        "publisher_identities": [
            {"name": "ASTERIA Corporation", "id": "CN=ASTERIA Corporation", "platforms": ["Windows"]},
        ],
        "temp_download_directory": None,
        "cache_directory": Constants.DEFAULT_CACHE_DIR,
        "log_level": "INFO",
        "teamcity_download_chunk_size": Constants.DEFAULT_CHUNK_SIZE,
    }


def write_sample(directory: str, name: str = Constants.DEFAULT_CONFIG_FILE) -> Path:
    """Write the sample config without clobbering existing files.

    Tries ``name``, ``name.1``, ``name.2`` and so on.

    Raises:
        ConfigError: no free name within the attempt limit, or write failure.
    """
    base = Path(directory)
    target = base / name
    attempt = 0
    while target.exists():
        attempt += 1
        if attempt > Constants.MAX_TRY_LIMIT:
            raise ConfigError(f"No free file name for sample config in {directory}")
        target = base / f"{name}.{attempt}"
    try:
        base.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as fh:
            yaml.safe_dump(make_sample(), fh, sort_keys=False, allow_unicode=True)
    except OSError as exc:
        raise ConfigError(f"Could not write sample config {target}: {exc}") from exc
    logger.info("Sample config written to %s", target)
    return target
