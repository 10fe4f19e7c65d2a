"""Tests for loading and writing the client configuration."""

import json

import pytest
import yaml

from catalog.models import PackageType, Platform
from client_config import (
    CandidateRepository,
    ClientConfig,
    RepositoryCredentials,
    load_config,
    make_sample,
    normalize_keys,
    resolve_config_path,
    write_sample,
)
from common.errors import ConfigError
from constants import Constants

CONFIG_YAML = """
repositories:
  - name: Primary
    repository_server: https://tc.example.com
    repository_credentials:
      token: ${GMAN_TEST_TOKEN}
  - name: MacOnly
    platforms: [Mac]
    repository_server: https://tc-mac.example.com
    repository_credentials: plain-token
  - name: Nowhere
products:
  - name: HubKit
    flavors:
      - id: WindowsHubkit
        platform: Windows
        package_type: Msi
        teamcity_metadata:
          teamcity_id: Gravio_GravioHubKit4
          teamcity_binary_path: GravioHubKit.msi
publisher_identities:
  - name: ASTERIA
    id: CN=ASTERIA
    platforms: [Windows]
cache_directory: ~/gman-test-cache
log_level: debug
teamcity_download_chunk_size: 2048
"""


class TestLoadConfig:
    """YAML/JSON parsing and validation."""

    def test_loads_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GMAN_TEST_TOKEN", "abc123")
        path = tmp_path / "gman.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")

        config = load_config(str(path))

        assert [r.name for r in config.repositories] == ["Primary", "MacOnly", "Nowhere"]
        assert config.repositories[0].repository_credentials.token == "abc123"
        assert config.repositories[1].repository_credentials.token == "plain-token"
        assert config.repositories[1].platforms == [Platform.MAC]
        assert config.products[0].flavors[0].package_type is PackageType.MSI
        assert config.log_level == "DEBUG"
        assert config.teamcity_download_chunk_size == 2048
        assert not config.cache_directory.startswith("~")

    def test_loads_pascal_case_json(self, tmp_path):
        path = tmp_path / "gman.json"
        path.write_text(json.dumps({
            "Repositories": [{"Name": "Primary", "RepositoryServer": "https://tc.example.com"}],
            "TeamcityDownloadChunkSize": 10,
        }), encoding="utf-8")

        config = load_config(str(path))

        assert config.repositories[0].repository_server == "https://tc.example.com"
        assert config.teamcity_download_chunk_size == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "absent.yaml"))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("repositories: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError, match="Malformed"):
            load_config(str(path))

    @pytest.mark.parametrize(
        "body",
        [
            "teamcity_download_chunk_size: 0",
            "log_level: LOUD",
            "repositories:\n  - platforms: [Windows]",
            "products:\n  - name: X\n    flavors:\n      - id: A\n        platform: Mac\n        package_type: Msi\n"
            "        teamcity_metadata: {teamcity_id: a, teamcity_binary_path: b}",
        ],
    )
    def test_invalid_values(self, tmp_path, body):
        path = tmp_path / "bad.yaml"
        path.write_text(body, encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        config = load_config(str(path))

        assert config.repositories == []
        assert config.teamcity_download_chunk_size == Constants.DEFAULT_CHUNK_SIZE


class TestRepositories:

    def test_valid_repositories_filters_platform_and_location(self, tmp_path):
        path = tmp_path / "gman.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")
        config = load_config(str(path))

        assert [r.name for r in config.valid_repositories(Platform.WINDOWS)] == ["Primary"]
        assert [r.name for r in config.valid_repositories(Platform.MAC)] == ["Primary", "MacOnly"]

    def test_no_valid_repositories_warns(self, caplog):
        config = ClientConfig(repositories=[CandidateRepository(name="Nowhere")])

        assert config.valid_repositories(Platform.WINDOWS) == []
        assert "No repositories configured" in caplog.text

    def test_product_filter_is_case_insensitive(self):
        repo = CandidateRepository(name="R", repository_server="x", products=["HubKit"])
        assert repo.serves_product("hubkit")
        assert not repo.serves_product("GravioStudio")
        assert CandidateRepository(name="All", repository_server="x").serves_product("anything")

    def test_credentials_need_token_or_username(self):
        with pytest.raises(ConfigError):
            RepositoryCredentials.from_value({"password": "pw"})

    def test_credentials_repr_hides_secrets(self):
        assert "secret" not in repr(RepositoryCredentials(token="secret"))

    def test_publisher_ids_by_platform(self):
        config = ClientConfig.from_dict({
            "publisher_identities": [
                {"name": "Win", "id": "CN=Win", "platforms": ["Windows"]},
                {"name": "Any", "id": "CN=Any"},
            ]
        })
        assert config.publisher_ids(Platform.WINDOWS) == ["CN=Win", "CN=Any"]
        assert config.publisher_ids(Platform.MAC) == ["CN=Any"]


def test_normalize_keys_is_recursive():
    assert normalize_keys({"RepositoryServer": [{"TeamcityId": 1}]}) == {"repository_server": [{"teamcity_id": 1}]}


def test_resolve_config_path_precedence(monkeypatch):
    monkeypatch.setenv(Constants.ENV_CONFIG, "/etc/gman.yaml")
    assert resolve_config_path("cli.yaml") == "cli.yaml"
    assert resolve_config_path(None) == "/etc/gman.yaml"
    monkeypatch.delenv(Constants.ENV_CONFIG)
    assert resolve_config_path(None) == Constants.DEFAULT_CONFIG_FILE


class TestSample:

    def test_sample_round_trips_through_loader(self, tmp_path):
        path = write_sample(str(tmp_path))

        config = load_config(str(path))

        assert path.name == Constants.DEFAULT_CONFIG_FILE
        assert [p.name for p in config.products] == ["HubKit", "GravioStudio"]
        assert yaml.safe_load(path.read_text(encoding="utf-8")) == make_sample()

    def test_existing_files_are_not_clobbered(self, tmp_path):
        (tmp_path / Constants.DEFAULT_CONFIG_FILE).write_text("keep", encoding="utf-8")
        (tmp_path / f"{Constants.DEFAULT_CONFIG_FILE}.1").write_text("keep", encoding="utf-8")

        path = write_sample(str(tmp_path))

        assert path.name == f"{Constants.DEFAULT_CONFIG_FILE}.2"
        assert (tmp_path / Constants.DEFAULT_CONFIG_FILE).read_text(encoding="utf-8") == "keep"
