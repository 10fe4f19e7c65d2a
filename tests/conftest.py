"""Shared catalog and repository fixtures."""

import pytest

from catalog.models import Flavor, FlavorMetadata, PackageType, Platform, Product, TeamCityMetadata
from client_config import CandidateRepository, ClientConfig, RepositoryCredentials


HUBKIT_CACHE_NAME = "HubKit@Windows@WindowsHubkit@develop@5.2.3-7023@GravioHubKit.msi"


@pytest.fixture
def windows_flavor():
    return Flavor(
        id="WindowsHubkit",
        platform=Platform.WINDOWS,
        package_type=PackageType.MSI,
        teamcity_metadata=TeamCityMetadata(
            teamcity_id="Gravio_GravioHubKit4",
            teamcity_binary_path="GravioHubKit.msi",
        ),
        metadata=FlavorMetadata(display_name_regex="Gravio HubKit.*"),
    )


@pytest.fixture
def mac_flavor():
    return Flavor(
        id="MacHubkit",
        platform=Platform.MAC,
        package_type=PackageType.APP,
        teamcity_metadata=TeamCityMetadata(
            teamcity_id="Gravio_GravioHubKit4Mac",
            teamcity_binary_path="dist/GravioHubKit.dmg",
        ),
        metadata=FlavorMetadata(cf_bundle_id="com.asteria.mac.gravio4", cf_bundle_name="Gravio HubKit"),
    )


@pytest.fixture
def products(windows_flavor, mac_flavor):
    return [Product(name="HubKit", flavors=[windows_flavor, mac_flavor])]


@pytest.fixture
def repo_a():
    return CandidateRepository(
        name="Primary",
        repository_server="https://tc-a.example.com",
        repository_credentials=RepositoryCredentials(token="secret-token"),
    )


@pytest.fixture
def repo_b():
    return CandidateRepository(
        name="Mirror",
        repository_server="tc-b.example.com/teamcity",
        repository_credentials=RepositoryCredentials(username="builder", password="pw"),
    )


@pytest.fixture
def client_config(tmp_path, products, repo_a):
    return ClientConfig(
        repositories=[repo_a],
        products=products,
        temp_download_directory=str(tmp_path / "temp"),
        cache_directory=str(tmp_path / "cache"),
        teamcity_download_chunk_size=4,
    )
