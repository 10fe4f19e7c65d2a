"""Tests for the platform installers and inventories."""

import plistlib
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from catalog.candidates import InstallationCandidate, InstallationResult, InstalledProduct, InstallOverwriteOptions
from catalog.models import Flavor, PackageType, Platform, Product, TeamCityMetadata
from client_config import ClientConfig
from common.errors import InstallError, UninstallError
from installer import get_platform_collaborators
from installer.base import find_free_destination, run_command
from installer.mac import MacInstaller, MacInventory
from installer.unsupported import EmptyInventory, UnsupportedInstaller
from installer.windows import WindowsInstaller, WindowsInventory, _parse_json_records
from versioning.version import Version


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def make_candidate(flavor):
    return InstallationCandidate(
        remote_id="1",
        repo_location="",
        product_name="HubKit",
        version=Version("5.2.3-7023"),
        identifier="develop",
        flavor=flavor,
    )


class TestFindFreeDestination:
    """Collision-free names for side-by-side installs."""

    def test_unused_name_is_returned(self, tmp_path):
        assert find_free_destination(tmp_path, "Gravio.app") == tmp_path / "Gravio.app"

    def test_first_free_suffix(self, tmp_path):
        for name in ("X", "X_1", "X_2"):
            (tmp_path / name).mkdir()

        assert find_free_destination(tmp_path, "X") == tmp_path / "X_3"

    def test_gives_up_after_limit(self, tmp_path):
        for name in ("X", "X_1", "X_2"):
            (tmp_path / name).mkdir()

        with pytest.raises(InstallError):
            find_free_destination(tmp_path, "X", max_tries=2)


class TestRunCommand:

    @patch('installer.base.subprocess.run')
    def test_missing_executable_is_install_error(self, mock_run):
        mock_run.side_effect = FileNotFoundError("msiexec")

        with pytest.raises(InstallError, match="could not run msiexec"):
            run_command(["msiexec", "/i", "x.msi"], context="install_msi")

    @patch('installer.base.subprocess.run')
    def test_returns_completed_process(self, mock_run):
        mock_run.return_value = completed(0, "ok")

        assert run_command(["echo", "ok"], context="test").stdout == "ok"
        assert mock_run.call_args.kwargs["capture_output"] is True


class TestWindowsInstaller:
    """msiexec / PowerShell driving."""

    @patch('installer.windows.run_command')
    def test_msi_success(self, mock_run, tmp_path, windows_flavor):
        mock_run.return_value = completed(0)

        result = WindowsInstaller(tmp_path).install(
            make_candidate(windows_flavor), tmp_path / "a.msi", InstallOverwriteOptions.OVERWRITE
        )

        assert result is InstallationResult.SUCCEEDED
        assert mock_run.call_args.args[0] == ["msiexec", "/i", str(tmp_path / "a.msi"), "/passive"]

    @patch('installer.windows.run_command')
    def test_msi_user_cancel(self, mock_run, tmp_path, windows_flavor):
        mock_run.return_value = completed(1602)

        result = WindowsInstaller(tmp_path).install(
            make_candidate(windows_flavor), tmp_path / "a.msi", InstallOverwriteOptions.OVERWRITE
        )

        assert result is InstallationResult.CANCELED

    @patch('installer.windows.run_command')
    def test_msi_failure(self, mock_run, tmp_path, windows_flavor):
        mock_run.return_value = completed(1603)

        with pytest.raises(InstallError):
            WindowsInstaller(tmp_path).install(
                make_candidate(windows_flavor), tmp_path / "a.msi", InstallOverwriteOptions.OVERWRITE
            )

    @patch('installer.windows.run_command')
    def test_uninstall_msi(self, mock_run, tmp_path):
        mock_run.return_value = completed(0)
        item = InstalledProduct("HubKit", Version("5.0"), "{ABC}", PackageType.MSI)

        WindowsInstaller(tmp_path).uninstall(item)

        assert mock_run.call_args.args[0] == ["msiexec", "/x", "{ABC}", "/passive"]

    @patch('installer.windows.run_powershell')
    def test_uninstall_failure(self, mock_ps, tmp_path):
        mock_ps.return_value = completed(1)
        item = InstalledProduct("Studio", Version("1.0"), "Studio_1.0_x64", PackageType.APPX)

        with pytest.raises(UninstallError):
            WindowsInstaller(tmp_path).uninstall(item)

    def test_appx_launch_needs_name_regex(self, tmp_path):
        flavor = Flavor(
            id="Sideloading",
            platform=Platform.WINDOWS,
            package_type=PackageType.APPX,
            teamcity_metadata=TeamCityMetadata("Studio", "Studio.zip"),
        )

        with pytest.raises(InstallError, match="name_regex"):
            WindowsInstaller(tmp_path).launch(make_candidate(flavor))


class TestWindowsInventory:

    def test_parse_json_records_shapes(self):
        assert _parse_json_records("") == []
        assert _parse_json_records('{"Name": "a"}') == [{"Name": "a"}]
        assert _parse_json_records('[{"Name": "a"}, {"Name": "b"}]') == [{"Name": "a"}, {"Name": "b"}]
        assert _parse_json_records('{"Name": "a"}\n{"Name": "b"}\n') == [{"Name": "a"}, {"Name": "b"}]

    def test_no_publishers_means_nothing_installed(self, products):
        assert WindowsInventory([]).list_installed(products) == []

    @patch('installer.windows.run_powershell')
    def test_matches_registry_entries_by_display_name(self, mock_ps, products):
        mock_ps.side_effect = [
            completed(0, ""),
            completed(0, '{"Name": "Gravio HubKit 5", "Version": "5.2.3.7023", "PackageFullName": "{GUID}"}\n'
                         '{"Name": "Other Tool", "Version": "1.0", "PackageFullName": "{OTHER}"}\n'),
        ]

        found = WindowsInventory(["CN=ASTERIA"]).list_installed(products)

        assert len(found) == 1
        assert found[0].product_name == "HubKit"
        assert found[0].version == Version("5.2.3-7023")
        assert found[0].package_name == "{GUID}"
        assert found[0].package_type is PackageType.MSI

    @patch('installer.windows.run_powershell')
    def test_powershell_failure(self, mock_ps, products):
        mock_ps.return_value = completed(1)

        with pytest.raises(InstallError):
            WindowsInventory(["CN=ASTERIA"]).list_installed(products)


class TestMacInstaller:
    """DMG mount, copy and cleanup."""

    def test_prefers_app_over_pkg(self, tmp_path):
        (tmp_path / "Extras.pkg").mkdir()
        (tmp_path / "Gravio.app").mkdir()

        assert MacInstaller.find_mounted_package(tmp_path) == (PackageType.APP, tmp_path / "Gravio.app")

    def test_pkg_when_no_app(self, tmp_path):
        (tmp_path / "Gravio.pkg").write_bytes(b"")

        assert MacInstaller.find_mounted_package(tmp_path) == (PackageType.PKG, tmp_path / "Gravio.pkg")

    def test_nothing_installable(self, tmp_path):
        (tmp_path / "README").write_text("hi")

        assert MacInstaller.find_mounted_package(tmp_path) is None

    def test_cancel_does_nothing(self, tmp_path, mac_flavor):
        with patch('installer.mac.run_command') as mock_run:
            result = MacInstaller(tmp_path).install(
                make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.CANCEL
            )

        assert result is InstallationResult.CANCELED
        mock_run.assert_not_called()

    @patch('installer.mac.run_command')
    def test_pkg_install_mounts_installs_and_unmounts(self, mock_run, tmp_path, mac_flavor):
        mock_run.side_effect = [
            completed(0, "/dev/disk4\tGUID_partition_scheme\t\n/dev/disk4s1\tApple_HFS\t/Volumes/Gravio HubKit\n"),
            completed(0),
            completed(0),
        ]
        package = Path("/Volumes/Gravio HubKit/Gravio.pkg")

        with patch.object(MacInstaller, "find_mounted_package", return_value=(PackageType.PKG, package)):
            result = MacInstaller(tmp_path).install(
                make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.OVERWRITE
            )

        assert result is InstallationResult.SUCCEEDED
        commands = [c.args[0] for c in mock_run.call_args_list]
        assert commands[0] == ["hdiutil", "attach", str(tmp_path / "a.dmg")]
        assert commands[1] == ["installer", "-pkg", str(package), "-target", "/"]
        assert commands[2] == ["hdiutil", "detach", "/Volumes/Gravio HubKit"]

    @patch('installer.mac.run_command')
    def test_add_copies_to_free_name(self, mock_run, tmp_path, mac_flavor):
        apps = tmp_path / "Applications"
        (apps / "Gravio.app").mkdir(parents=True)
        mock_run.side_effect = [completed(0, "/dev/disk4s1\tApple_HFS\t/Volumes/G\n"), completed(0), completed(0)]
        source = Path("/Volumes/G/Gravio.app")

        with patch.object(MacInstaller, "find_mounted_package", return_value=(PackageType.APP, source)):
            MacInstaller(apps).install(make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.ADD)

        assert mock_run.call_args_list[1].args[0] == ["cp", "-R", "-a", "-f", str(source), str(apps / "Gravio.app_1")]

    @patch('installer.mac.run_command')
    def test_mount_failure(self, mock_run, tmp_path, mac_flavor):
        mock_run.return_value = completed(1)

        with pytest.raises(InstallError):
            MacInstaller(tmp_path).install(
                make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.OVERWRITE
            )

    @patch('installer.mac.run_command')
    def test_unmounts_when_copy_fails(self, mock_run, tmp_path, mac_flavor):
        mock_run.side_effect = [completed(0, "/dev/disk4s1\tApple_HFS\t/Volumes/G\n"), completed(1), completed(0)]

        with patch.object(MacInstaller, "find_mounted_package",
                          return_value=(PackageType.APP, Path("/Volumes/G/Gravio.app"))):
            with pytest.raises(InstallError):
                MacInstaller(tmp_path).install(
                    make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.OVERWRITE
                )

        assert mock_run.call_args_list[-1].args[0] == ["hdiutil", "detach", "/Volumes/G"]

    @patch('installer.mac.run_command')
    def test_detach_failure_keeps_install_result(self, mock_run, tmp_path, mac_flavor, caplog):
        mock_run.side_effect = [completed(0, "/dev/disk4s1\tApple_HFS\t/Volumes/G\n"), completed(0), completed(16)]

        with patch.object(MacInstaller, "find_mounted_package",
                          return_value=(PackageType.APP, Path("/Volumes/G/Gravio.app"))):
            with caplog.at_level("WARNING", logger="installer.mac"):
                result = MacInstaller(tmp_path).install(
                    make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.OVERWRITE
                )

        assert result is InstallationResult.SUCCEEDED
        assert "Failed to unmount volume at /Volumes/G" in caplog.text

    @patch('installer.mac.run_command')
    def test_copy_error_wins_over_detach_error(self, mock_run, tmp_path, mac_flavor):
        mock_run.side_effect = [completed(0, "/dev/disk4s1\tApple_HFS\t/Volumes/G\n"), completed(1), completed(16)]

        with patch.object(MacInstaller, "find_mounted_package",
                          return_value=(PackageType.APP, Path("/Volumes/G/Gravio.app"))):
            with pytest.raises(InstallError, match="Failed to copy"):
                MacInstaller(tmp_path).install(
                    make_candidate(mac_flavor), tmp_path / "a.dmg", InstallOverwriteOptions.OVERWRITE
                )

    @patch('installer.mac.run_command')
    def test_launch_uses_bundle_name(self, mock_run, tmp_path, mac_flavor):
        mock_run.return_value = completed(0)

        MacInstaller(tmp_path).launch(make_candidate(mac_flavor))

        assert mock_run.call_args.args[0] == ["open", "-a", "Gravio HubKit"]

    def test_only_apps_support_add(self, tmp_path):
        assert MacInstaller(tmp_path).supports_add_alongside(PackageType.APP)
        assert not MacInstaller(tmp_path).supports_add_alongside(PackageType.PKG)


class TestMacInventory:

    @staticmethod
    def make_app(apps, name, bundle_id, short="5.2.3", build="7023"):
        contents = apps / name / "Contents"
        contents.mkdir(parents=True)
        with open(contents / "Info.plist", "wb") as fh:
            plistlib.dump(
                {"CFBundleIdentifier": bundle_id, "CFBundleShortVersionString": short, "CFBundleVersion": build},
                fh,
            )

    def test_lists_catalog_bundles(self, tmp_path, products):
        self.make_app(tmp_path, "Gravio HubKit.app", "com.asteria.mac.gravio4")
        self.make_app(tmp_path, "Other.app", "com.example.other")
        (tmp_path / "Broken.app").mkdir()

        found = MacInventory(tmp_path).list_installed(products)

        assert len(found) == 1
        assert found[0].product_name == "HubKit"
        assert found[0].version == Version("5.2.3.7023")
        assert found[0].path == tmp_path / "Gravio HubKit.app"

    def test_unreadable_applications_dir(self, tmp_path, products):
        with pytest.raises(InstallError):
            MacInventory(tmp_path / "missing").list_installed(products)


class TestCollaborators:

    def test_windows(self, tmp_path):
        config = ClientConfig(temp_download_directory=str(tmp_path / "app" / "downloads"))

        installer, inventory = get_platform_collaborators(Platform.WINDOWS, config)

        assert isinstance(installer, WindowsInstaller)
        assert isinstance(inventory, WindowsInventory)
        assert installer.work_directory == tmp_path / "app" / "extract"

    def test_mac(self):
        installer, inventory = get_platform_collaborators(Platform.MAC, ClientConfig())

        assert isinstance(installer, MacInstaller)
        assert isinstance(inventory, MacInventory)

    def test_unsupported_platform(self, windows_flavor):
        installer, inventory = get_platform_collaborators(Platform.LINUX, ClientConfig())

        assert isinstance(installer, UnsupportedInstaller)
        assert isinstance(inventory, EmptyInventory)
        assert inventory.list_installed([Product("HubKit")]) == []
        with pytest.raises(InstallError):
            installer.install(make_candidate(windows_flavor), Path("x"), InstallOverwriteOptions.OVERWRITE)
