"""Tests for command line parsing."""

import pytest

from args import parse_args


def test_global_options_before_command():
    ns = parse_args(["--config", "c.yaml", "--loglevel", "debug", "--logfile", "gman.log", "installed"])
    assert ns.CONFIG == "c.yaml"
    assert ns.LOG_LEVEL == "DEBUG"
    assert ns.LOG_FILE == "gman.log"
    assert ns.action == "installed"


def test_no_command():
    assert parse_args([]).action is None


def test_install_defaults():
    ns = parse_args(["install", "HubKit"])
    assert ns.NAME == "HubKit"
    assert ns.BUILD_OR_BRANCH is None
    assert ns.FLAVOR is None
    assert ns.AUTOMATIC_UPGRADE is None
    assert ns.AUTORUN is None
    assert ns.NO_PROMPT is False


def test_install_options():
    ns = parse_args([
        "install", "HubKit", "5.2.1-7033", "--flavor", "WindowsHubkit",
        "--automatic-upgrade", "yes", "--autorun", "false", "--no-prompt",
    ])
    assert ns.BUILD_OR_BRANCH == "5.2.1-7033"
    assert ns.FLAVOR == "WindowsHubkit"
    assert ns.AUTOMATIC_UPGRADE is True
    assert ns.AUTORUN is False
    assert ns.NO_PROMPT is True


def test_bad_boolean_rejected():
    with pytest.raises(SystemExit):
        parse_args(["install", "HubKit", "--autorun", "maybe"])


def test_list_output_options():
    ns = parse_args(["list", "--show-installed", "-o", "out.CSV", "-f", "CSV"])
    assert ns.SHOW_INSTALLED is True
    assert ns.OUTPUT == "out.CSV"
    assert ns.OUTPUT_FORMAT == "csv"


def test_uninstall_and_cache_and_config():
    ns = parse_args(["uninstall", "HubKit", "5.0.0", "--no-prompt"])
    assert (ns.NAME, ns.VERSION, ns.NO_PROMPT) == ("HubKit", "5.0.0", True)
    assert parse_args(["cache", "--clear"]).CLEAR is True
    assert parse_args(["config", "--sample"]).SAMPLE is True


def test_invalid_log_level():
    with pytest.raises(SystemExit):
        parse_args(["--loglevel", "chatty", "installed"])
