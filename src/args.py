"""Argument parsing functionality for gman."""

import argparse
from constants import Constants


def _bool_flag(value):
    text = str(value).strip().lower()
    if text in ("true", "yes", "y", "1"):
        return True
    if text in ("false", "no", "n", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def _add_common(parser):
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help=f"Path to the client config (default: ${Constants.ENV_CONFIG} or ./{Constants.DEFAULT_CONFIG_FILE})",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=Constants.LOG_LEVELS)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="gman",
        description="gman - build artifact installer for TeamCity hosted products",
        add_help=True,
    )
    _add_common(parser)
    subparsers = parser.add_subparsers(dest="action", metavar="COMMAND")

    list_parser = subparsers.add_parser("list", help="List installation candidates")
    list_parser.add_argument("--show-installed",
                             dest="SHOW_INSTALLED",
                             help="Include installed products, even when no repository offers them",
                             action="store_true")
    list_parser.add_argument("-o", "--output",
                             dest="OUTPUT",
                             help="Path to output file (JSON or CSV)",
                             action="store",
                             type=str)
    list_parser.add_argument("-f", "--format",
                             dest="OUTPUT_FORMAT",
                             help="Output format (json or csv). If not specified, inferred from --output extension; defaults to json.",
                             action="store",
                             type=str.lower,
                             choices=["json", "csv"])

    install_parser = subparsers.add_parser("install", help="Install a product")
    install_parser.add_argument("NAME", help="Product name")
    install_parser.add_argument("BUILD_OR_BRANCH",
                                nargs="?",
                                help=f"Build number (e.g. 5.2.1-7033) or branch name (default: {Constants.DEFAULT_IDENTIFIER})")
    install_parser.add_argument("--flavor",
                                dest="FLAVOR",
                                help="Flavor id; defaults to the first flavor for this platform",
                                action="store",
                                type=str)
    install_parser.add_argument("--automatic-upgrade",
                                dest="AUTOMATIC_UPGRADE",
                                help="Check repositories for a newer build when a cached one exists (true/false); asks when omitted",
                                type=_bool_flag)
    install_parser.add_argument("--autorun",
                                dest="AUTORUN",
                                help="Launch after installing (true/false); flavor default when omitted",
                                type=_bool_flag)
    install_parser.add_argument("--no-prompt",
                                dest="NO_PROMPT",
                                help="Never ask questions; overwrite existing installations",
                                action="store_true")

    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall a product")
    uninstall_parser.add_argument("NAME", help="Product name")
    uninstall_parser.add_argument("VERSION", nargs="?", help="Only remove this version")
    uninstall_parser.add_argument("--no-prompt",
                                  dest="NO_PROMPT",
                                  help="Remove every match without asking",
                                  action="store_true")

    subparsers.add_parser("installed", help="List products installed on this machine")

    cache_parser = subparsers.add_parser("cache", help="Show or clear the artifact cache")
    cache_parser.add_argument("--clear",
                              dest="CLEAR",
                              help="Delete every cached artifact",
                              action="store_true")

    config_parser = subparsers.add_parser("config", help="Configuration helpers")
    config_parser.add_argument("--sample",
                               dest="SAMPLE",
                               help="Write a sample config file to the current directory",
                               action="store_true")

    return parser.parse_args(argv)
