"""gman - install, upgrade and remove TeamCity built products.

    Returns:
        int: Exit code
"""
import logging
import os
import sys

from constants import Constants, ExitCodes
from common.errors import CandidateError, ConfigError, GManError, RepositoryError
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from args import parse_args
from catalog.candidates import InstallationResult, SearchCandidate, split_build_or_branch
from catalog.models import Platform
from client_config import load_config, resolve_config_path, write_sample
from installer import get_platform_collaborators
from orchestrator import Client
from prompts import ConsolePrompter
from report import export_csv, export_json, format_candidate_table

logger = logging.getLogger(__name__)

_RESULT_EXIT = {
    InstallationResult.SUCCEEDED: ExitCodes.SUCCESS,
    InstallationResult.SKIPPED: ExitCodes.SUCCESS,
    InstallationResult.CANCELED: ExitCodes.CANCELED,
    InstallationResult.ERROR: ExitCodes.INSTALL_ERROR,
}


class ProgressLogger:
    """Logs download progress in ten percent steps."""

    def __init__(self):
        self._last_step = -1

    def __call__(self, done, total):
        step = (done * 10 // total) if total else 10
        if step != self._last_step:
            self._last_step = step
            logger.info("Downloaded %d of %d bytes (%d%%)", done, total, step * 10)


def setup_logging(args, config_level=None):
    """Apply the CLI level (or the config level) to the central logger."""
    level = getattr(args, "LOG_LEVEL", None) or config_level
    if level:
        os.environ[Constants.ENV_LOG_LEVEL] = str(level).upper()
    configure_logging()
    if level:
        logging.getLogger().setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if getattr(args, "LOG_FILE", None):
        add_file_handler(args.LOG_FILE)


def print_output(text):
    sys.stdout.write(text + "\n")


def build_client(config, platform):
    installer, inventory = get_platform_collaborators(platform, config)
    return Client(config, installer, inventory, ConsolePrompter(), platform, progress=ProgressLogger())


def run_list(client, args):
    candidates = client.list_candidates(show_installed=args.SHOW_INSTALLED)
    if args.OUTPUT:
        fmt = args.OUTPUT_FORMAT or ("csv" if args.OUTPUT.lower().endswith(".csv") else "json")
        if fmt == "csv":
            export_csv(candidates, args.OUTPUT)
        else:
            export_json(candidates, args.OUTPUT)
    print_output(format_candidate_table(candidates, show_installed=args.SHOW_INSTALLED, show_flavor=True))
    return ExitCodes.SUCCESS


def run_install(client, args):
    version, identifier = split_build_or_branch(args.BUILD_OR_BRANCH)
    try:
        search = SearchCandidate.new(
            args.NAME, version, identifier, args.FLAVOR, client.config.products, client.platform
        )
    except CandidateError as exc:
        logger.error(
            "Could not construct a search from the input parameters (%s). Check that the product/flavor exist", exc
        )
        return ExitCodes.FILE_ERROR
    logger.info(
        "Installing %s@%s, flavor %s", search.product_name, search.version_or_identifier_string(), search.flavor.id
    )
    outcome = client.install(
        search,
        automatic_upgrade=args.AUTOMATIC_UPGRADE,
        prompt=not args.NO_PROMPT,
        autorun=args.AUTORUN,
    )
    if outcome.reason:
        logger.info("Install %s: %s", outcome.result.value.lower(), outcome.reason)
    return _RESULT_EXIT[outcome.result]


def run_uninstall(client, args):
    outcome = client.uninstall(args.NAME, args.VERSION, prompt=not args.NO_PROMPT)
    if outcome.reason:
        logger.info("Uninstall %s: %s", outcome.result.value.lower(), outcome.reason)
    return _RESULT_EXIT[outcome.result]


def run_installed(client, args):  # pylint: disable=unused-argument
    print_output(format_candidate_table(client.get_installed(), show_path=True, show_installed=True))
    return ExitCodes.SUCCESS


def run_cache(client, args):
    if args.CLEAR:
        client.clear_cache()
        print_output("Cleared cache")
        return ExitCodes.SUCCESS
    items = client.list_cache()
    print_output(f"Cache Directory: {client.config.cache_directory}")
    print_output(f"Content Count: {len(items)}")
    print_output(format_candidate_table(items, show_flavor=True))
    return ExitCodes.SUCCESS


_COMMANDS = {
    "list": run_list,
    "install": run_install,
    "uninstall": run_uninstall,
    "installed": run_installed,
    "cache": run_cache,
}


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main", command=args.action)
        )

    if args.action is None:
        print_output("use -h or --help to show help for this program")
        sys.exit(ExitCodes.SUCCESS.value)

    if args.action == "config":
        if not args.SAMPLE:
            print_output("use config --sample to write a sample configuration")
            sys.exit(ExitCodes.SUCCESS.value)
        try:
            path = write_sample(os.getcwd())
        except ConfigError as exc:
            logger.error("%s", exc)
            sys.exit(ExitCodes.FILE_ERROR.value)
        print_output(f"Sample config written to {path}")
        sys.exit(ExitCodes.SUCCESS.value)

    try:
        config = load_config(resolve_config_path(args.CONFIG))
    except ConfigError as exc:
        logger.error("Failed to load configuration file: %s", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)
    setup_logging(args, config.log_level)
    Constants.REQUEST_TIMEOUT = config.request_timeout

    platform = Platform.current()
    if platform is None:
        logger.error("Current platform (%s) is not supported", sys.platform)
        sys.exit(ExitCodes.INSTALL_ERROR.value)

    client = build_client(config, platform)
    client.clear_temp()

    try:
        code = _COMMANDS[args.action](client, args)
    except GManError as exc:
        logger.error("%s failed: %s", args.action, exc)
        code = ExitCodes.CONNECTION_ERROR if isinstance(exc, RepositoryError) else ExitCodes.INSTALL_ERROR

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action="main", outcome=code.name.lower())
        )
    sys.exit(code.value)


if __name__ == "__main__":
    main()
