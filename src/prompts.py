"""Interactive console questions used during install and uninstall."""
from __future__ import annotations

import logging
import sys

from catalog.candidates import InstallOverwriteOptions

logger = logging.getLogger(__name__)


def is_console_confirm(answer: str) -> bool:
    """Whether ``answer`` is any kind of yes."""
    return (answer or "").strip().lower() in ("y", "yes")


class ConsolePrompter:
    """Blocking line-based prompts; streams are injectable for tests."""

    def __init__(self, stdin=None, stdout=None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def _ask(self, message: str) -> str:
        self.stdout.write(message)
        self.stdout.flush()
        line = self.stdin.readline()
        return line.rstrip("\r\n")

    def confirm(self, message: str) -> bool:
        return is_console_confirm(self._ask(f"{message} [y/N]: "))

    def choose_conflict_resolution(self, product_name: str) -> InstallOverwriteOptions:
        """Ask how to handle existing installations of ``product_name``."""
        answer = self._ask(f"{product_name} is already installed. (o)verwrite, (a)dd, (c)ancel: ")
        choice = InstallOverwriteOptions.from_answer(answer)
        logger.debug("Conflict resolution chosen: %s", choice.value)
        return choice
