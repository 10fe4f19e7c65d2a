"""Rendering and export of candidate listings."""
from __future__ import annotations

import csv
import functools
import io
import json
import logging
import sys
from typing import Dict, Iterable

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from constants import ExitCodes
from catalog.candidates import InstallationCandidate, InstalledProduct
from versioning.version import Comparison, Version

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "No candidates available"
CSV_HEADERS = ["Name", "Version", "Identifier", "Flavor", "Installed", "Path"]
TABLE_WIDTH = 1000


def to_row(item) -> Dict[str, object]:
    """Flatten a candidate or installed product into table/export fields."""
    if isinstance(item, InstalledProduct):
        return {
            "name": item.product_name,
            "version": str(item.version),
            "identifier": item.package_name,
            "flavor": "",
            "installed": True,
            "path": str(item.path) if item.path else "",
        }
    if isinstance(item, InstallationCandidate):
        return item.to_dict()
    raise TypeError(f"Cannot render {type(item).__name__}")


def _row_order(left: Dict[str, object], right: Dict[str, object]) -> int:
    """Name ascending, then version descending."""
    if left["name"] != right["name"]:
        return -1 if left["name"] < right["name"] else 1
    cmp = Version(left["version"]).compare(Version(right["version"]))
    if cmp is Comparison.INCOMPARABLE:
        if left["version"] == right["version"]:
            return 0
        return -1 if left["version"] > right["version"] else 1
    return -cmp.value


def format_candidate_table(
    items: Iterable,
    show_installed: bool = False,
    show_flavor: bool = False,
    show_path: bool = False,
) -> str:
    """Render a boxed table of candidates or installed products."""
    rows = sorted((to_row(i) for i in items), key=functools.cmp_to_key(_row_order))

    table = Table(box=box.SQUARE, show_header=True)
    header = ["Name", "Version", "Identifier"]
    if show_flavor:
        header.append("Flavor")
    if show_installed:
        header.append("Installed")
    if show_path:
        header.append("Path")
    for title in header:
        table.add_column(title, header_style="bold", justify="left", no_wrap=True)

    for row in rows:
        record = [str(row["name"]), str(row["version"]), str(row["identifier"])]
        if show_flavor:
            record.append(str(row["flavor"]))
        if show_installed:
            record.append("true" if row["installed"] else "")
        if show_path:
            record.append(str(row["path"]) if row["installed"] else "")
        # Text cells so brackets in names and paths are not read as markup.
        table.add_row(*(Text(cell) for cell in record))

    if not rows:
        table.caption = EMPTY_MESSAGE

    console = Console(file=io.StringIO(), width=TABLE_WIDTH, color_system=None, highlight=False)
    console.print(table)
    return "\n".join(line.rstrip() for line in console.file.getvalue().splitlines())


def export_json(items, path):
    """Exports a listing to a JSON file.

    Args:
        items (list): Candidates or installed products.
        path (str): File path to export the JSON.
    """
    data = [to_row(i) for i in items]
    try:
        with open(path, 'w', encoding='utf-8') as file:
            json.dump(data, file, ensure_ascii=False, indent=4)
        logging.info("JSON file has been successfully exported at: %s", path)
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)


def export_csv(items, path):
    """Exports a listing to a CSV file.

    Args:
        items (list): Candidates or installed products.
        path (str): File path to export the CSV.
    """
    rows = [CSV_HEADERS]
    for item in items:
        row = to_row(item)
        rows.append([
            row["name"],
            row["version"],
            row["identifier"],
            row["flavor"],
            row["installed"],
            row["path"],
        ])
    try:
        with open(path, 'w', newline='', encoding='utf-8') as file:
            export = csv.writer(file)
            export.writerows(rows)
        logging.info("CSV file has been successfully exported at: %s", path)
    except (OSError, csv.Error) as e:
        logging.error("CSV file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
