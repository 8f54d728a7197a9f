"""Input file parsing for board imports.

Reads a JSON or delimited-text file into raw rows (string-keyed dicts).
Rows are handed to the normalizer untouched; no field mapping happens here.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

JSON_SUFFIXES = frozenset([".json"])


class InputFormatError(Exception):
    """Raised when the input file is missing or cannot be parsed."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        prefix = f"{path}: " if path is not None else ""
        super().__init__(f"{prefix}{message}")


def is_json_file(path: Path) -> bool:
    return path.suffix.lower() in JSON_SUFFIXES


def rows_from_json(data: Any) -> list[dict[str, Any]]:
    """Extract rows from decoded JSON.

    Two shapes are supported:
        a) an array of rows: ``[{"List": ..., "Card": ...}, ...]``
        b) an object holding them: ``{"rows": [...]}``

    Any other shape yields an empty list.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("rows"), list):
        return data["rows"]

    logger.warning("Unrecognized JSON shape, no rows extracted")
    return []


def _read_text(path: Path) -> str:
    try:
        # UTF-8 with BOM is common in spreadsheet exports
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        return path.read_text(encoding="latin-1")


def parse_json(path: Path) -> list[dict[str, Any]]:
    """Parse a JSON input file into raw rows."""
    try:
        data = json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        raise InputFormatError(f"Invalid JSON: {e}", path) from e
    return rows_from_json(data)


def parse_delimited(path: Path) -> list[dict[str, Any]]:
    """Parse a delimited-text file whose first line is the header row.

    Empty lines are skipped. Header names are kept as-is.
    """
    text = _read_text(path)
    try:
        # DictReader skips blank lines itself
        reader = csv.DictReader(io.StringIO(text, newline=""))
        return [dict(row) for row in reader]
    except csv.Error as e:
        raise InputFormatError(f"Failed to parse delimited text: {e}", path) from e


def parse_file(path: str | Path | None) -> list[dict[str, Any]]:
    """Parse an input file, choosing the format from its suffix.

    Raises:
        InputFormatError: If no file is given, it does not exist, or it
            cannot be parsed.
    """
    if path is None:
        raise InputFormatError("No file selected")

    path = Path(path)
    if not path.is_file():
        raise InputFormatError("File not found", path)

    try:
        if is_json_file(path):
            rows = parse_json(path)
        else:
            rows = parse_delimited(path)
    except OSError as e:
        raise InputFormatError(f"Failed to read file: {e}", path) from e

    logger.info(f"Parsed {len(rows)} rows from {path.name}")
    return rows
