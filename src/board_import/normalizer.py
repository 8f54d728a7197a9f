"""Normalization of raw input rows into import records."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from board_import.parsers import InputFormatError

logger = logging.getLogger(__name__)

# Accepted column names, tried in order before a case-insensitive match
BUCKET_KEYS = ("List", "list")
ITEM_KEYS = ("Card", "card")
DESCRIPTION_KEYS = ("Description", "description")
TAG_KEYS = ("Labels", "labels")


@dataclass(frozen=True)
class NormalizedRecord:
    """One card to create.

    Attributes:
        bucket_name: Name of the list the card goes into (trimmed, non-empty).
        item_name: Card name (trimmed, non-empty).
        description: Card description, as given.
        tag_names: Distinct label names in first-seen order.
    """

    bucket_name: str
    item_name: str
    description: str = ""
    tag_names: tuple[str, ...] = ()


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(_to_text(v) for v in value)
    return str(value)


def lookup_field(row: Mapping[Any, Any], keys: tuple[str, ...]) -> str:
    """Return the first non-empty value among ``keys``.

    Exact key names are tried first, then any key matching one of them
    case-insensitively (ignoring surrounding whitespace). Missing values
    become an empty string.
    """
    for key in keys:
        text = _to_text(row.get(key))
        if text:
            return text

    wanted = {key.lower() for key in keys}
    for key, value in row.items():
        if isinstance(key, str) and key.strip().lower() in wanted:
            text = _to_text(value)
            if text:
                return text

    return ""


def split_tags(value: str) -> list[str]:
    """Split a comma-separated label field.

    >>> split_tags("a, b ,,c")
    ['a', 'b', 'c']
    """
    tags: list[str] = []
    for part in value.split(","):
        name = part.strip()
        if name and name not in tags:
            tags.append(name)
    return tags


def normalize_row(row: Mapping[Any, Any]) -> NormalizedRecord | None:
    """Normalize a single row, or return None if it lacks a list or card name."""
    bucket_name = lookup_field(row, BUCKET_KEYS).strip()
    item_name = lookup_field(row, ITEM_KEYS).strip()
    if not bucket_name or not item_name:
        return None

    return NormalizedRecord(
        bucket_name=bucket_name,
        item_name=item_name,
        description=lookup_field(row, DESCRIPTION_KEYS),
        tag_names=tuple(split_tags(lookup_field(row, TAG_KEYS))),
    )


def normalize(raw_rows: Iterable[Any]) -> list[NormalizedRecord]:
    """Normalize raw rows, dropping those without a list or card name.

    Order of the surviving rows is preserved.

    Raises:
        InputFormatError: If ``raw_rows`` is not iterable.
    """
    if isinstance(raw_rows, (str, bytes, Mapping)):
        raise InputFormatError(f"Expected a sequence of rows, got {type(raw_rows).__name__}")
    try:
        rows = iter(raw_rows)
    except TypeError as e:
        raise InputFormatError(f"Expected a sequence of rows, got {type(raw_rows).__name__}") from e

    records: list[NormalizedRecord] = []
    for index, row in enumerate(rows, start=1):
        if not isinstance(row, Mapping):
            logger.debug(f"Row {index} is not an object, skipping")
            continue

        record = normalize_row(row)
        if record is None:
            logger.debug(f"Row {index} has no list or card name, skipping")
            continue
        records.append(record)

    return records
