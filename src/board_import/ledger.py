"""Record of entities created during an import run.

Every list, label and card created by a run is added to the ledger in
creation order. The ledger backs the created-entity counts reported on
failure, the optional compensation pass, and the ``--ledger-file`` output.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

# Supported entity kinds
EntityKind = Literal["bucket", "tag", "item"]

VALID_ENTITY_KINDS: frozenset[str] = frozenset(["bucket", "tag", "item"])

LEDGER_VERSION = 1


class LedgerError(Exception):
    """Base exception for ledger errors."""

    pass


class InvalidEntityKindError(LedgerError):
    """Raised when an invalid entity kind is provided."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(
            f"Invalid entity kind: '{kind}'. Valid kinds: {sorted(VALID_ENTITY_KINDS)}"
        )


@dataclass(frozen=True)
class CreatedEntity:
    """One entity created on the remote board."""

    kind: str
    name: str
    remote_id: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "name": self.name, "id": self.remote_id}


class CreationLedger:
    """Ordered log of created entities.

    Item names are not unique, so entries are kept as a list rather
    than a name-keyed map.

    Example:
        >>> ledger = CreationLedger()
        >>> ledger.add("bucket", "Todo", "list-1")
        >>> ledger.stats()
        {'bucket': 1, 'item': 0, 'tag': 0}
    """

    def __init__(self) -> None:
        self._entries: list[CreatedEntity] = []

    def _validate_kind(self, kind: str) -> None:
        if kind not in VALID_ENTITY_KINDS:
            raise InvalidEntityKindError(kind)

    def add(self, kind: str, name: str, remote_id: str) -> None:
        """Record a created entity.

        Raises:
            InvalidEntityKindError: If kind is not valid.
            ValueError: If remote_id is empty.
        """
        self._validate_kind(kind)
        if not remote_id:
            raise ValueError("remote_id cannot be empty")
        self._entries.append(CreatedEntity(kind=kind, name=name, remote_id=str(remote_id)))

    def entries(self, kind: str | None = None) -> list[CreatedEntity]:
        """Entries in creation order, optionally filtered by kind."""
        if kind is None:
            return list(self._entries)
        self._validate_kind(kind)
        return [entry for entry in self._entries if entry.kind == kind]

    def reversed_entries(self) -> list[CreatedEntity]:
        """Entries newest first, the order in which they can be undone."""
        return list(reversed(self._entries))

    def stats(self) -> dict[str, int]:
        """Count of created entities per kind."""
        counts = {kind: 0 for kind in sorted(VALID_ENTITY_KINDS)}
        for entry in self._entries:
            counts[entry.kind] += 1
        return counts

    def total_count(self) -> int:
        return len(self._entries)

    def save(self, path: str | Path) -> None:
        """Write the ledger as JSON.

        Raises:
            OSError: If the file cannot be written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": LEDGER_VERSION,
            "created": [entry.to_dict() for entry in self._entries],
        }
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"CreationLedger(total_entries={self.total_count()})"
