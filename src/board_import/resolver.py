"""
Entity Resolver

Resolves list and label names to remote ids for an import run,
creating the missing ones when the creation policy allows it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from board_import.api_client import BoardClient, RemoteApiError
from board_import.ledger import CreationLedger
from board_import.pacing import NoPacing, Pacer

logger = logging.getLogger(__name__)

NameToIdMap = dict[str, str]

# Display names used in log messages and errors
KIND_LABELS = {"bucket": "list", "tag": "label"}


class MissingEntityError(Exception):
    """Raised when a required list is absent and may not be created."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        label = KIND_LABELS.get(kind, kind)
        super().__init__(
            f'Missing {label} "{name}" and creating missing {label}s is disabled.'
        )


@dataclass(frozen=True)
class CreationPolicy:
    """Flags controlling what an import run may create.

    Attributes:
        create_buckets: Create lists that do not exist yet.
        create_tags: Create labels that do not exist yet.
        skip_tags: Ignore labels entirely (no fetch, no creation).
        compensate_on_failure: Undo this run's creations if it fails.
    """

    create_buckets: bool = True
    create_tags: bool = True
    skip_tags: bool = False
    compensate_on_failure: bool = False


def distinct_names(names: Iterable[str]) -> list[str]:
    """Distinct non-empty names in first-requested order."""
    return [name for name in dict.fromkeys(names) if name]


def build_name_map(entities: Iterable[dict[str, Any]], kind: str) -> NameToIdMap:
    """Build a name -> id map from remote entities.

    The first entity with a given name wins; later duplicates are
    logged and ignored. Entities without a name are skipped.
    """
    mapping: NameToIdMap = {}
    for entity in entities:
        name = entity.get("name")
        entity_id = entity.get("id")
        if not name or not entity_id:
            continue
        if name in mapping:
            logger.warning(
                f"Duplicate {KIND_LABELS.get(kind, kind)} name '{name}' on board: "
                f"using {mapping[name]}, ignoring {entity_id}"
            )
            continue
        mapping[name] = entity_id
    return mapping


def find_missing(existing: NameToIdMap, required_names: Iterable[str]) -> list[str]:
    """Required names that are not in ``existing``, in requested order."""
    return [name for name in distinct_names(required_names) if name not in existing]


class EntityResolver:
    """Resolves list and label names to ids on one board.

    Example:
        >>> resolver = EntityResolver(client, ledger=CreationLedger())
        >>> lists = await resolver.resolve_buckets(board_id, ["Todo"], CreationPolicy())
        >>> lists["Todo"]
        '5f0c...'
    """

    def __init__(
        self,
        client: BoardClient,
        ledger: CreationLedger | None = None,
        bucket_pacer: Pacer | None = None,
        tag_pacer: Pacer | None = None,
        on_log: Callable[[str], None] | None = None,
    ) -> None:
        self.client = client
        self.ledger = ledger if ledger is not None else CreationLedger()
        self.bucket_pacer = bucket_pacer or NoPacing()
        self.tag_pacer = tag_pacer or NoPacing()
        self._on_log = on_log

    def _log(self, message: str) -> None:
        logger.info(message)
        if self._on_log:
            self._on_log(message)

    async def resolve_buckets(
        self,
        board_id: str,
        required_names: Iterable[str],
        policy: CreationPolicy,
    ) -> NameToIdMap:
        """Resolve list names to ids, creating missing lists if allowed.

        Raises:
            MissingEntityError: If a list is missing and ``create_buckets``
                is off. Nothing is created in that case.
            RemoteApiError: If fetching or creating fails.
        """
        existing = await self.client.list_buckets(board_id)
        mapping = build_name_map(existing, "bucket")
        return await self._create_missing(
            kind="bucket",
            board_id=board_id,
            mapping=mapping,
            required_names=required_names,
            allowed=policy.create_buckets,
            create=self.client.create_bucket,
            pacer=self.bucket_pacer,
        )

    async def resolve_tags(
        self,
        board_id: str,
        required_names: Iterable[str],
        policy: CreationPolicy,
    ) -> NameToIdMap:
        """Resolve label names to ids, creating missing labels if allowed.

        With ``skip_tags`` set this returns an empty map without any
        API call. With ``create_tags`` off, missing labels are logged and
        left out of the map; cards are then created without them.

        Raises:
            RemoteApiError: If fetching or creating fails.
        """
        if policy.skip_tags:
            logger.info("Label handling disabled, skipping label resolution")
            return {}

        existing = await self.client.list_tags(board_id)
        mapping = build_name_map(existing, "tag")
        if not policy.create_tags:
            for name in find_missing(mapping, required_names):
                self._log(f"Label not found, omitted from cards: {name}")
            return mapping

        return await self._create_missing(
            kind="tag",
            board_id=board_id,
            mapping=mapping,
            required_names=required_names,
            allowed=True,
            create=self.client.create_tag,
            pacer=self.tag_pacer,
        )

    async def _create_missing(
        self,
        kind: str,
        board_id: str,
        mapping: NameToIdMap,
        required_names: Iterable[str],
        allowed: bool,
        create: Callable[[str, str], Any],
        pacer: Pacer,
    ) -> NameToIdMap:
        missing = find_missing(mapping, required_names)
        if missing and not allowed:
            raise MissingEntityError(kind, missing[0])

        label = KIND_LABELS[kind]
        for name in missing:
            result = await create(board_id, name)
            entity_id = result.get("id") if isinstance(result, dict) else None
            if not entity_id:
                raise RemoteApiError(500, f"API response missing 'id' for {label} '{name}'", result)

            mapping[name] = entity_id
            self.ledger.add(kind, name, entity_id)
            self._log(f"Created {label}: {name}")
            await pacer.pause()

        return mapping
