"""Import driver for CSV/JSON board imports.

Runs one import as a sequence of stages:

    Idle -> Parsing -> Resolving lists -> Resolving labels -> Creating cards -> Done

Any stage error moves the run to ``Error``. Entities created before the
failure stay on the board unless compensation was requested.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from board_import.api_client import BoardClient, RemoteApiError
from board_import.ledger import CreationLedger
from board_import.normalizer import NormalizedRecord, normalize
from board_import.pacing import FixedIntervalPacer, NoPacing, Pacer
from board_import.parsers import InputFormatError, parse_file
from board_import.progress import ImportCounters, ImportListener, Stage
from board_import.resolver import (
    CreationPolicy,
    EntityResolver,
    MissingEntityError,
    NameToIdMap,
    distinct_names,
)

if TYPE_CHECKING:
    from board_import.config import Settings

logger = logging.getLogger(__name__)


class EmptyInputError(Exception):
    """Raised when no valid record survives parsing and normalization."""

    def __init__(self, row_count: int) -> None:
        self.row_count = row_count
        if row_count:
            message = f"No valid rows found: {row_count} rows lack a list or card name."
        else:
            message = "No rows found in file."
        super().__init__(message)


# Errors that abort a run and are reported on the ImportRun
RUN_ERRORS = (InputFormatError, EmptyInputError, MissingEntityError, RemoteApiError)


@dataclass
class ImportRun:
    """Working set and outcome of one import run."""

    board_id: str
    records: list[NormalizedRecord] = field(default_factory=list)
    bucket_map: NameToIdMap = field(default_factory=dict)
    tag_map: NameToIdMap = field(default_factory=dict)
    counters: ImportCounters = field(default_factory=ImportCounters)
    ledger: CreationLedger = field(default_factory=CreationLedger)
    stage: Stage = Stage.IDLE
    failed_stage: Stage | None = None
    error: Exception | None = None
    error_message: str | None = None
    compensated: bool = False
    compensation_errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.DONE

    @property
    def created_anything(self) -> bool:
        """True once any list, label or card was created by this run."""
        return bool(self.counters.created or self.ledger.total_count())


def _as_row_list(raw_rows: Any) -> list[Any]:
    if isinstance(raw_rows, list):
        return raw_rows
    if isinstance(raw_rows, (str, bytes, Mapping)) or not isinstance(raw_rows, Iterable):
        raise InputFormatError(f"Expected a sequence of rows, got {type(raw_rows).__name__}")
    return list(raw_rows)


class _NullListener:
    def on_progress(self, stage: Stage, counters: ImportCounters) -> None:
        return None

    def on_log(self, message: str) -> None:
        return None


class ImportDriver:
    """Drives one import run against a board.

    Example:
        >>> async with BoardClient(credentials) as client:
        ...     driver = ImportDriver(client, CreationPolicy(), listener=reporter)
        ...     run = await driver.run_import(Path("cards.csv"), board_id)
        ...     run.counters.created
        3
    """

    def __init__(
        self,
        client: BoardClient,
        policy: CreationPolicy | None = None,
        listener: ImportListener | None = None,
        bucket_pacer: Pacer | None = None,
        tag_pacer: Pacer | None = None,
        item_pacer: Pacer | None = None,
    ) -> None:
        self.client = client
        self.policy = policy or CreationPolicy()
        self.listener: ImportListener = listener or _NullListener()
        self.bucket_pacer = bucket_pacer or NoPacing()
        self.tag_pacer = tag_pacer or NoPacing()
        self.item_pacer = item_pacer or NoPacing()

    @classmethod
    def from_settings(
        cls,
        client: BoardClient,
        settings: Settings,
        policy: CreationPolicy | None = None,
        listener: ImportListener | None = None,
    ) -> ImportDriver:
        """Build a driver with the pacing configured in ``settings``."""
        return cls(
            client,
            policy=policy or settings.creation_policy(),
            listener=listener,
            bucket_pacer=FixedIntervalPacer(settings.list_delay),
            tag_pacer=FixedIntervalPacer(settings.label_delay),
            item_pacer=FixedIntervalPacer(settings.card_delay, every=settings.card_pace_every),
        )

    # =========================================================================
    # Events
    # =========================================================================

    def _enter(self, run: ImportRun, stage: Stage) -> None:
        run.stage = stage
        logger.debug(f"Import stage: {stage.value}")
        self.listener.on_progress(stage, run.counters)

    def _log(self, message: str) -> None:
        logger.info(message)
        self.listener.on_log(message)

    def _sync_counts(self, run: ImportRun) -> None:
        stats = run.ledger.stats()
        run.counters.buckets_created = stats["bucket"]
        run.counters.tags_created = stats["tag"]

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run_import(self, source: str | Path | None, board_id: str) -> ImportRun:
        """Parse ``source`` and import its rows into the board.

        Stage errors are caught here; the returned run carries the error,
        the stage it happened in and the counts of what was created.
        """
        run = ImportRun(board_id=board_id)
        try:
            self._enter(run, Stage.PARSING)
            raw_rows = parse_file(source)
            await self._execute(run, raw_rows)
        except RUN_ERRORS as e:
            await self._fail(run, e)
        return run

    async def import_rows(self, raw_rows: Iterable[Any], board_id: str) -> ImportRun:
        """Import rows that were already parsed by the caller."""
        run = ImportRun(board_id=board_id)
        try:
            self._enter(run, Stage.PARSING)
            await self._execute(run, raw_rows)
        except RUN_ERRORS as e:
            await self._fail(run, e)
        return run

    # =========================================================================
    # Stages
    # =========================================================================

    async def _execute(self, run: ImportRun, raw_rows: Iterable[Any]) -> None:
        rows = _as_row_list(raw_rows)
        run.records = normalize(rows)
        run.counters.total = len(run.records)
        run.counters.skipped = len(rows) - len(run.records)
        if not run.records:
            raise EmptyInputError(len(rows))
        if run.counters.skipped:
            self._log(f"Skipped {run.counters.skipped} rows without a list or card name")

        resolver = EntityResolver(
            self.client,
            ledger=run.ledger,
            bucket_pacer=self.bucket_pacer,
            tag_pacer=self.tag_pacer,
            on_log=self._log,
        )

        self._enter(run, Stage.RESOLVING_BUCKETS)
        run.bucket_map = await resolver.resolve_buckets(
            run.board_id,
            distinct_names(r.bucket_name for r in run.records),
            self.policy,
        )
        self._sync_counts(run)

        self._enter(run, Stage.RESOLVING_TAGS)
        run.tag_map = await resolver.resolve_tags(
            run.board_id,
            distinct_names(name for r in run.records for name in r.tag_names),
            self.policy,
        )
        self._sync_counts(run)

        self._enter(run, Stage.CREATING_ITEMS)
        await self._create_items(run)

        self._enter(run, Stage.DONE)
        self._log(f"Import complete: {run.counters.created} cards.")

    async def _create_items(self, run: ImportRun) -> None:
        for record in run.records:
            bucket_id = run.bucket_map[record.bucket_name]
            # Unresolved labels are dropped from the card
            tag_ids = [run.tag_map[name] for name in record.tag_names if name in run.tag_map]

            try:
                result = await self.client.create_item(
                    bucket_id, record.item_name, record.description, tag_ids
                )
            except RemoteApiError:
                run.counters.failed += 1
                raise

            item_id = result.get("id") if isinstance(result, dict) else None
            if item_id:
                run.ledger.add("item", record.item_name, item_id)
            else:
                logger.warning(f"API response missing 'id' for card '{record.item_name}'")

            run.counters.created += 1
            self.listener.on_progress(Stage.CREATING_ITEMS, run.counters)
            await self.item_pacer.pause()

    # =========================================================================
    # Failure handling
    # =========================================================================

    async def _fail(self, run: ImportRun, error: Exception) -> None:
        run.failed_stage = run.stage
        run.error = error
        run.error_message = str(error)
        self._sync_counts(run)

        logger.error(f"Import failed during {run.stage.value}: {error}")
        self.listener.on_log(f"Error: {error}")

        if run.created_anything:
            counts = run.counters
            self._log(
                f"Partial import: {counts.buckets_created} lists, "
                f"{counts.tags_created} labels and {counts.created} cards were created"
            )
            if self.policy.compensate_on_failure and run.ledger.total_count():
                await self._compensate(run)

        self._enter(run, Stage.ERROR)

    async def _compensate(self, run: ImportRun) -> None:
        """Undo this run's creations, newest first.

        Cards and labels are deleted; lists are archived because the API
        cannot delete them. Failures are reported, not raised.
        """
        self._log(f"Reverting {run.ledger.total_count()} created entities")
        for entry in run.ledger.reversed_entries():
            try:
                if entry.kind == "item":
                    await self.client.delete_item(entry.remote_id)
                elif entry.kind == "tag":
                    await self.client.delete_tag(entry.remote_id)
                else:
                    await self.client.archive_bucket(entry.remote_id)
            except RemoteApiError as e:
                message = f"Failed to revert {entry.kind} '{entry.name}' ({entry.remote_id}): {e}"
                run.compensation_errors.append(message)
                logger.error(message)
                self.listener.on_log(f"Error: {message}")

        # Cards created without an id cannot be reverted
        untracked = run.counters.created - run.ledger.stats()["item"]
        run.compensated = not run.compensation_errors and untracked == 0
        if run.compensated:
            self._log("Reverted all created entities")
