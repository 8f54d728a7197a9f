"""Unit tests for progress reporting."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from board_import.importer import ImportRun
from board_import.progress import (
    ConsoleReporter,
    ImportCounters,
    LiveReporter,
    RecordingListener,
    Stage,
    create_reporter,
    format_duration,
    print_summary,
    progress_text,
)


def make_console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=120, force_terminal=False, color_system=None), buffer


class TestProgressText:
    """Tests for progress_text."""

    @pytest.mark.parametrize(
        ("stage", "expected"),
        [
            (Stage.PARSING, "Parsing file…"),
            (Stage.RESOLVING_BUCKETS, "Ensuring lists…"),
            (Stage.RESOLVING_TAGS, "Ensuring labels…"),
            (Stage.ERROR, "Error. Check log."),
            (Stage.IDLE, "Idle"),
        ],
    )
    def test_fixed_texts(self, stage: Stage, expected: str) -> None:
        assert progress_text(stage, ImportCounters()) == expected

    def test_creating_shows_counts(self) -> None:
        counters = ImportCounters(total=10, created=4)

        assert progress_text(Stage.CREATING_ITEMS, counters) == "Creating cards… (4/10)"

    def test_done_shows_created(self) -> None:
        assert progress_text(Stage.DONE, ImportCounters(created=7)) == "Done. Created 7 cards."


class TestFormatDuration:
    def test_seconds(self) -> None:
        assert format_duration(5.0) == "5.0s"

    def test_minutes(self) -> None:
        assert format_duration(125) == "2m 5s"

    def test_hours(self) -> None:
        assert format_duration(3720) == "1h 2m"


class TestRecordingListener:
    def test_records_snapshots(self) -> None:
        listener = RecordingListener()
        counters = ImportCounters(total=2)

        listener.on_progress(Stage.CREATING_ITEMS, counters)
        counters.created = 1
        listener.on_progress(Stage.CREATING_ITEMS, counters)

        assert [snapshot["created"] for _, snapshot in listener.progress] == [0, 1]
        assert listener.stages == [Stage.CREATING_ITEMS]


class TestConsoleReporter:
    """Tests for the line reporter."""

    def test_prints_stage_changes_once(self) -> None:
        console, buffer = make_console()
        reporter = ConsoleReporter(console=console)
        counters = ImportCounters(total=2)

        reporter.on_progress(Stage.CREATING_ITEMS, counters)
        counters.created = 1
        reporter.on_progress(Stage.CREATING_ITEMS, counters)

        assert buffer.getvalue().count("Creating cards") == 1

    def test_verbose_prints_every_update(self) -> None:
        console, buffer = make_console()
        reporter = ConsoleReporter(console=console, verbose=True)
        counters = ImportCounters(total=2)

        reporter.on_progress(Stage.CREATING_ITEMS, counters)
        reporter.on_progress(Stage.CREATING_ITEMS, counters)

        assert buffer.getvalue().count("Creating cards") == 2

    def test_messages_are_not_markup(self) -> None:
        console, buffer = make_console()
        reporter = ConsoleReporter(console=console)

        reporter.on_log("Created list: [red]Todo[/red]")

        assert "[red]Todo[/red]" in buffer.getvalue()

    def test_writes_log_file(self, tmp_path: Path) -> None:
        console, _ = make_console()
        log_file = tmp_path / "logs" / "run.log"
        reporter = ConsoleReporter(console=console, log_file=log_file)

        reporter.on_log("Error: HTTP 429: rate limit exceeded")

        assert "ERROR - Error: HTTP 429" in log_file.read_text(encoding="utf-8")


class TestCreateReporter:
    def test_simple_returns_console_reporter(self) -> None:
        assert isinstance(create_reporter(simple=True), ConsoleReporter)

    def test_default_returns_live_reporter(self) -> None:
        assert isinstance(create_reporter(), LiveReporter)

    def test_verbose_only_applies_to_line_reporter(self) -> None:
        assert isinstance(create_reporter(verbose=True), LiveReporter)
        reporter = create_reporter(verbose=True, simple=True)
        assert isinstance(reporter, ConsoleReporter)
        assert reporter.verbose is True


class TestPrintSummary:
    """Tests for print_summary."""

    def test_success(self) -> None:
        console, buffer = make_console()
        run = ImportRun(board_id="b1", stage=Stage.DONE)
        run.counters.created = 3

        print_summary(run, console)

        assert "Import complete: 3 cards." in buffer.getvalue()

    def test_failure_with_partial_import(self) -> None:
        console, buffer = make_console()
        run = ImportRun(board_id="b1", stage=Stage.ERROR, error_message="HTTP 429: [limit]")
        run.ledger.add("bucket", "Todo", "list-1")

        print_summary(run, console)

        output = buffer.getvalue()
        assert "Import failed: HTTP 429: [limit]" in output
        assert "partially imported" in output

    def test_failure_after_untracked_cards_warns(self) -> None:
        console, buffer = make_console()
        run = ImportRun(board_id="b1", stage=Stage.ERROR, error_message="HTTP 500: boom")
        run.counters.created = 2

        print_summary(run, console)

        assert "partially imported" in buffer.getvalue()
