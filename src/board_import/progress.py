"""Progress reporting for board imports.

The import driver emits two event streams, ``on_progress(stage, counters)``
and ``on_log(message)``. This module defines that listener protocol and
rich console reporters that render it, with optional file logging.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from types import TracebackType

    from board_import.importer import ImportRun


class Stage(Enum):
    """Import run stages in execution order."""

    IDLE = "Idle"
    PARSING = "Parsing"
    RESOLVING_BUCKETS = "Resolving lists"
    RESOLVING_TAGS = "Resolving labels"
    CREATING_ITEMS = "Creating cards"
    DONE = "Done"
    ERROR = "Error"


@dataclass
class ImportCounters:
    """Counts for one import run.

    Attributes:
        total: Records to create after normalization.
        created: Cards created.
        skipped: Input rows dropped by normalization.
        failed: Cards whose creation failed (0 or 1, the run stops at the first).
        buckets_created: Lists created by this run.
        tags_created: Labels created by this run.
    """

    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    buckets_created: int = 0
    tags_created: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "created": self.created,
            "skipped": self.skipped,
            "failed": self.failed,
            "buckets_created": self.buckets_created,
            "tags_created": self.tags_created,
        }


class ImportListener(Protocol):
    """Receives progress and log events from the import driver."""

    def on_progress(self, stage: Stage, counters: ImportCounters) -> None: ...

    def on_log(self, message: str) -> None: ...


def progress_text(stage: Stage, counters: ImportCounters) -> str:
    """Human-readable status line for a stage."""
    if stage is Stage.PARSING:
        return "Parsing file…"
    if stage is Stage.RESOLVING_BUCKETS:
        return "Ensuring lists…"
    if stage is Stage.RESOLVING_TAGS:
        return "Ensuring labels…"
    if stage is Stage.CREATING_ITEMS:
        return f"Creating cards… ({counters.created}/{counters.total})"
    if stage is Stage.DONE:
        return f"Done. Created {counters.created} cards."
    if stage is Stage.ERROR:
        return "Error. Check log."
    return "Idle"


def format_duration(seconds: float) -> str:
    """Format duration as human-readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


@dataclass
class RecordingListener:
    """Listener that keeps every event; handy for embedding and tests."""

    progress: list[tuple[Stage, dict[str, int]]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    def on_progress(self, stage: Stage, counters: ImportCounters) -> None:
        self.progress.append((stage, counters.as_dict()))

    def on_log(self, message: str) -> None:
        self.messages.append(message)

    @property
    def stages(self) -> list[Stage]:
        """Distinct stages seen, in order."""
        return list(dict.fromkeys(stage for stage, _ in self.progress))


class _FileLoggingMixin:
    """Optional log file shared by the console reporters."""

    _logger: logging.Logger | None = None

    def _setup_file_logging(self, log_path: Path) -> None:
        """Configure file logging."""
        log_path.parent.mkdir(parents=True, exist_ok=True)

        self._logger = logging.getLogger("board_import.run")
        self._logger.setLevel(logging.DEBUG)

        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)

    def _log(self, message: str, level: str = "INFO") -> None:
        """Write to log file if configured."""
        if self._logger:
            log_method = getattr(self._logger, level.lower(), self._logger.info)
            log_method(message)


class ConsoleReporter(_FileLoggingMixin):
    """Line-by-line reporter without live updates.

    Useful for non-interactive environments and pipes.
    """

    def __init__(
        self,
        console: Console | None = None,
        log_file: Path | str | None = None,
        verbose: bool = False,
    ) -> None:
        self.console = console or Console()
        self.verbose = verbose
        self._last_stage: Stage | None = None

        if log_file:
            self._setup_file_logging(Path(log_file))

    def on_progress(self, stage: Stage, counters: ImportCounters) -> None:
        text = progress_text(stage, counters)
        if stage is not self._last_stage:
            self.console.print(f"[cyan]{text}[/cyan]")
            self._log(text)
        elif self.verbose:
            self.console.print(f"  [dim]{text}[/dim]")
        self._last_stage = stage

    def on_log(self, message: str) -> None:
        if message.startswith("Error:"):
            self.console.print(f"  [red]{escape(message)}[/red]")
            self._log(message, level="ERROR")
        else:
            self.console.print(f"  {escape(message)}")
            self._log(message)

    def __enter__(self) -> ConsoleReporter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None


class LiveReporter(_FileLoggingMixin):
    """Rich live panel showing the current stage, counts and recent log lines."""

    def __init__(
        self,
        console: Console | None = None,
        log_file: Path | str | None = None,
        max_lines: int = 8,
    ) -> None:
        self.console = console or Console()
        self.max_lines = max_lines
        self._stage = Stage.IDLE
        self._counters = ImportCounters()
        self._messages: list[str] = []
        self._start_time = time.monotonic()
        self._live: Live | None = None

        if log_file:
            self._setup_file_logging(Path(log_file))

    def _build_display(self) -> Panel:
        """Build the live display panel."""
        table = Table.grid(padding=(0, 1))
        table.add_column(justify="left")

        status = Text()
        style = "bold red" if self._stage is Stage.ERROR else "bold cyan"
        status.append(progress_text(self._stage, self._counters), style=style)
        table.add_row(status)

        counts = self._counters
        table.add_row(
            Text(
                f"Lists created: {counts.buckets_created}  "
                f"Labels created: {counts.tags_created}  "
                f"Rows skipped: {counts.skipped}",
                style="dim",
            )
        )

        if self._messages:
            table.add_row("")
            for message in self._messages[-self.max_lines :]:
                table.add_row(Text(f"- {message}"))

        elapsed = time.monotonic() - self._start_time
        table.add_row("")
        table.add_row(Text(f"Elapsed: {format_duration(elapsed)}", style="dim"))

        return Panel(table, title="[bold]Board Import[/bold]", border_style="blue")

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._build_display())

    def start(self) -> None:
        """Start the live display."""
        self._start_time = time.monotonic()
        self._live = Live(
            self._build_display(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the live display."""
        if self._live:
            self._live.update(self._build_display())
            self._live.stop()
            self._live = None

    def on_progress(self, stage: Stage, counters: ImportCounters) -> None:
        if stage is not self._stage:
            self._log(progress_text(stage, counters))
        self._stage = stage
        self._counters = counters
        self._refresh()

    def on_log(self, message: str) -> None:
        self._messages.append(message)
        self._log(message, level="ERROR" if message.startswith("Error:") else "INFO")
        self._refresh()

    def __enter__(self) -> LiveReporter:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()


def create_reporter(
    console: Console | None = None,
    log_file: Path | str | None = None,
    verbose: bool = False,
    simple: bool = False,
) -> ConsoleReporter | LiveReporter:
    """Factory function to create a progress reporter.

    Args:
        console: Rich console instance.
        log_file: Optional path to log file.
        verbose: If True, the line reporter prints every progress update.
        simple: If True, use the line reporter without live updates.
    """
    if simple:
        return ConsoleReporter(console=console, log_file=log_file, verbose=verbose)
    return LiveReporter(console=console, log_file=log_file)


def print_summary(run: ImportRun, console: Console | None = None) -> None:
    """Print a table of the run's counters and its final status."""
    console = console or Console()
    counters = run.counters

    table = Table(title="Import Summary", show_header=True, header_style="bold")
    table.add_column("Entity", style="cyan")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")

    table.add_row("Lists", str(counters.buckets_created), "-", "-")
    table.add_row("Labels", str(counters.tags_created), "-", "-")
    table.add_row("Cards", str(counters.created), str(counters.skipped), str(counters.failed))

    console.print()
    console.print(table)
    console.print()

    if run.stage is Stage.DONE:
        console.print(f"[green bold]Import complete: {counters.created} cards.[/green bold]")
    else:
        console.print(f"[red bold]Import failed: {escape(run.error_message or '')}[/red bold]")
        if run.created_anything and not run.compensated:
            console.print(
                "[yellow]The board was left partially imported; "
                "created entities were not removed.[/yellow]"
            )
