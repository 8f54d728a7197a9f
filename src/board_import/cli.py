"""CLI module for the board importer.

This module provides the command-line interface using Typer:
- run: Import a CSV/JSON file into a board
- preview: Show what an import would create, without writing anything
- auth: Manage the stored API key and token
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from board_import.api_client import BoardClient, RemoteApiError, parse_board_ref
from board_import.config import Settings, get_settings
from board_import.credentials import (
    AuthNotConfiguredError,
    CredentialStore,
    Credentials,
    build_authorize_url,
    clear_credentials,
    is_authorized,
    load_credentials,
    save_credentials,
)
from board_import.importer import ImportDriver, ImportRun
from board_import.normalizer import NormalizedRecord, normalize
from board_import.parsers import InputFormatError, parse_file
from board_import.progress import ImportListener, create_reporter, print_summary
from board_import.resolver import (
    CreationPolicy,
    build_name_map,
    distinct_names,
    find_missing,
)

# Create Typer apps
app = typer.Typer(
    name="board-import",
    help="Import CSV/JSON rows as lists, labels and cards on a board",
    no_args_is_help=True,
)
auth_app = typer.Typer(help="Manage the stored API key and token", no_args_is_help=True)
app.add_typer(auth_app, name="auth")

# Rich console for output
console = Console()
error_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def _fail(message: str) -> typer.Exit:
    error_console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def _credential_store(settings: Settings) -> CredentialStore:
    return CredentialStore(settings.credentials_path)


def _resolve_credentials(
    settings: Settings,
    api_key: str | None,
    api_token: str | None,
) -> Credentials:
    try:
        return load_credentials(
            _credential_store(settings),
            api_key=api_key or settings.api_key,
            api_token=api_token or settings.api_token,
        )
    except AuthNotConfiguredError as e:
        raise _fail(str(e)) from None


def _resolve_board(settings: Settings, board: str | None) -> str:
    value = board or settings.board
    if not value:
        raise _fail("No board specified. Use --board or set BOARD_IMPORT_BOARD.")
    try:
        return parse_board_ref(value)
    except ValueError as e:
        raise _fail(str(e)) from None


def _load_records(file: Path) -> tuple[list[dict[str, Any]], list[NormalizedRecord]]:
    try:
        rows = parse_file(file)
        return rows, normalize(rows)
    except InputFormatError as e:
        raise _fail(str(e)) from None


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(name)s - %(levelname)s - %(message)s",
        )


async def _fetch_board(
    credentials: Credentials,
    settings: Settings,
    board_ref: str,
) -> dict[str, Any]:
    """Fetch the target board; also verifies the credentials.

    Raises:
        RemoteApiError: If the board cannot be fetched.
    """
    async with BoardClient(
        credentials, base_url=settings.api_url, timeout=settings.request_timeout
    ) as client:
        return await client.get_board(board_ref)


async def _execute_import(
    file: Path,
    board_id: str,
    credentials: Credentials,
    settings: Settings,
    policy: CreationPolicy,
    listener: ImportListener,
) -> ImportRun:
    async with BoardClient(
        credentials, base_url=settings.api_url, timeout=settings.request_timeout
    ) as client:
        driver = ImportDriver.from_settings(client, settings, policy=policy, listener=listener)
        return await driver.run_import(file, board_id)


async def _fetch_existing(
    credentials: Credentials,
    settings: Settings,
    board_id: str,
    include_labels: bool,
) -> tuple[dict[str, str], dict[str, str]]:
    async with BoardClient(
        credentials, base_url=settings.api_url, timeout=settings.request_timeout
    ) as client:
        lists = build_name_map(await client.list_buckets(board_id), "bucket")
        labels: dict[str, str] = {}
        if include_labels:
            labels = build_name_map(await client.list_tags(board_id), "tag")
        return lists, labels


def _build_policy(
    settings: Settings,
    create_lists: bool | None,
    create_labels: bool | None,
    skip_labels: bool | None,
    compensate: bool | None,
) -> CreationPolicy:
    base = settings.creation_policy()
    return CreationPolicy(
        create_buckets=base.create_buckets if create_lists is None else create_lists,
        create_tags=base.create_tags if create_labels is None else create_labels,
        skip_tags=base.skip_tags if skip_labels is None else skip_labels,
        compensate_on_failure=(
            base.compensate_on_failure if compensate is None else compensate
        ),
    )


# Shared option types
BoardOption = Annotated[
    str | None,
    typer.Option("--board", "-b", help="Board id, short link or URL"),
]
KeyOption = Annotated[
    str | None,
    typer.Option("--key", help="API key (overrides the stored key)"),
]
TokenOption = Annotated[
    str | None,
    typer.Option("--token", "-t", help="API token (overrides the stored token)"),
]
InputFile = Annotated[
    Path,
    typer.Argument(
        help="CSV or JSON file to import",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        resolve_path=True,
    ),
]


@app.command()
def run(
    file: InputFile,
    board: BoardOption = None,
    api_key: KeyOption = None,
    api_token: TokenOption = None,
    create_lists: Annotated[
        bool | None,
        typer.Option("--create-lists/--no-create-lists", help="Create missing lists"),
    ] = None,
    create_labels: Annotated[
        bool | None,
        typer.Option("--create-labels/--no-create-labels", help="Create missing labels"),
    ] = None,
    skip_labels: Annotated[
        bool | None,
        typer.Option("--skip-labels/--with-labels", help="Ignore the Labels column"),
    ] = None,
    compensate: Annotated[
        bool | None,
        typer.Option(
            "--compensate/--no-compensate",
            help="Remove entities created by this run if it fails",
        ),
    ] = None,
    ledger_file: Annotated[
        Path | None,
        typer.Option(
            "--ledger-file",
            help="Write the ids of every created entity to this JSON file",
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Append run events to this file", dir_okay=False),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed progress"),
    ] = False,
) -> None:
    """Import a CSV or JSON file into a board.

    Each row needs a List and a Card column; Description and Labels
    (comma-separated) are optional. Missing lists and labels are created
    first unless disabled. The run stops at the first failing card;
    anything created before that stays on the board.
    """
    _configure_logging(verbose)
    settings = get_settings()

    console.print(Panel("Board Import - Run", style="bold blue"))
    console.print()

    board_ref = _resolve_board(settings, board)
    credentials = _resolve_credentials(settings, api_key, api_token)
    policy = _build_policy(settings, create_lists, create_labels, skip_labels, compensate)

    console.print("Verifying board access...")
    try:
        board_info = asyncio.run(_fetch_board(credentials, settings, board_ref))
    except RemoteApiError as e:
        raise _fail(f"Failed to access board '{board_ref}': {e}") from None

    board_id = board_info.get("id") or board_ref
    console.print(f"[bold]Board:[/bold] {escape(str(board_info.get('name', board_id)))}")
    console.print(f"[bold]File:[/bold] {file}")
    if not policy.create_buckets:
        console.print("[bold]Lists:[/bold] must already exist")
    if policy.skip_tags:
        console.print("[bold]Labels:[/bold] ignored")
    elif not policy.create_tags:
        console.print("[bold]Labels:[/bold] existing only, missing labels are omitted")
    console.print()

    reporter = create_reporter(
        console=console,
        log_file=log_file or settings.log_file,
        verbose=verbose,
        simple=not console.is_terminal,  # Live progress for interactive, simple for pipes
    )

    with reporter:
        import_run = asyncio.run(
            _execute_import(file, board_id, credentials, settings, policy, reporter)
        )

    print_summary(import_run, console)

    if ledger_file:
        import_run.ledger.save(ledger_file)
        console.print()
        console.print(f"Created entities written to: {ledger_file}")

    if not import_run.succeeded:
        raise typer.Exit(1)


@app.command()
def preview(
    file: InputFile,
    board: BoardOption = None,
    api_key: KeyOption = None,
    api_token: TokenOption = None,
    skip_labels: Annotated[
        bool | None,
        typer.Option("--skip-labels/--with-labels", help="Ignore the Labels column"),
    ] = None,
) -> None:
    """Show what an import would create, without changing the board."""
    settings = get_settings()
    rows, records = _load_records(file)
    board_ref = _resolve_board(settings, board)
    credentials = _resolve_credentials(settings, api_key, api_token)
    skip = settings.skip_labels if skip_labels is None else skip_labels

    try:
        lists, labels = asyncio.run(
            _fetch_existing(credentials, settings, board_ref, include_labels=not skip)
        )
    except RemoteApiError as e:
        raise _fail(f"Failed to read board '{board_ref}': {e}") from None

    list_names = distinct_names(r.bucket_name for r in records)
    label_names = [] if skip else distinct_names(n for r in records for n in r.tag_names)
    missing_lists = find_missing(lists, list_names)
    missing_labels = find_missing(labels, label_names)

    table = Table(title="Import Preview", show_header=True, header_style="bold")
    table.add_column("Entity", style="cyan")
    table.add_column("In file", justify="right")
    table.add_column("Existing", justify="right")
    table.add_column("To create", justify="right", style="green")

    table.add_row("Cards", str(len(records)), "-", str(len(records)))
    table.add_row(
        "Lists",
        str(len(list_names)),
        str(len(list_names) - len(missing_lists)),
        str(len(missing_lists)),
    )
    if skip:
        table.add_row("Labels", "ignored", "-", "-")
    else:
        table.add_row(
            "Labels",
            str(len(label_names)),
            str(len(label_names) - len(missing_labels)),
            str(len(missing_labels)),
        )

    console.print(table)

    dropped = len(rows) - len(records)
    if dropped:
        console.print(f"[yellow]{dropped} rows lack a list or card name and will be skipped[/yellow]")
    for name in missing_lists:
        console.print(f"  [green]+[/green] list: {escape(name)}")
    for name in missing_labels:
        console.print(f"  [green]+[/green] label: {escape(name)}")


@auth_app.command("save")
def auth_save(
    api_key: Annotated[str, typer.Option("--key", prompt="API key", help="API key")],
    api_token: Annotated[
        str,
        typer.Option("--token", prompt="API token", hide_input=True, help="API token"),
    ],
) -> None:
    """Store the API key and token. Blank values clear them."""
    store = _credential_store(get_settings())
    if save_credentials(store, api_key, api_token):
        console.print("[green]Credentials saved[/green]")
    else:
        console.print("[yellow]Not authorized[/yellow]: key or token is blank")


@auth_app.command("status")
def auth_status() -> None:
    """Show whether credentials are stored. Exits 1 when not authorized."""
    store = _credential_store(get_settings())
    if is_authorized(store):
        console.print("[green]Credentials saved[/green]")
        return
    console.print("[yellow]Not authorized[/yellow]")
    raise typer.Exit(1)


@auth_app.command("clear")
def auth_clear() -> None:
    """Remove the stored API key and token."""
    clear_credentials(_credential_store(get_settings()))
    console.print("Credentials cleared")


@auth_app.command("token-url")
def auth_token_url(
    api_key: Annotated[str, typer.Option("--key", help="API key to authorize")],
    open_browser: Annotated[
        bool, typer.Option("--open", help="Open the URL in a browser")
    ] = False,
) -> None:
    """Print the URL where a token for the given API key can be generated."""
    try:
        url = build_authorize_url(api_key)
    except ValueError as e:
        raise _fail(str(e)) from None

    console.print(url, soft_wrap=True)
    if open_browser:
        typer.launch(url)


if __name__ == "__main__":
    app()
