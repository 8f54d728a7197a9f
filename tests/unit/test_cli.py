"""Unit tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from board_import.api_client import RemoteApiError
from board_import.cli import app

runner = CliRunner()


@pytest.fixture
def patched_client(monkeypatch: pytest.MonkeyPatch, fake_client):
    """Route every BoardClient the CLI opens to the in-memory board."""
    monkeypatch.setattr("board_import.cli.BoardClient", lambda *args, **kwargs: fake_client)
    return fake_client


@pytest.fixture
def api_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOARD_IMPORT_API_KEY", "key")
    monkeypatch.setenv("BOARD_IMPORT_API_TOKEN", "token")
    for name in ("LIST_DELAY", "LABEL_DELAY", "CARD_DELAY"):
        monkeypatch.setenv(f"BOARD_IMPORT_{name}", "0")


class TestRunCommand:
    """Tests for the run command."""

    @pytest.mark.usefixtures("api_env")
    def test_successful_import(self, csv_file: Path, patched_client) -> None:
        result = runner.invoke(
            app, ["run", str(csv_file), "--board", "https://trello.com/b/AbCd1234/x"]
        )

        assert result.exit_code == 0, result.output
        assert "Import complete: 3 cards." in result.output
        assert [c["name"] for c in patched_client.cards] == [
            "Write docs",
            "Review PR",
            "Ship release",
        ]

    @pytest.mark.usefixtures("api_env")
    def test_no_create_lists_fails_without_writes(self, csv_file: Path, patched_client) -> None:
        result = runner.invoke(app, ["run", str(csv_file), "--board", "b1", "--no-create-lists"])

        assert result.exit_code == 1
        assert "Import failed" in result.output
        assert patched_client.calls == []

    @pytest.mark.usefixtures("api_env")
    def test_ledger_file(self, csv_file: Path, patched_client, tmp_path: Path) -> None:
        ledger_file = tmp_path / "created.json"

        result = runner.invoke(
            app,
            ["run", str(csv_file), "--board", "b1", "--skip-labels", "--ledger-file", str(ledger_file)],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(ledger_file.read_text(encoding="utf-8"))
        kinds = [entry["kind"] for entry in data["created"]]
        assert kinds == ["bucket", "bucket", "item", "item", "item"]

    def test_missing_credentials(self, csv_file: Path, patched_client) -> None:
        result = runner.invoke(app, ["run", str(csv_file), "--board", "b1"])

        assert result.exit_code == 1
        assert "Not authorized" in result.output
        assert patched_client.calls == []

    @pytest.mark.usefixtures("api_env")
    def test_missing_board(self, csv_file: Path, patched_client) -> None:
        result = runner.invoke(app, ["run", str(csv_file)])

        assert result.exit_code == 1
        assert "No board specified" in result.output

    @pytest.mark.usefixtures("api_env")
    def test_board_access_error(self, csv_file: Path, patched_client) -> None:
        patched_client.get_board = AsyncMock(side_effect=RemoteApiError(401, "invalid token"))

        result = runner.invoke(app, ["run", str(csv_file), "--board", "b1"])

        assert result.exit_code == 1
        assert "Failed to access board" in result.output
        assert patched_client.calls == []

    @pytest.mark.usefixtures("api_env")
    def test_missing_input_file(self, tmp_path: Path, patched_client) -> None:
        result = runner.invoke(app, ["run", str(tmp_path / "nope.csv"), "--board", "b1"])

        assert result.exit_code != 0


class TestPreviewCommand:
    @pytest.mark.usefixtures("api_env")
    def test_preview_makes_no_writes(self, csv_file: Path, make_client, monkeypatch) -> None:
        client = make_client(lists=[{"id": "list-a", "name": "Todo"}])
        monkeypatch.setattr("board_import.cli.BoardClient", lambda *args, **kwargs: client)

        result = runner.invoke(app, ["preview", str(csv_file), "--board", "b1"])

        assert result.exit_code == 0, result.output
        assert "Import Preview" in result.output
        assert "+ list: Done" in result.output
        assert "+ list: Todo" not in result.output
        assert "+ label: urgent" in result.output
        assert client.calls == []

    @pytest.mark.usefixtures("api_env")
    def test_with_labels_overrides_skip_setting(
        self, csv_file: Path, patched_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BOARD_IMPORT_SKIP_LABELS", "true")

        skipped = runner.invoke(app, ["preview", str(csv_file), "--board", "b1"])
        included = runner.invoke(app, ["preview", str(csv_file), "--board", "b1", "--with-labels"])

        assert skipped.exit_code == 0, skipped.output
        assert "+ label: urgent" not in skipped.output
        assert included.exit_code == 0, included.output
        assert "+ label: urgent" in included.output


class TestAuthCommands:
    """Tests for the auth sub-commands."""

    def test_save_status_clear(self) -> None:
        result = runner.invoke(app, ["auth", "save", "--key", "k", "--token", "t"])
        assert result.exit_code == 0
        assert "Credentials saved" in result.output

        result = runner.invoke(app, ["auth", "status"])
        assert result.exit_code == 0
        assert "Credentials saved" in result.output

        result = runner.invoke(app, ["auth", "clear"])
        assert result.exit_code == 0

        result = runner.invoke(app, ["auth", "status"])
        assert result.exit_code == 1
        assert "Not authorized" in result.output

    def test_saved_credentials_are_used_by_run(
        self, csv_file: Path, patched_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        for name in ("LIST_DELAY", "LABEL_DELAY", "CARD_DELAY"):
            monkeypatch.setenv(f"BOARD_IMPORT_{name}", "0")
        runner.invoke(app, ["auth", "save", "--key", "k", "--token", "t"])

        result = runner.invoke(app, ["run", str(csv_file), "--board", "b1"])

        assert result.exit_code == 0, result.output

    def test_token_url(self) -> None:
        result = runner.invoke(app, ["auth", "token-url", "--key", "abc"])

        assert result.exit_code == 0
        assert "https://trello.com/1/authorize?" in result.output
        assert "key=abc" in result.output
