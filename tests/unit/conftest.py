"""Shared fixtures for board importer unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from board_import.api_client import RemoteApiError
from board_import.config import clear_settings_cache


class FakeBoardClient:
    """In-memory stand-in for BoardClient.

    Holds the lists, labels and cards of one board and records every
    write call as ``(method, *args)`` in ``calls``.
    """

    def __init__(
        self,
        lists: list[dict[str, Any]] | None = None,
        labels: list[dict[str, Any]] | None = None,
        fail_item_after: int | None = None,
    ) -> None:
        self.lists = list(lists or [])
        self.labels = list(labels or [])
        self.cards: list[dict[str, Any]] = []
        self.calls: list[tuple[Any, ...]] = []
        self.fail_item_after = fail_item_after
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    async def __aenter__(self) -> FakeBoardClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def get_board(self, board_id: str) -> dict[str, Any]:
        return {"id": "board-1", "name": "Test Board"}

    async def list_buckets(self, board_id: str) -> list[dict[str, Any]]:
        return [dict(entity) for entity in self.lists]

    async def create_bucket(self, board_id: str, name: str) -> dict[str, Any]:
        self.calls.append(("create_bucket", name))
        entity = {"id": self._new_id("list"), "name": name}
        self.lists.append(entity)
        return dict(entity)

    async def archive_bucket(self, bucket_id: str) -> dict[str, Any]:
        self.calls.append(("archive_bucket", bucket_id))
        return {}

    async def list_tags(self, board_id: str) -> list[dict[str, Any]]:
        return [dict(entity) for entity in self.labels]

    async def create_tag(self, board_id: str, name: str) -> dict[str, Any]:
        self.calls.append(("create_tag", name))
        entity = {"id": self._new_id("label"), "name": name, "color": None}
        self.labels.append(entity)
        return dict(entity)

    async def delete_tag(self, tag_id: str) -> dict[str, Any]:
        self.calls.append(("delete_tag", tag_id))
        return {}

    async def create_item(
        self,
        bucket_id: str,
        name: str,
        description: str = "",
        tag_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("create_item", bucket_id, name))
        if self.fail_item_after is not None and len(self.cards) >= self.fail_item_after:
            raise RemoteApiError(429, "rate limit exceeded")
        card = {
            "id": self._new_id("card"),
            "idList": bucket_id,
            "name": name,
            "desc": description,
            "idLabels": list(tag_ids or []),
        }
        self.cards.append(card)
        return dict(card)

    async def delete_item(self, item_id: str) -> dict[str, Any]:
        self.calls.append(("delete_item", item_id))
        return {}

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_client() -> FakeBoardClient:
    """Fake client for an empty board."""
    return FakeBoardClient()


@pytest.fixture
def make_client() -> type[FakeBoardClient]:
    """Factory for fake clients with pre-existing lists and labels."""
    return FakeBoardClient


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    """CSV input with two lists, two labels and three cards."""
    path = tmp_path / "cards.csv"
    path.write_text(
        "List,Card,Description,Labels\n"
        "Todo,Write docs,First draft,\"docs, urgent\"\n"
        "Todo,Review PR,,urgent\n"
        "Done,Ship release,v1.0,\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep settings and credentials away from the real environment."""
    for name in (
        "BOARD_IMPORT_API_KEY",
        "BOARD_IMPORT_API_TOKEN",
        "BOARD_IMPORT_BOARD",
        "BOARD_IMPORT_API_URL",
        "BOARD_IMPORT_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BOARD_IMPORT_CREDENTIALS_FILE", str(tmp_path / "credentials.json"))
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()
