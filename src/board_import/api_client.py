"""
Board API Client for CSV/JSON imports.

Async HTTP client for the Trello-style board REST API.
Uses httpx for async HTTP requests with key/token query authentication.
"""

import logging
import re
from typing import Any

import httpx

from board_import.credentials import Credentials

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.trello.com/1"

# https://trello.com/b/{shortLink}/{board-name}
BOARD_URL_PATTERN = re.compile(r"trello\.com/b/([A-Za-z0-9]+)")
BOARD_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def parse_board_ref(value: str) -> str:
    """
    Extract a board id or short link from user input.

    Accepts a raw board id, a short link, or a full board URL.

    Raises:
        ValueError: If the value is not a recognizable board reference
    """
    value = value.strip()
    match = BOARD_URL_PATTERN.search(value)
    if match:
        return match.group(1)
    if BOARD_ID_PATTERN.match(value):
        return value
    raise ValueError(f"Not a board id or board URL: '{value}'")


class RemoteApiError(Exception):
    """Exception raised for API errors."""

    def __init__(self, status_code: int, message: str, response_body: Any = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")


class BoardClient:
    """
    Async client for the board API.

    Provides the operations the importer needs:
    - Lists (buckets)
    - Labels (tags)
    - Cards (items)

    Every request carries the caller's ``key`` and ``token`` as query
    parameters. Nothing is retried here.
    """

    def __init__(
        self,
        credentials: Credentials,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the board API client.

        Args:
            credentials: API key and token injected into every request
            base_url: Base URL of the API (e.g., "https://api.trello.com/1")
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BoardClient":
        """Enter async context manager."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _auth_params(self, params: dict[str, Any] | None) -> dict[str, Any]:
        merged = dict(params or {})
        merged["key"] = self.credentials.api_key
        merged["token"] = self.credentials.api_token
        return merged

    async def _request(
        self,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an authenticated HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API endpoint path
            data: Form-encoded request body
            params: Query parameters (auth parameters are appended)

        Returns:
            Decoded JSON response (dict, list, or empty dict when there is no body)

        Raises:
            RemoteApiError: If the request fails or returns a non-success status
        """
        client = await self._ensure_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                data=data,
                params=self._auth_params(params),
            )
        except httpx.TimeoutException as e:
            raise RemoteApiError(0, f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise RemoteApiError(0, f"Request failed: {e}") from e

        if response.status_code >= 400:
            body = response.text
            logger.debug(f"{method} {path} failed with {response.status_code}: {body}")
            raise RemoteApiError(
                status_code=response.status_code,
                message=body or response.reason_phrase,
                response_body=body,
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(
                response.status_code, f"Invalid JSON in response: {e}", response.text
            ) from e

    # =========================================================================
    # Boards
    # =========================================================================

    async def get_board(self, board_id: str) -> dict[str, Any]:
        """
        Get a board's id and name.

        Args:
            board_id: Board id or short link

        Returns:
            Board object
        """
        return await self._request(
            "GET", f"/boards/{board_id}", params={"fields": "id,name"}
        )

    # =========================================================================
    # Lists (buckets)
    # =========================================================================

    async def list_buckets(self, board_id: str) -> list[dict[str, Any]]:
        """
        List all open lists on a board.

        Args:
            board_id: Board id or short link

        Returns:
            List of list objects with ``id`` and ``name``
        """
        result = await self._request(
            "GET",
            f"/boards/{board_id}/lists",
            params={"fields": "id,name", "cards": "none"},
        )
        return result  # type: ignore[return-value]

    async def create_bucket(self, board_id: str, name: str) -> dict[str, Any]:
        """
        Create a list at the bottom of a board.

        Args:
            board_id: Board id
            name: List name

        Returns:
            Created list object
        """
        return await self._request(
            "POST",
            "/lists",
            data={"name": name, "idBoard": board_id, "pos": "bottom"},
        )

    async def archive_bucket(self, bucket_id: str) -> dict[str, Any]:
        """Archive a list. Lists cannot be deleted through the API."""
        return await self._request(
            "PUT", f"/lists/{bucket_id}/closed", data={"value": "true"}
        )

    # =========================================================================
    # Labels (tags)
    # =========================================================================

    async def list_tags(self, board_id: str) -> list[dict[str, Any]]:
        """
        List all labels on a board.

        Args:
            board_id: Board id or short link

        Returns:
            List of label objects with ``id``, ``name`` and ``color``
        """
        result = await self._request(
            "GET",
            f"/boards/{board_id}/labels",
            params={"fields": "id,name,color", "limit": 1000},
        )
        return result  # type: ignore[return-value]

    async def create_tag(self, board_id: str, name: str) -> dict[str, Any]:
        """
        Create a colorless label on a board.

        Args:
            board_id: Board id
            name: Label name

        Returns:
            Created label object
        """
        return await self._request(
            "POST",
            "/labels",
            data={"idBoard": board_id, "name": name, "color": "null"},
        )

    async def delete_tag(self, tag_id: str) -> dict[str, Any]:
        """Delete a label."""
        return await self._request("DELETE", f"/labels/{tag_id}")

    # =========================================================================
    # Cards (items)
    # =========================================================================

    async def create_item(
        self,
        bucket_id: str,
        name: str,
        description: str = "",
        tag_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a card at the bottom of a list.

        Args:
            bucket_id: Id of the list the card belongs to
            name: Card name
            description: Card description (may be empty)
            tag_ids: Ids of labels to attach

        Returns:
            Created card object
        """
        return await self._request(
            "POST",
            "/cards",
            data={
                "idList": bucket_id,
                "name": name,
                "desc": description or "",
                "idLabels": ",".join(tag_ids or []),
                "pos": "bottom",
            },
        )

    async def delete_item(self, item_id: str) -> dict[str, Any]:
        """Delete a card."""
        return await self._request("DELETE", f"/cards/{item_id}")
