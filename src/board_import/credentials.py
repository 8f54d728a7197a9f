"""Credential storage for the board importer.

Credentials are kept in a small JSON file, private to the current user,
organised as ``scope -> key -> value``. The importer only uses the
``member`` scope with two keys: the API key and the API token.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, urlencode

logger = logging.getLogger(__name__)

MEMBER_SCOPE = "member"
API_KEY = "api_key"
API_TOKEN = "api_token"

STORE_VERSION = 1

AUTHORIZE_URL = "https://trello.com/1/authorize"
DEFAULT_APP_NAME = "Board Importer"


class AuthNotConfiguredError(Exception):
    """Raised when no API key/token is available for a run."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Not authorized: missing {', '.join(missing)}. "
            "Run 'board-import auth save' or set BOARD_IMPORT_API_KEY/BOARD_IMPORT_API_TOKEN."
        )


@dataclass(frozen=True)
class Credentials:
    """API key and token injected into every API request."""

    api_key: str
    api_token: str

    def __repr__(self) -> str:
        return f"Credentials(api_key={self.api_key!r}, api_token='***')"


class CredentialStore:
    """Scoped key-value store persisted as a private JSON file.

    Example:
        >>> store = CredentialStore("~/.config/board-import/credentials.json")
        >>> store.set("member", "api_key", "abc")
        >>> store.get("member", "api_key")
        'abc'
        >>> store.set("member", "api_key", None)  # clears the key
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._data: dict[str, dict[str, str]] | None = None

    def _load(self) -> dict[str, dict[str, str]]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        with self.path.open("r", encoding="utf-8") as f:
            raw = json.load(f)

        if not isinstance(raw, dict) or raw.get("version") != STORE_VERSION:
            raise ValueError(f"Unsupported credential store format: {self.path}")

        scopes = raw.get("scopes")
        if not isinstance(scopes, dict):
            raise ValueError("Invalid credential store: missing or invalid 'scopes' field")

        self._data = {
            scope: dict(values) for scope, values in scopes.items() if isinstance(values, dict)
        }
        return self._data

    def _save(self) -> None:
        data = {"version": STORE_VERSION, "scopes": self._load()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Create with 0600 before any secret is written
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.chmod(self.path, 0o600)

    def get(self, scope: str, key: str) -> str | None:
        """Return the stored value, or None if unset."""
        return self._load().get(scope, {}).get(key)

    def set(self, scope: str, key: str, value: str | None) -> None:
        """Store a value. ``None`` clears the key."""
        data = self._load()
        values = data.setdefault(scope, {})
        if value is None:
            values.pop(key, None)
            if not values:
                data.pop(scope, None)
        else:
            values[key] = value
        self._save()


def save_credentials(store: CredentialStore, api_key: str | None, api_token: str | None) -> bool:
    """Save key and token; blank values clear the stored value.

    Returns:
        True if both parts are now stored.
    """
    key = (api_key or "").strip()
    token = (api_token or "").strip()
    store.set(MEMBER_SCOPE, API_KEY, key or None)
    store.set(MEMBER_SCOPE, API_TOKEN, token or None)
    return bool(key and token)


def clear_credentials(store: CredentialStore) -> None:
    store.set(MEMBER_SCOPE, API_KEY, None)
    store.set(MEMBER_SCOPE, API_TOKEN, None)


def is_authorized(store: CredentialStore) -> bool:
    """Authorization status: True when a token is stored."""
    return bool(store.get(MEMBER_SCOPE, API_TOKEN))


def load_credentials(
    store: CredentialStore | None,
    api_key: str | None = None,
    api_token: str | None = None,
) -> Credentials:
    """Resolve credentials for one run.

    Explicit values (CLI options or environment) take precedence over
    the store.

    Raises:
        AuthNotConfiguredError: If the key or the token is missing.
    """
    key = api_key or (store.get(MEMBER_SCOPE, API_KEY) if store else None)
    token = api_token or (store.get(MEMBER_SCOPE, API_TOKEN) if store else None)

    missing = []
    if not key:
        missing.append("API key")
    if not token:
        missing.append("API token")
    if missing:
        raise AuthNotConfiguredError(missing)

    return Credentials(api_key=key, api_token=token)  # type: ignore[arg-type]


def build_authorize_url(api_key: str, app_name: str = DEFAULT_APP_NAME) -> str:
    """Build the URL where a user grants a never-expiring read/write token."""
    if not api_key.strip():
        raise ValueError("API key is required to build the authorize URL")

    query = urlencode(
        {
            "expiration": "never",
            "name": app_name,
            "scope": "read,write",
            "response_type": "token",
            "key": api_key.strip(),
        },
        safe=",",
        quote_via=quote,
    )
    return f"{AUTHORIZE_URL}?{query}"
