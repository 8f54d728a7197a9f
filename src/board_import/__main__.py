"""Allow ``python -m board_import``."""

from board_import.cli import app

app()
