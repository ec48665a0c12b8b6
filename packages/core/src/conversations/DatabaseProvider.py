"""SQLite connection provider for conversation history.

Opens a read-write connection with foreign keys enforced, so deleting a
conversation cascades to its messages at the driver level.
"""

import sqlite3
from pathlib import Path

from conversations.schema import SCHEMA_SQL

MEMORY_DB = ":memory:"


class DatabaseProvider:
    """Manage a single SQLite connection with the history schema applied."""

    def __init__(self, db_path: str) -> None:
        """Open (creating if needed) the database at ``db_path``.

        Args:
            db_path: Filesystem path to the SQLite database, or ``:memory:``.

        Raises:
            FileNotFoundError: If the parent directory does not exist.
            ConnectionError: If SQLite cannot open the file or apply the schema.
        """
        target = db_path
        if db_path != MEMORY_DB:
            try:
                parent = Path(db_path).parent.resolve(strict=True)
            except OSError as e:
                raise FileNotFoundError(
                    f"Could not resolve database directory for '{db_path}': {e}"
                ) from e
            target = str(parent / Path(db_path).name)

        try:
            # The API serves requests from worker threads; access is serialized
            # by the store's lock.
            self._connection = sqlite3.connect(target, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
            self._connection.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise ConnectionError(
                f"Failed to open database at '{target}': {e}"
            ) from e

    def get_connection(self) -> sqlite3.Connection:
        """Return the underlying SQLite connection."""
        return self._connection

    def close(self) -> None:
        self._connection.close()
