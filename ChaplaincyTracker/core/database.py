"""
Local SQLite store for the activity collections.

Every collection lives in a single row of the ``entries`` table as a JSON
encoded array (or object, for the config and the session marker). The store is
the source of truth for the running client; remote snapshots replace whole
entries through :meth:`DatabaseAPI.replace_collection`.

Unreadable or corrupt entries are treated as absent: reads log a warning and
return the supplied default.
"""

import enum
import json
import logging
import sqlite3
import time
from typing import Any, Dict, List, Optional

from PySide6 import QtCore

from .models import now_str
from ..settings import lib
from ..status import status

# Expected schema of the entries table
ENTRIES_SCHEMA: Dict[str, str] = {
    'key': 'TEXT PRIMARY KEY',
    'value': 'TEXT NOT NULL',
    'updated': 'TEXT',
}


class Table(enum.StrEnum):
    """Enum for database tables."""
    Entries = 'entries'


class Key(enum.StrEnum):
    """Storage keys of the persisted collections."""
    Studies = 'cap_studies'
    Classes = 'cap_classes'
    Groups = 'cap_groups'
    Visits = 'cap_visits'
    Users = 'cap_users'
    Config = 'cap_config'
    Requests = 'cap_requests'
    CurrentUser = 'cap_current_user'
    CachedInsight = 'cap_cached_insight'


class DatabaseAPI(QtCore.QObject):
    """Key-value access to the local store. Handles schema creation, validation, and JSON entries."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._initialize_schema_if_needed()

    def _initialize_schema_if_needed(self) -> None:
        """
        Ensures the database file and the entries table are valid.
        If the table has the wrong columns it is recreated; if the file itself is broken it is
        deleted and recreated.

        Raises:
            status.StoreInvalidException: If the store cannot be recovered.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            cursor = conn.execute(f'PRAGMA table_info({Table.Entries.value})')
            current_columns = {row[1] for row in cursor.fetchall()}

            if current_columns and not set(ENTRIES_SCHEMA).issubset(current_columns):
                missing_cols = set(ENTRIES_SCHEMA) - current_columns
                logging.warning(
                    f'Table "{Table.Entries.value}" schema is invalid. Missing columns: {missing_cols}. '
                    f'Schema will be recreated.'
                )
                conn.execute(f'DROP TABLE IF EXISTS {Table.Entries.value}')

            self._create_table_in_conn(conn)
            conn.commit()
            logging.debug('Local store schema is valid.')

        except sqlite3.Error as e:
            logging.error(f'SQLite error during schema initialization: {e}. Attempting recovery.', exc_info=True)
            if conn:
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
                conn = None

            try:
                self.delete()
                conn = self.connection()
                self._create_table_in_conn(conn)
                conn.commit()
                logging.info('Local store recreated after an error.')
            except (sqlite3.Error, status.StoreInvalidException) as final_e:
                logging.critical(f'Failed to recover the local store: {final_e}', exc_info=True)
                raise status.StoreInvalidException(f'Unrecoverable store error: {final_e}') from final_e
        finally:
            if conn:
                conn.close()

    @staticmethod
    def _create_table_in_conn(conn: sqlite3.Connection) -> None:
        cols_sql = ', '.join(f'"{name}" {typedef}' for name, typedef in ENTRIES_SCHEMA.items())
        conn.execute(f'CREATE TABLE IF NOT EXISTS {Table.Entries.value} ({cols_sql})')

    @classmethod
    def connection(cls) -> sqlite3.Connection:
        """Return a new connection to the store database.

        Returns:
            sqlite3.Connection: Database connection object.
        """
        lib.settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(lib.settings.db_path), timeout=2.0)
        conn.set_progress_handler(lambda: logging.debug('Waiting on DB lock…'), 1000)
        return conn

    @QtCore.Slot()
    def reset_cache(self) -> None:
        """Delete every stored entry by removing and recreating the database file."""
        logging.debug('Resetting local store.')
        try:
            self.delete()
        except status.StoreInvalidException as e:
            logging.error(f'Failed to reset the local store: {e}')
            return
        self._initialize_schema_if_needed()

    @classmethod
    def delete(cls) -> None:
        """Delete the local database file, retrying on failure.

        Raises:
            status.StoreInvalidException: If unable to remove the database file after retries.
        """
        db_file = lib.settings.db_path
        if not db_file.exists():
            logging.debug('No store database found to delete.')
            return

        max_attempts = 5
        attempt = 0
        wait_seconds = 1.0

        while attempt < max_attempts:
            attempt += 1
            try:
                db_file.unlink()
                logging.info(f'Store database removed: {db_file}')
                return
            except OSError as ex:
                logging.error(f'Error removing store DB (attempt {attempt}/{max_attempts}): {ex}')
                if attempt < max_attempts:
                    logging.debug(f'Retrying in {wait_seconds} seconds...')
                    time.sleep(wait_seconds)
                    wait_seconds *= 1.5
                else:
                    raise status.StoreInvalidException(
                        f'Failed to remove store DB {db_file} after {max_attempts} attempts: {ex}'
                    ) from ex

    @classmethod
    def read(cls, key: str, default: Any = None) -> Any:
        """Return the decoded value stored under ``key``.

        Missing, unreadable and corrupt entries all yield ``default``.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            row = conn.execute(
                f'SELECT value FROM {Table.Entries.value} WHERE key=?', (str(key),)
            ).fetchone()
        except sqlite3.Error as e:
            logging.warning(f'Could not read "{key}" from the local store: {e}')
            return default
        finally:
            if conn:
                conn.close()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError) as e:
            logging.warning(f'Stored entry "{key}" is corrupt and will be ignored: {e}')
            return default

    @classmethod
    def write(cls, key: str, value: Any) -> None:
        """Encode and store ``value`` under ``key``, replacing any previous entry.

        Raises:
            status.StoreInvalidException: If the entry cannot be written.
        """
        payload = json.dumps(value, ensure_ascii=False)
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            cls._create_table_in_conn(conn)
            conn.execute(
                f'INSERT OR REPLACE INTO {Table.Entries.value} (key, value, updated) VALUES (?, ?, ?)',
                (str(key), payload, now_str())
            )
            conn.commit()
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise status.StoreInvalidException(f'Could not write "{key}": {e}') from e
        finally:
            if conn:
                conn.close()
        logging.debug(f'Stored "{key}" ({len(payload)} bytes).')

    @classmethod
    def write_many(cls, entries: Dict[str, Any]) -> None:
        """Store several entries in a single transaction.

        Either every entry is written or none is.

        Raises:
            status.StoreInvalidException: If any entry cannot be written.
        """
        if not entries:
            return
        updated = now_str()
        rows = [(str(k), json.dumps(v, ensure_ascii=False), updated) for k, v in entries.items()]
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            cls._create_table_in_conn(conn)
            conn.executemany(
                f'INSERT OR REPLACE INTO {Table.Entries.value} (key, value, updated) VALUES (?, ?, ?)', rows
            )
            conn.commit()
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise status.StoreInvalidException(
                f'Could not write {", ".join(k for k, _, _ in rows)}: {e}'
            ) from e
        finally:
            if conn:
                conn.close()
        logging.debug(f'Stored {len(rows)} entries in one transaction.')

    @classmethod
    def remove(cls, key: str) -> None:
        """Remove the entry stored under ``key``. Removing a missing key is a no-op."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            conn.execute(f'DELETE FROM {Table.Entries.value} WHERE key=?', (str(key),))
            conn.commit()
        except sqlite3.Error as e:
            raise status.StoreInvalidException(f'Could not remove "{key}": {e}') from e
        finally:
            if conn:
                conn.close()

    @classmethod
    def has(cls, key: str) -> bool:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            row = conn.execute(
                f'SELECT 1 FROM {Table.Entries.value} WHERE key=?', (str(key),)
            ).fetchone()
            return row is not None
        except sqlite3.Error as e:
            logging.warning(f'Could not look up "{key}" in the local store: {e}')
            return False
        finally:
            if conn:
                conn.close()

    @classmethod
    def get_collection(cls, key: str) -> List[Dict[str, Any]]:
        """Return the JSON array stored under ``key``, or an empty list."""
        items = cls.read(key, [])
        if not isinstance(items, list):
            logging.warning(f'Stored entry "{key}" is not a list and will be ignored.')
            return []
        return items

    @classmethod
    def replace_collection(cls, key: str, items: List[Dict[str, Any]]) -> None:
        """Replace the whole collection stored under ``key``."""
        cls.write(key, list(items))

    @classmethod
    def upsert(cls, key: str, item: Dict[str, Any]) -> bool:
        """Replace the item with the same id in place, or append it.

        Returns:
            bool: True if an existing item was replaced.
        """
        items = cls.get_collection(key)
        for idx, existing in enumerate(items):
            if isinstance(existing, dict) and existing.get('id') == item.get('id'):
                items[idx] = item
                cls.write(key, items)
                return True
        items.append(item)
        cls.write(key, items)
        return False

    @classmethod
    def remove_item(cls, key: str, item_id: str) -> bool:
        """Remove every item with ``item_id`` from the collection.

        Returns:
            bool: True if anything was removed. Nothing is written otherwise.
        """
        items = cls.get_collection(key)
        kept = [i for i in items if not (isinstance(i, dict) and i.get('id') == item_id)]
        if len(kept) == len(items):
            logging.debug(f'No item "{item_id}" in "{key}"; nothing removed.')
            return False
        cls.write(key, kept)
        return True


database = DatabaseAPI()
