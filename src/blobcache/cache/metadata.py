"""Cache metadata management.

Records live in a single SQLite table keyed by cache URI:

    images(uri TEXT PRIMARY KEY, remotePath TEXT, localPath TEXT,
           bucket TEXT, version INTEGER)
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from blobcache.errors import DuplicateKeyError, StoreUnavailableError
from blobcache.records import COLUMNS, CacheRecord

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "images"


class MetadataStore:
    """Durable mapping from cache URI to CacheRecord.

    The store is opened once and closed once; a closed store cannot be
    reopened. A single connection is shared by all threads of the process and
    access to it is serialized with a lock.

    Examples:
        >>> with MetadataStore('/tmp/blobcache/blobcache.db') as store:
        ...     _ = store.upsert(CacheRecord(uri='img/logo.png', remote_path='img/logo.png'))
        ...     store.get('img/logo.png').remote_path
        'img/logo.png'
    """

    def __init__(self, db_path: Union[str, Path], table: str = DEFAULT_TABLE):
        """Initialize metadata store.

        Args:
            db_path: Path of the SQLite database file (':memory:' allowed)
            table: Table name holding cache records
        """
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table}")
        self.db_path = str(db_path)
        self.table = table
        self._conn: Optional[sqlite3.Connection] = None
        self._closed = False
        self._lock = threading.RLock()

    def __enter__(self) -> "MetadataStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Open the database and create the table if needed.

        Raises:
            StoreUnavailableError: If the database cannot be opened, or the
                store has already been closed
        """
        with self._lock:
            if self._closed:
                raise StoreUnavailableError(
                    f"Metadata store {self.db_path} was closed; create a new instance"
                )
            if self._conn is not None:
                return

            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA busy_timeout = 5000;")
                try:
                    conn.execute("PRAGMA journal_mode = WAL;")
                except sqlite3.OperationalError as e:
                    logger.debug(f"WAL journal mode unavailable for {self.db_path}: {e}")
                with conn:
                    conn.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self.table} (
                            uri TEXT PRIMARY KEY,
                            remotePath TEXT,
                            localPath TEXT,
                            bucket TEXT,
                            version INTEGER
                        )
                        """
                    )
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Failed to open metadata store at {self.db_path}: {e}")
                raise StoreUnavailableError(
                    f"Cannot open metadata store at {self.db_path}: {e}"
                ) from e

            self._conn = conn
            logger.debug(f"Opened metadata store at {self.db_path}")

    def close(self) -> None:
        """Release the database connection."""
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing metadata store {self.db_path}: {e}")
            self._conn = None
            self._closed = True

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement in its own transaction.

        Returns:
            Number of rows affected
        """
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    return conn.execute(sql, params).rowcount
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Metadata store query failed: {e}") from e

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Metadata store query failed: {e}") from e

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailableError(f"Metadata store {self.db_path} is not open")
        return self._conn

    def insert(self, record: CacheRecord) -> CacheRecord:
        """Insert a new record.

        Raises:
            DuplicateKeyError: If a record with the same uri exists
        """
        row = record.to_row()
        placeholders = ", ".join("?" for _ in COLUMNS)
        try:
            self._execute(
                f"INSERT INTO {self.table} ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                [row[c] for c in COLUMNS],
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(f"Cache record already exists: {record.uri}") from e
        return record

    def update(self, record: CacheRecord) -> int:
        """Overwrite all fields of the record matching record.uri.

        Returns:
            Number of rows updated (0 if the record does not exist)
        """
        row = record.to_row()
        fields = [c for c in COLUMNS if c != "uri"]
        assignments = ", ".join(f"{c} = ?" for c in fields)
        return self._execute(
            f"UPDATE {self.table} SET {assignments} WHERE uri = ?",
            [row[c] for c in fields] + [record.uri],
        )

    def upsert(self, record: CacheRecord) -> CacheRecord:
        """Insert the record, or overwrite it if the uri exists.

        Runs as a single statement so concurrent writers cannot interleave
        between the existence check and the write.
        """
        row = record.to_row()
        placeholders = ", ".join("?" for _ in COLUMNS)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in COLUMNS if c != "uri")
        self._execute(
            f"INSERT INTO {self.table} ({', '.join(COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(uri) DO UPDATE SET {assignments}",
            [row[c] for c in COLUMNS],
        )
        return record

    def exists(self, uri: str) -> bool:
        rows = self._query(f"SELECT 1 FROM {self.table} WHERE uri = ? LIMIT 1", [uri])
        return len(rows) > 0

    def get(self, uri: str) -> Optional[CacheRecord]:
        """Get the record for a uri.

        Returns:
            CacheRecord, or None if not cached
        """
        rows = self._query(
            f"SELECT {', '.join(COLUMNS)} FROM {self.table} WHERE uri = ?", [uri]
        )
        if not rows:
            return None
        return CacheRecord.from_row(rows[0])

    def list_all(self) -> List[CacheRecord]:
        """Get all records, ordered by uri."""
        rows = self._query(f"SELECT {', '.join(COLUMNS)} FROM {self.table} ORDER BY uri")
        return [CacheRecord.from_row(row) for row in rows]

    def delete(self, uri: str) -> int:
        """Delete the record for a uri.

        Returns:
            Number of records removed (0 or 1)
        """
        return self._execute(f"DELETE FROM {self.table} WHERE uri = ?", [uri])

    def clear(self) -> int:
        """Delete every record.

        Returns:
            Number of records removed
        """
        return self._execute(f"DELETE FROM {self.table}")

    def count(self) -> int:
        rows = self._query(f"SELECT COUNT(*) FROM {self.table}")
        return int(rows[0][0])
