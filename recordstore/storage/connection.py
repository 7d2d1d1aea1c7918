"""
SQLite handle management for the record store

One writable and one read-only connection to the same database file are
opened once and held for the lifetime of the store. WAL journaling lets a
long listing on the reader run beside a commit on the writer without either
blocking the other.
"""
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from recordstore.observability.logger import get_logger

logger = get_logger(__name__)


class StoreConnection:
    """
    Writer/reader connection pair for a single SQLite database.

    Writes go through ``transaction()``, which serializes writers with a lock
    and wraps the block in ``BEGIN IMMEDIATE`` ... ``COMMIT``/``ROLLBACK``.
    Reads go through ``execute_query()``/``stream_query()`` on the reader.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        in_memory: bool = False,
        busy_timeout: float = 5.0,
        journal_mode: str = "WAL",
        synchronous: str = "FULL",
    ) -> None:
        """
        Initialize connection settings (nothing is opened yet)

        Args:
            db_path: Database file (ignored when in_memory is True)
            in_memory: Use a private shared-cache in-memory database
            busy_timeout: Seconds to wait for a lock before failing
            journal_mode: SQLite journal mode for file databases
            synchronous: SQLite synchronous level

        Raises:
            ValueError: If neither db_path nor in_memory is given
        """
        if not in_memory and not db_path:
            raise ValueError("db_path is required unless in_memory is set")

        self.db_path = Path(db_path) if db_path and not in_memory else None
        self.in_memory = in_memory
        self.busy_timeout = busy_timeout
        self.journal_mode = journal_mode
        self.synchronous = synchronous

        self._writer: sqlite3.Connection | None = None
        self._reader: sqlite3.Connection | None = None
        self._write_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    def open(self) -> None:
        """
        Open the writer and reader handles.

        Raises:
            sqlite3.Error: If the database cannot be opened or configured
        """
        if self._writer is not None:
            return

        if self.in_memory:
            logger.warning("Record store is using an in-memory database. This should only happen in testing!")
            # both handles must share one named in-memory database
            target = f"file:recordstore-{uuid.uuid4().hex}?mode=memory&cache=shared"
            uri = True
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(self.db_path)
            uri = False

        writer = self._connect(target, uri)
        reader = None
        try:
            if not self.in_memory:
                mode = writer.execute(f"PRAGMA journal_mode={self.journal_mode}").fetchone()[0]
                if mode.upper() != self.journal_mode.upper():
                    logger.warning(f"Requested journal_mode={self.journal_mode}, database uses {mode}")
            writer.execute(f"PRAGMA synchronous={self.synchronous}")

            reader = self._connect(target, uri)
            reader.execute("PRAGMA query_only=ON")
        except sqlite3.Error:
            if reader is not None:
                reader.close()
            writer.close()
            raise

        self._writer = writer
        self._reader = reader
        logger.debug(f"Opened record database {target}")

    def _connect(self, target: str, uri: bool) -> sqlite3.Connection:
        conn = sqlite3.connect(
            target,
            timeout=self.busy_timeout,
            isolation_level=None,  # explicit BEGIN/COMMIT only
            check_same_thread=False,
            uri=uri,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout * 1000)}")
        return conn

    def close(self) -> None:
        """Close both handles"""
        for conn in (self._reader, self._writer):
            if conn is not None:
                conn.close()
        self._reader = None
        self._writer = None

    def _require_open(self) -> None:
        if self._writer is None:
            raise RuntimeError("Store connection is not open. Call open() first.")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside one write transaction on the writer handle.

        Commits when the block exits normally, rolls back in full otherwise.

        Yields:
            sqlite3.Connection: The writer connection

        Raises:
            TimeoutError: If another writer holds the lock past busy_timeout
            sqlite3.Error: On any database fault (after rollback)
        """
        self._require_open()
        if not self._write_lock.acquire(timeout=self.busy_timeout):
            raise TimeoutError(f"writer busy for more than {self.busy_timeout}s")
        try:
            self._writer.execute("BEGIN IMMEDIATE")
            try:
                yield self._writer
                self._writer.execute("COMMIT")
            except BaseException:
                if self._writer.in_transaction:
                    self._writer.execute("ROLLBACK")
                raise
        finally:
            self._write_lock.release()

    def execute_query(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        """
        Execute a SELECT on the reader and return all rows

        Args:
            query: SQL SELECT query
            params: Query parameters

        Returns:
            List of rows
        """
        self._require_open()
        cur = self._reader.execute(query, params)
        try:
            return cur.fetchall()
        finally:
            cur.close()

    def stream_query(self, query: str, params: tuple = (), batch_size: int = 100) -> Iterator[sqlite3.Row]:
        """
        Lazily yield rows of a SELECT on the reader.

        The statement keeps one read snapshot until the iterator is exhausted
        or closed, so rows committed meanwhile are not mixed in.

        Args:
            query: SQL SELECT query
            params: Query parameters
            batch_size: Rows fetched per step

        Yields:
            sqlite3.Row
        """
        self._require_open()
        cur = self._reader.execute(query, params)
        try:
            while True:
                rows = cur.fetchmany(batch_size)
                if not rows:
                    break
                yield from rows
        finally:
            cur.close()

    def scalar(self, query: str, params: tuple = ()) -> Any:
        """Execute a SELECT on the reader and return the first column of the first row"""
        rows = self.execute_query(query, params)
        return rows[0][0] if rows else None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
