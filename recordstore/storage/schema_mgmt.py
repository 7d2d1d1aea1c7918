"""
Schema management for the record database.

The on-disk schema version is kept in ``PRAGMA user_version``. Each migration
runs in its own write transaction together with the version bump, so a
process killed mid-upgrade leaves the file at the previous version.
"""

from typing import NamedTuple

from recordstore.observability.logger import get_logger
from .connection import StoreConnection

logger = get_logger(__name__)

RECORD_TABLE = "record"


class Migration(NamedTuple):
    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        1,
        "create record table",
        (
            f"""
            CREATE TABLE IF NOT EXISTS {RECORD_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entered_at TEXT NOT NULL,
                updated_at TEXT,
                schema_version TEXT NOT NULL,
                data TEXT,
                occurred_from TEXT NOT NULL,
                occurred_to TEXT NOT NULL,
                latitude REAL,
                longitude REAL,
                weather TEXT,
                light TEXT,
                CHECK ((latitude IS NULL) = (longitude IS NULL))
            )
            """,
        ),
    ),
    Migration(
        2,
        "index record entry time for newest-first listings",
        (f"CREATE INDEX IF NOT EXISTS idx_record_entered_at ON {RECORD_TABLE} (entered_at DESC, id DESC)",),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


class SchemaVersionError(RuntimeError):
    """The database was written by a newer schema than this code knows."""


class SchemaManager:
    """
    Applies pending migrations to the record database.

    Handles:
    - Reading the current schema version
    - Refusing databases from newer app versions
    - Applying pending migrations in order
    """

    def __init__(self, connection: StoreConnection):
        """
        Initialize schema manager.

        Args:
            connection: Open store connection
        """
        self.connection = connection

    def current_version(self) -> int:
        return int(self.connection.scalar("PRAGMA user_version") or 0)

    def pending_migrations(self) -> list[Migration]:
        """
        List migrations not yet applied.

        Raises:
            SchemaVersionError: If the database is newer than LATEST_VERSION
        """
        current = self.current_version()
        if current > LATEST_VERSION:
            raise SchemaVersionError(
                f"database schema version {current} is newer than supported version {LATEST_VERSION}"
            )
        return [m for m in MIGRATIONS if m.version > current]

    def migrate(self) -> int:
        """
        Apply all pending migrations.

        Returns:
            Number of migrations applied
        """
        pending = self.pending_migrations()
        for migration in pending:
            with self.connection.transaction() as conn:
                for statement in migration.statements:
                    conn.execute(statement)
                # user_version does not accept bound parameters
                conn.execute(f"PRAGMA user_version = {int(migration.version)}")
            logger.info(
                f"Applied schema migration {migration.version}: {migration.description}",
                extra={"operation": "migrate", "schema_version": migration.version},
            )
        return len(pending)

    def list_columns(self, table: str = RECORD_TABLE) -> list[str]:
        """
        List column names of a table, in declaration order.

        Args:
            table: Table name

        Returns:
            Column names (empty if the table does not exist)
        """
        rows = self.connection.execute_query(
            "SELECT name FROM pragma_table_info(?)", (table,)
        )
        return [row["name"] for row in rows]
