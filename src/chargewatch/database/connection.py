"""Database connection management."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

import aiosqlite

from ..errors import StoreUnavailable

SCHEMA_PATH = Path(__file__).with_name("schema.sql")
REQUIRED_TABLES = ("device", "connector", "frame")


def _adapt_datetime(val: datetime) -> str:
    """Convert datetime to ISO format string for SQLite storage."""
    return val.isoformat()


def _convert_datetime(val: bytes) -> datetime:
    """Convert ISO format string from SQLite to datetime."""
    return datetime.fromisoformat(val.decode())


# Only device.last_seen and the bookkeeping columns are declared DATETIME.
# Frame timestamps are TEXT so a bad value fails one row, not the whole query.
sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("DATETIME", _convert_datetime)

logger = logging.getLogger(__name__)


class Database:
    """
    Manages the SQLite connection holding the frame log and device metadata.

    With ``read_only`` the file is opened through a ``mode=ro`` URI and the
    connection is marked ``query_only``: the reconstructor then only ever reads
    a log that the OCPP server keeps appending to.
    """

    def __init__(self, db_path: str = "chargewatch.db", read_only: bool = False):
        self.db_path = db_path
        self.read_only = read_only
        self.connection: aiosqlite.Connection | None = None

    async def connect(self) -> aiosqlite.Connection:
        """Open the connection on first use and return it."""
        if self.connection is not None:
            return self.connection

        try:
            if self.read_only:
                uri = f"{Path(self.db_path).resolve().as_uri()}?mode=ro"
                connection = await aiosqlite.connect(
                    uri, uri=True, detect_types=sqlite3.PARSE_DECLTYPES
                )
                await connection.execute("PRAGMA query_only=ON")
            else:
                connection = await aiosqlite.connect(
                    self.db_path, detect_types=sqlite3.PARSE_DECLTYPES
                )
                await connection.execute("PRAGMA journal_mode=WAL")
                await connection.execute("PRAGMA synchronous=NORMAL")
                await connection.execute("PRAGMA foreign_keys=ON")
            await connection.execute("PRAGMA temp_store=MEMORY")
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open database {self.db_path}: {e}") from e

        connection.row_factory = aiosqlite.Row
        self.connection = connection
        logger.debug(f"Connected to {self.db_path} (read_only={self.read_only})")
        return connection

    async def disconnect(self):
        """Close database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def missing_tables(self) -> list[str]:
        """Names of the tables the reconstructor needs that do not exist yet."""
        conn = await self.connect()
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        existing = {row["name"] for row in await cursor.fetchall()}
        return [table for table in REQUIRED_TABLES if table not in existing]

    async def initialize_schema(self, schema_path: str | Path = SCHEMA_PATH):
        """
        Create the frame and device tables if they don't exist yet.

        A read-only database cannot be initialized; it is only checked, and
        StoreUnavailable is raised if a table is missing.
        """
        missing = await self.missing_tables()
        if not missing:
            logger.debug("Database schema already exists, skipping initialization")
            return

        if self.read_only:
            raise StoreUnavailable(
                f"Database {self.db_path} has no {', '.join(missing)} table(s)"
            )

        schema_file = Path(schema_path)
        if not schema_file.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        conn = await self.connect()
        await conn.executescript(schema_file.read_text())
        await conn.commit()
        logger.info(f"Created tables {', '.join(missing)} in {self.db_path}")

    async def __aenter__(self):
        """Async context manager entry."""
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
