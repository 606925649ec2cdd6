"""Base repository class."""

import sqlite3

import aiosqlite

from ..errors import StoreUnavailable


class BaseRepository:
    """Base class for all repositories; store failures surface as StoreUnavailable."""

    def __init__(self, connection: aiosqlite.Connection):
        self.conn = connection

    async def _execute(self, query: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a query and return cursor (caller must fetch before committing)."""
        try:
            return await self.conn.execute(query, params)
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailable(f"Query failed: {e}") from e

    async def _execute_and_commit(self, query: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a query and commit."""
        try:
            cursor = await self.conn.execute(query, params)
            await self.conn.commit()
            return cursor
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailable(f"Write failed: {e}") from e

    async def _fetchone(self, query: str, params: tuple = ()) -> aiosqlite.Row | None:
        """Execute query and fetch one row."""
        try:
            cursor = await self.conn.execute(query, params)
            return await cursor.fetchone()
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailable(f"Query failed: {e}") from e

    async def _fetchall(self, query: str, params: tuple = ()) -> list[aiosqlite.Row]:
        """Execute query and fetch all rows."""
        try:
            cursor = await self.conn.execute(query, params)
            return await cursor.fetchall()
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailable(f"Query failed: {e}") from e

    async def _commit(self) -> None:
        try:
            await self.conn.commit()
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailable(f"Commit failed: {e}") from e
