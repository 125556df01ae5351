"""aiosqlite wrapper holding the conversation id cache and upload snapshots."""

from os import PathLike

import aiosqlite

from chatmigrate.db.schema import SCHEMA_SQL

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


class Database:
    """Single shared connection; every write commits immediately."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection

    @classmethod
    async def connect(cls, path: str | PathLike[str] = "chatmigrate.db") -> "Database":
        """Open the database, apply pragmas and create missing tables."""
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        for pragma in _PRAGMAS:
            await conn.execute(pragma)
        db = cls(conn)
        await db._ensure_schema()
        return db

    async def _ensure_schema(self) -> None:
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()

    async def execute(self, sql: str, params: tuple | None = None) -> None:
        """Run one write statement and commit it."""
        await self._conn.execute(sql, params or ())
        await self._conn.commit()

    async def replace_rows(self, delete_sql: str, insert_sql: str, rows: list[tuple]) -> None:
        """Swap a table's contents in one commit, so readers never see it half-filled."""
        await self._conn.execute(delete_sql)
        if rows:
            await self._conn.executemany(insert_sql, rows)
        await self._conn.commit()

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        async with self._conn.execute(sql, params or ()) as cursor:
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        async with self._conn.execute(sql, params or ()) as cursor:
            return list(await cursor.fetchall())

    async def close(self) -> None:
        await self._conn.close()
