"""
Remote row stores shared across devices (translation and content caches).
"""

import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import asyncpg

from shared.errors import StorageError, ValidationError
from shared.logging import get_logger

Row = Dict[str, Any]
Order = Tuple[str, bool]  # (column, ascending)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RowStore(Protocol):
    """Rows keyed by one or more columns; upserts are last-write-wins."""

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]: ...

    async def upsert(self, table: str, row: Row, conflict_keys: Sequence[str]) -> None: ...

    async def delete(self, table: str, filters: Dict[str, Any]) -> int: ...

    async def search(
        self,
        table: str,
        column: str,
        term: str,
        language: str = "english",
        limit: int = 50,
    ) -> List[Row]: ...


def _matches(row: Row, filters: Optional[Dict[str, Any]]) -> bool:
    return all(row.get(key) == value for key, value in (filters or {}).items())


class InMemoryRowStore:
    """Dictionary-backed row store for local runs and tests."""

    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        self._tables: Dict[str, List[Row]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        rows = [row for row in self._tables.get(table, []) if _matches(row, filters)]
        if order is not None:
            column, ascending = order
            rows.sort(key=lambda row: row.get(column), reverse=not ascending)
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        if columns:
            return [{column: row.get(column) for column in columns} for row in rows]
        return [dict(row) for row in rows]

    async def upsert(self, table: str, row: Row, conflict_keys: Sequence[str]) -> None:
        rows = self._tables.setdefault(table, [])
        key = {column: row.get(column) for column in conflict_keys}
        for index, existing in enumerate(rows):
            if _matches(existing, key):
                rows[index] = {**existing, **row}
                return
        rows.append(dict(row))

    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        rows = self._tables.get(table, [])
        kept = [row for row in rows if not _matches(row, filters)]
        self._tables[table] = kept
        return len(rows) - len(kept)

    async def search(
        self,
        table: str,
        column: str,
        term: str,
        language: str = "english",
        limit: int = 50,
    ) -> List[Row]:
        needle = term.lower()
        rows = [
            dict(row) for row in self._tables.get(table, [])
            if needle in str(row.get(column, "")).lower()
        ]
        return rows[:limit]


class PostgresRowStore:
    """asyncpg-backed row store."""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("content.row_store.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Create the connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30
            )
            self.logger.info("PostgreSQL row store started")
        except Exception as e:
            self.logger.error("Failed to start PostgreSQL row store", error=str(e))
            raise StorageError("postgres", str(e))

    async def stop(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL row store stopped")

    @staticmethod
    def _ident(name: str) -> str:
        if not _IDENTIFIER.match(name):
            raise ValidationError(f"Invalid identifier: {name!r}")
        return f'"{name}"'

    def _where(self, filters: Optional[Dict[str, Any]], params: List[Any]) -> str:
        clauses = []
        for column, value in (filters or {}).items():
            params.append(value)
            clauses.append(f"{self._ident(column)} = ${len(params)}")
        return f"WHERE {' AND '.join(clauses)}" if clauses else ""

    async def _fetch(self, sql: str, params: List[Any]) -> List[Row]:
        if self.pool is None:
            raise StorageError("postgres", "row store not started")
        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(sql, *params)
        except asyncpg.PostgresError as e:
            raise StorageError("postgres", str(e))
        return [dict(record) for record in records]

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        params: List[Any] = []
        selected = ", ".join(self._ident(column) for column in columns) if columns else "*"
        sql = f"SELECT {selected} FROM {self._ident(table)} {self._where(filters, params)}"
        if order is not None:
            column, ascending = order
            sql += f" ORDER BY {self._ident(column)} {'ASC' if ascending else 'DESC'}"
        if limit is not None:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"
        if offset:
            params.append(offset)
            sql += f" OFFSET ${len(params)}"
        return await self._fetch(sql, params)

    async def upsert(self, table: str, row: Row, conflict_keys: Sequence[str]) -> None:
        columns = list(row.keys())
        placeholders = ", ".join(f"${index}" for index in range(1, len(columns) + 1))
        updates = [column for column in columns if column not in conflict_keys]
        sql = (
            f"INSERT INTO {self._ident(table)} ({', '.join(self._ident(c) for c in columns)}) "
            f"VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(self._ident(c) for c in conflict_keys)}) "
        )
        if updates:
            sql += "DO UPDATE SET " + ", ".join(
                f"{self._ident(c)} = EXCLUDED.{self._ident(c)}" for c in updates
            )
        else:
            sql += "DO NOTHING"
        await self._fetch(sql, [row[column] for column in columns])

    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        params: List[Any] = []
        sql = f"DELETE FROM {self._ident(table)} {self._where(filters, params)} RETURNING 1"
        return len(await self._fetch(sql, params))

    async def search(
        self,
        table: str,
        column: str,
        term: str,
        language: str = "english",
        limit: int = 50,
    ) -> List[Row]:
        target = self._ident(column)
        sql = (
            f"SELECT * FROM {self._ident(table)} "
            f"WHERE to_tsvector($1::regconfig, {target}) @@ plainto_tsquery($1::regconfig, $2) "
            f"LIMIT $3"
        )
        try:
            return await self._fetch(sql, [language, term, limit])
        except StorageError as e:
            self.logger.warning("Full-text search failed, falling back to ILIKE", table=table, error=str(e))
            sql = f"SELECT * FROM {self._ident(table)} WHERE {target} ILIKE $1 LIMIT $2"
            return await self._fetch(sql, [f"%{term}%", limit])
