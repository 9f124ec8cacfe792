"""
SQLite storage provider.

Stores one row per devlog entry with the nested structures (notes,
context, AI context, references) as JSON text columns. Used standalone
for local storage and as the cache half of the hybrid provider.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from ..config import SQLiteConfig
from ..exceptions import InvalidIdentifierError, StorageConnectionError, StorageIOError
from ..models import (
    DevlogEntry,
    DevlogFilter,
    DevlogStats,
    format_timestamp,
    parse_devlog_id,
)
from .base import StorageProvider

logger = logging.getLogger(__name__)


# Columns in read order; JSON columns hold serialized nested structures
DEVLOG_COLUMNS = (
    "id",
    "key",
    "title",
    "type",
    "description",
    "status",
    "priority",
    "created_at",
    "updated_at",
    "assignee",
    "notes",
    "files",
    "related_devlogs",
    "context",
    "ai_context",
    "external_references",
)

JSON_COLUMNS = frozenset(
    {"notes", "files", "related_devlogs", "context", "ai_context", "external_references"}
)

_SELECT = f"SELECT {', '.join(DEVLOG_COLUMNS)} FROM devlog_entries"


def _fold(value: str | None) -> str:
    return value.lower() if value else ""


def _notes_contain(notes: str | None, needle: str) -> bool:
    """Match ``needle`` against decoded note content, not the JSON text."""
    if not notes:
        return False
    try:
        decoded = json.loads(notes)
    except ValueError:
        return False
    return any(
        needle in _fold(note.get("content"))
        for note in decoded or []
        if isinstance(note, dict)
    )


class SQLiteStorageProvider(StorageProvider):
    """
    SQLite-backed devlog storage.

    Features:
    - Single file database (or ``:memory:``)
    - Auto-increment ids that are never reused
    - Explicit ids accepted (the hybrid cache mirrors remote ids)
    - Indexed filtering on status, type, priority, assignee and dates
    """

    def __init__(self, config: SQLiteConfig | None = None):
        self.config = config or SQLiteConfig()
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteStorageProvider:
        """Create and initialize the provider."""
        provider = cls(config)
        await provider.initialize()
        return provider

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        if self._initialized:
            return

        db_path = str(self.config.file_path)
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            self.conn = await aiosqlite.connect(db_path, **self.config.options)
            await self.conn.create_function("devlog_fold", 1, _fold, deterministic=True)
            await self.conn.create_function(
                "devlog_notes_contain", 2, _notes_contain, deterministic=True
            )

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS devlog_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT NOT NULL,
                    title TEXT NOT NULL,
                    type TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'new',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    assignee TEXT,
                    notes TEXT,
                    files TEXT,
                    related_devlogs TEXT,
                    context TEXT,
                    ai_context TEXT,
                    external_references TEXT
                )
            """)

            for column in ("status", "type", "priority", "assignee", "created_at", "updated_at"):
                await self.conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_devlog_{column} ON devlog_entries({column})"
                )

            await self.conn.commit()
            self._initialized = True
            logger.info(f"SQLite storage initialized: {db_path}")

        except Exception as e:
            if self.conn is not None:
                await self.conn.close()
                self.conn = None
            raise StorageConnectionError(db_path, e) from e

    async def dispose(self) -> None:
        """Close the SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    def _require_conn(self, operation: str) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError(operation, cause=RuntimeError("Not initialized"))
        return self.conn

    # =========================================================================
    # Single-entry operations
    # =========================================================================

    async def exists(self, devlog_id: Any) -> bool:
        conn = self._require_conn("exists")
        number = parse_devlog_id(devlog_id)
        if number is None:
            return False

        async with conn.execute("SELECT 1 FROM devlog_entries WHERE id = ?", (number,)) as cursor:
            return await cursor.fetchone() is not None

    async def get(self, devlog_id: Any) -> DevlogEntry | None:
        conn = self._require_conn("get")
        number = parse_devlog_id(devlog_id)
        if number is None:
            return None

        async with conn.execute(f"{_SELECT} WHERE id = ?", (number,)) as cursor:
            row = await cursor.fetchone()
            return self._row_to_entry(row) if row else None

    async def save(self, entry: DevlogEntry, *, touch: bool = True) -> None:
        conn = self._require_conn("save")
        if touch or entry.created_at is None or entry.updated_at is None:
            entry.touch()

        values = self._entry_to_row(entry)

        if entry.id is None:
            columns = DEVLOG_COLUMNS[1:]
            cursor = await conn.execute(
                f"INSERT INTO devlog_entries ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                values[1:],
            )
            entry.id = cursor.lastrowid
            await cursor.close()
        else:
            updates = ", ".join(f"{c} = excluded.{c}" for c in DEVLOG_COLUMNS[1:])
            await conn.execute(
                f"INSERT INTO devlog_entries ({', '.join(DEVLOG_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in DEVLOG_COLUMNS)}) "
                f"ON CONFLICT (id) DO UPDATE SET {updates}",
                values,
            )

        await conn.commit()
        logger.debug(f"Saved devlog {entry.id}: {entry.title}")

    async def delete(self, devlog_id: Any) -> None:
        conn = self._require_conn("delete")
        number = parse_devlog_id(devlog_id)
        if number is None:
            raise InvalidIdentifierError(devlog_id, operation="delete")

        await conn.execute("DELETE FROM devlog_entries WHERE id = ?", (number,))
        await conn.commit()

    async def get_next_id(self) -> int:
        conn = self._require_conn("get_next_id")
        async with conn.execute(
            "SELECT MAX(value) FROM ("
            " SELECT seq AS value FROM sqlite_sequence WHERE name = 'devlog_entries'"
            " UNION ALL SELECT MAX(id) FROM devlog_entries"
            ")"
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0] or 0) + 1

    # =========================================================================
    # Queries
    # =========================================================================

    async def list(self, devlog_filter: DevlogFilter | None = None) -> list[DevlogEntry]:
        conn = self._require_conn("list")

        where_parts: list[str] = []
        params: list[Any] = []

        if devlog_filter:
            for column, values in (
                ("status", devlog_filter.status),
                ("type", devlog_filter.type),
                ("priority", devlog_filter.priority),
            ):
                if values:
                    where_parts.append(f"{column} IN ({', '.join('?' for _ in values)})")
                    params.extend(v.value for v in values)

            if devlog_filter.assignee:
                where_parts.append("assignee = ?")
                params.append(devlog_filter.assignee)

            lower = devlog_filter.lower_bound()
            if lower:
                where_parts.append("created_at >= ?")
                params.append(format_timestamp(lower))

            upper = devlog_filter.upper_bound()
            if upper:
                where_parts.append("created_at <= ?")
                params.append(format_timestamp(upper))

        query = _SELECT
        if where_parts:
            query += " WHERE " + " AND ".join(where_parts)
        query += " ORDER BY updated_at DESC, id DESC"

        async with conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def search(self, query: str) -> list[DevlogEntry]:
        """Case-insensitive substring search over title, description and notes."""
        conn = self._require_conn("search")
        needle = _fold(query)

        # LIKE folds ASCII only and would see the notes as escaped JSON
        async with conn.execute(
            f"{_SELECT} WHERE instr(devlog_fold(title), ?) > 0 "
            "OR instr(devlog_fold(description), ?) > 0 "
            "OR devlog_notes_contain(notes, ?) "
            "ORDER BY updated_at DESC, id DESC",
            (needle, needle, needle),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def get_stats(self) -> DevlogStats:
        conn = self._require_conn("get_stats")
        stats = DevlogStats()

        async with conn.execute("SELECT COUNT(*) FROM devlog_entries") as cursor:
            row = await cursor.fetchone()
            stats.total_entries = row[0] if row else 0

        for column, counts in (
            ("status", stats.by_status),
            ("type", stats.by_type),
            ("priority", stats.by_priority),
        ):
            async with conn.execute(
                f"SELECT {column}, COUNT(*) FROM devlog_entries GROUP BY {column}"
            ) as cursor:
                for value, count in await cursor.fetchall():
                    counts[value] = count

        return stats

    # =========================================================================
    # Row conversion
    # =========================================================================

    def _entry_to_row(self, entry: DevlogEntry) -> tuple[Any, ...]:
        data = entry.to_dict()
        return tuple(
            json.dumps(data[c], ensure_ascii=False) if c in JSON_COLUMNS else data[c]
            for c in DEVLOG_COLUMNS
        )

    def _row_to_entry(self, row: Any) -> DevlogEntry:
        data: dict[str, Any] = {}
        for column, value in zip(DEVLOG_COLUMNS, row, strict=True):
            if column in JSON_COLUMNS:
                data[column] = json.loads(value) if value else None
            else:
                data[column] = value
        return DevlogEntry.from_dict(data)
