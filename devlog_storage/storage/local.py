"""
Local JSON file storage.

Stores each devlog entry as a pretty-printed JSON file, with an index
file mapping ids to filenames and tracking the id counter.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..config import JsonStorageConfig
from ..exceptions import InvalidIdentifierError, StorageIOError
from ..models import (
    DevlogEntry,
    DevlogFilter,
    DevlogStats,
    compute_stats,
    entry_matches_text,
    parse_devlog_id,
    title_to_key,
)
from .base import StorageProvider

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
ENTRIES_DIR = "entries"


class LocalJsonStorageProvider(StorageProvider):
    """JSON file-based devlog storage.

    Directory structure:
    {directory}/
      index.json              {"last_id": N, "entries": {"<id>": "<filename>"}}
      entries/
        {id:0Np}-{key}.json
    """

    def __init__(self, config: JsonStorageConfig | None = None) -> None:
        self.config = config or JsonStorageConfig()
        self.base_path = Path(self.config.directory)
        self.entries_path = self.base_path / ENTRIES_DIR
        self.index_path = self.base_path / INDEX_FILE
        self._lock = asyncio.Lock()

    def _filename(self, entry: DevlogEntry) -> str:
        # Keys loaded from disk or remote metadata are untrusted; re-slug them
        slug = title_to_key(entry.key or "") or "untitled"
        return f"{entry.id:0{self.config.min_padding}d}-{slug}.json"

    async def initialize(self) -> None:
        try:
            await aiofiles.os.makedirs(self.entries_path, exist_ok=True)
            if not await aiofiles.os.path.exists(self.index_path):
                await self._write_index({"last_id": 0, "entries": {}})
        except OSError as e:
            raise StorageIOError("initialize", str(self.base_path), e) from e

    async def dispose(self) -> None:
        pass

    # Index

    async def _read_index(self) -> dict[str, Any]:
        if not await aiofiles.os.path.exists(self.index_path):
            return {"last_id": 0, "entries": {}}
        async with aiofiles.open(self.index_path, encoding="utf-8") as f:
            index = json.loads(await f.read())
        index.setdefault("last_id", 0)
        index.setdefault("entries", {})
        return index

    async def _write_index(self, index: dict[str, Any]) -> None:
        await self._write_json(self.index_path, index)

    async def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise StorageIOError("write", str(path), e) from e

    async def _read_entry(self, filename: str) -> DevlogEntry | None:
        path = self.entries_path / filename
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                return DevlogEntry.from_dict(json.loads(await f.read()))
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Skipping corrupted devlog file {path}: {e}")
            return None

    # Single-entry operations

    async def exists(self, devlog_id: Any) -> bool:
        return await self.get(devlog_id) is not None

    async def get(self, devlog_id: Any) -> DevlogEntry | None:
        number = parse_devlog_id(devlog_id)
        if number is None:
            return None
        index = await self._read_index()
        filename = index["entries"].get(str(number))
        if filename is None:
            return None
        return await self._read_entry(filename)

    async def save(self, entry: DevlogEntry, *, touch: bool = True) -> None:
        if touch or entry.created_at is None or entry.updated_at is None:
            entry.touch()

        async with self._lock:
            index = await self._read_index()
            if entry.id is None:
                entry.id = index["last_id"] + 1
            index["last_id"] = max(index["last_id"], entry.id)

            filename = self._filename(entry)
            await self._write_json(self.entries_path / filename, entry.to_dict())

            # A key change renames the file
            previous = index["entries"].get(str(entry.id))
            if previous and previous != filename:
                await self._remove_file(previous)

            index["entries"][str(entry.id)] = filename
            await self._write_index(index)

    async def delete(self, devlog_id: Any) -> None:
        number = parse_devlog_id(devlog_id)
        if number is None:
            raise InvalidIdentifierError(devlog_id, operation="delete")

        async with self._lock:
            index = await self._read_index()
            filename = index["entries"].pop(str(number), None)
            if filename is None:
                return
            await self._write_index(index)
            await self._remove_file(filename)

    async def _remove_file(self, filename: str) -> None:
        try:
            await aiofiles.os.remove(self.entries_path / filename)
        except FileNotFoundError:
            pass

    async def get_next_id(self) -> int:
        index = await self._read_index()
        return index["last_id"] + 1

    # Queries

    async def list(self, devlog_filter: DevlogFilter | None = None) -> list[DevlogEntry]:
        index = await self._read_index()
        entries: list[DevlogEntry] = []
        for filename in index["entries"].values():
            entry = await self._read_entry(filename)
            if entry is None:
                continue
            if devlog_filter is None or devlog_filter.matches(entry):
                entries.append(entry)

        entries.sort(key=lambda e: (e.updated_at is not None, e.updated_at, e.id), reverse=True)
        return entries

    async def search(self, query: str) -> list[DevlogEntry]:
        return [e for e in await self.list() if entry_matches_text(e, query)]

    async def get_stats(self) -> DevlogStats:
        return compute_stats(await self.list())
