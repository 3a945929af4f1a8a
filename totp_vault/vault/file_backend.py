"""
FileBackend — Crash-consistent local JSON store for the whole Snapshot.

Layout: a single JSON object mapping user identifier to that user's
vault (``{"secrets": {...}, "defaultLabel": ...}``).

Durability:
- writes go to ``<artifact>.tmp`` in the same directory and are renamed
  over the artifact, so the artifact is always a complete snapshot.
- an artifact that cannot be parsed is copied to
  ``<artifact>.broken.<unixMillis>`` and replaced by an empty store.
"""
import os
import time
import asyncio
import logging
from typing import Any

import orjson
import aiofiles
import aiofiles.os

from ..data import Snapshot, Vault, snapshot_from_dict, snapshot_to_dict
from .backend import StorageBackend
from .config import DEFAULT_DATA_FILE

logger = logging.getLogger("totp_vault.vault")

_EMPTY_STORE = orjson.dumps({}, option=orjson.OPT_INDENT_2)


def _dumps(data: Any) -> bytes:
    return orjson.dumps(data, option=orjson.OPT_INDENT_2)


class FileBackend(StorageBackend):
    """Local JSON file persistence."""

    name = 'file'

    def __init__(self, path: str = DEFAULT_DATA_FILE):
        self.path = os.fspath(path)
        self.tmp_path = f"{self.path}.tmp"
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<FileBackend path={self.path!r}>"

    # ------------------------------------------------------------------
    # Low-level helpers (callers hold the lock)
    # ------------------------------------------------------------------

    async def ensure(self) -> None:
        """Create the directory and an empty store if they are missing."""
        directory = os.path.dirname(self.path)
        if directory and not await aiofiles.os.path.isdir(directory):
            await aiofiles.os.makedirs(directory, exist_ok=True)
        if not await aiofiles.os.path.exists(self.path):
            async with aiofiles.open(self.path, "wb") as f:
                await f.write(_EMPTY_STORE)

    async def _backup_path(self) -> str:
        millis = int(time.time() * 1000)
        candidate = f"{self.path}.broken.{millis}"
        # never overwrite an earlier backup
        while await aiofiles.os.path.exists(candidate):
            millis += 1
            candidate = f"{self.path}.broken.{millis}"
        return candidate

    async def _recover(self, raw: bytes) -> None:
        """Keep the unreadable bytes in a backup and reset the store."""
        backup = await self._backup_path()
        try:
            async with aiofiles.open(backup, "xb") as f:
                await f.write(raw)
        except OSError as err:
            logger.error("Failed to backup broken store file %s: %s", self.path, err)
        async with aiofiles.open(self.path, "wb") as f:
            await f.write(_EMPTY_STORE)
        logger.error(
            "Store file was corrupted. Reinitialized empty store. Backup: %s",
            backup
        )

    async def _load(self) -> dict[str, Any]:
        await self.ensure()
        async with aiofiles.open(self.path, "rb") as f:
            raw = await f.read()
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            await self._recover(raw)
            return {}
        return data

    async def _dump(self, data: dict[str, Any]) -> None:
        await self.ensure()
        async with aiofiles.open(self.tmp_path, "wb") as f:
            await f.write(_dumps(data))
            await f.flush()
            await asyncio.to_thread(os.fsync, f.fileno())
        await aiofiles.os.replace(self.tmp_path, self.path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read(self) -> Snapshot:
        """Load the whole snapshot, recovering from a corrupted file.

        Returns:
            The stored snapshot; empty if the file was missing or unreadable.
        """
        async with self._lock:
            return snapshot_from_dict(await self._load())

    async def write(self, snapshot: Snapshot) -> list[str]:
        """Atomically replace the store with snapshot."""
        async with self._lock:
            await self._dump(snapshot_to_dict(snapshot))
        return []

    async def read_user(self, user_id: str) -> Vault:
        async with self._lock:
            data = await self._load()
        return Vault.from_dict(data.get(user_id))

    async def write_user(self, user_id: str, vault: Vault) -> None:
        """Replace one user's entry, keeping every other entry as stored."""
        async with self._lock:
            data = await self._load()
            data[user_id] = vault.to_dict()
            await self._dump(data)
