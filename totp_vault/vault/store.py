"""
VaultStore — Storage facade selecting the MongoDB or local file backend.

Provides the public API for persistence:
- ``initialize()`` — pick the backend once per process
- ``read()`` / ``write(snapshot)`` — whole-snapshot access
- ``transaction(user_id)`` — read-modify-write of one user's vault

Concurrency Note:
    ``read`` followed by ``write`` persists the whole snapshot read earlier,
    so two callers doing this concurrently lose one another's changes.
    ``transaction`` serializes callers per user and persists only that
    user's entry, which keeps concurrent updates to different users intact.
"""
import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..data import Snapshot, Vault
from ..exceptions import StorageError
from .backend import StorageBackend
from .config import VaultConfig
from .file_backend import FileBackend
from .remote_backend import RemoteBackend

logger = logging.getLogger("totp_vault.vault")


class VaultStore:
    """Owns the active storage backend for the process lifetime.

    The backend is chosen once by :meth:`initialize`: MongoDB when it is
    configured and reachable, the local JSON file otherwise. Callers should
    not assume which one is active.
    """

    def __init__(
        self,
        config: Optional[VaultConfig] = None,
        *,
        file_backend: Optional[FileBackend] = None,
        remote_backend: Optional[RemoteBackend] = None,
    ):
        self._config = config or VaultConfig()
        self._file = file_backend or FileBackend(self._config.data_file)
        self._remote = remote_backend
        if self._remote is None and self._config.remote_enabled:
            self._remote = RemoteBackend(self._config)
        self._backend: Optional[StorageBackend] = None
        self._user_locks: dict[str, asyncio.Lock] = {}
        # transactions holding or waiting on each user lock
        self._lock_refs: Counter = Counter()

    def __repr__(self) -> str:
        return f"<VaultStore mode={self.mode}>"

    @property
    def backend(self) -> StorageBackend:
        if self._backend is None:
            raise StorageError("VaultStore.initialize() has not been called")
        return self._backend

    @property
    def mode(self) -> Optional[str]:
        """``"remote"``, ``"file"``, or None before initialization."""
        return self._backend.name if self._backend is not None else None

    async def initialize(self) -> StorageBackend:
        """Select the backend; later calls return the same one.

        Returns:
            The selected backend.
        """
        if self._backend is not None:
            return self._backend
        if self._remote is not None and await self._remote.initialize():
            self._backend = self._remote
        else:
            if self._remote is None:
                logger.info("Storage mode: local file JSON.")
            elif self._config.remote_enabled:
                logger.warning("Using local file store at %s.", self._file.path)
            await self._file.ensure()
            self._backend = self._file
        return self._backend

    async def close(self) -> None:
        if self._remote is not None:
            await self._remote.close()

    async def read(self) -> Snapshot:
        return await self.backend.read()

    async def write(self, snapshot: Snapshot) -> list[str]:
        return await self.backend.write(snapshot)

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[Vault]:
        """Yield one user's vault and persist it when the block exits.

        Transactions for the same user run one at a time. Nothing is
        written if the block raises.

        Args:
            user_id: Owner of the vault.

        Yields:
            The user's Vault (empty if the user has none yet).
        """
        backend = self.backend
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._lock_refs[user_id] += 1
        try:
            async with lock:
                vault = await backend.read_user(user_id)
                snapshot = vault.to_dict()
                yield vault
                if vault.to_dict() != snapshot:
                    await backend.write_user(user_id, vault)
        finally:
            self._lock_refs[user_id] -= 1
            if not self._lock_refs[user_id]:
                del self._lock_refs[user_id]
                del self._user_locks[user_id]
