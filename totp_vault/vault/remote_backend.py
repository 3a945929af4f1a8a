"""
RemoteBackend — MongoDB persistence, one document per user.

Document schema (vault fields flattened at the top level):
    {"userId": <id>, "secrets": {<label>: <envelope>}, "defaultLabel": <label>}

``userId`` carries a unique index, created on connect.

Connection policy:
    The first attempt uses the configured TLS mode (or the mode implied by
    the URI). If it fails and TLS was neither pinned by MONGODB_TLS nor
    mandated by the URI, exactly one more attempt is made with the opposite
    mode. If that fails too the backend stays uninitialized and the store
    falls back to the local file.
"""
import logging
from typing import Any, Callable, Optional

from pymongo import AsyncMongoClient, ReplaceOne
from pymongo.errors import BulkWriteError, PyMongoError

from ..data import Snapshot, Vault
from ..exceptions import StorageError
from .backend import StorageBackend
from .config import VaultConfig, uri_requires_tls

logger = logging.getLogger("totp_vault.vault")

USER_ID_FIELD = "userId"

# Anything raised while building a client or reaching the server.
_CONNECT_ERRORS = (PyMongoError, OSError, ValueError, TypeError)


def _document(user_id: str, vault: Vault) -> dict[str, Any]:
    return {USER_ID_FIELD: user_id, **vault.to_dict()}


class RemoteBackend(StorageBackend):
    """MongoDB-backed persistence."""

    name = 'remote'

    def __init__(
        self,
        config: VaultConfig,
        client_factory: Callable[..., Any] = AsyncMongoClient
    ):
        self._config = config
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._collection: Optional[Any] = None

    def __repr__(self) -> str:
        return (
            f"<RemoteBackend {self._config.mongodb_db}."
            f"{self._config.mongodb_collection} initialized={self.initialized}>"
        )

    @property
    def initialized(self) -> bool:
        return self._collection is not None

    @property
    def collection(self) -> Any:
        if self._collection is None:
            raise StorageError("Remote backend is not initialized")
        return self._collection

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self, tls: bool) -> Any:
        """Open a client with the given TLS mode and prepare the collection.

        Args:
            tls: Whether to connect over TLS.

        Returns:
            The vault collection handle.

        Raises:
            PyMongoError: If the server cannot be selected within the
                configured timeout or the index cannot be created.
        """
        options: dict[str, Any] = {
            "serverSelectionTimeoutMS": self._config.mongodb_server_selection_timeout_ms,
            "tls": tls,
        }
        if tls and self._config.mongodb_tls_allow_invalid_certificates:
            options["tlsAllowInvalidCertificates"] = True
        client = self._client_factory(self._config.mongodb_uri, **options)
        try:
            # force server selection, bounded by serverSelectionTimeoutMS
            await client.admin.command("ping")
            collection = client[self._config.mongodb_db][self._config.mongodb_collection]
            await collection.create_index(USER_ID_FIELD, unique=True)
        except Exception:
            await client.close()
            raise
        self._client = client
        self._collection = collection
        return collection

    def _may_flip_tls(self) -> bool:
        if self._config.tls_pinned:
            return False
        return not uri_requires_tls(self._config.mongodb_uri or "")

    async def initialize(self) -> bool:
        """Connect to MongoDB, flipping the TLS mode at most once.

        Returns:
            True if the backend is usable, False if storage must use the
            local file.
        """
        if not self._config.remote_enabled:
            logger.info("Storage mode: local file JSON.")
            return False
        if self.initialized:
            return True
        tls = self._config.effective_tls
        try:
            await self.connect(tls)
        except _CONNECT_ERRORS as err:
            if not self._may_flip_tls():
                logger.warning(
                    "MongoDB connection failed (tls=%s), fallback to local JSON store: %s",
                    tls, err
                )
                logger.warning(
                    "Tip: check MONGODB_TLS / MONGODB_TLS_ALLOW_INVALID_CERTIFICATES "
                    "if your server has TLS constraints."
                )
                return False
            logger.info(
                "MongoDB connection failed with tls=%s (%s); retrying with tls=%s.",
                tls, err, not tls
            )
            try:
                await self.connect(not tls)
            except _CONNECT_ERRORS as retry_err:
                logger.warning(
                    "MongoDB connection failed with tls=%s and tls=%s, "
                    "fallback to local JSON store: %s",
                    tls, not tls, retry_err
                )
                return False
        logger.info(
            "Storage mode: MongoDB (%s.%s).",
            self._config.mongodb_db, self._config.mongodb_collection
        )
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._collection = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read(self) -> Snapshot:
        """Fold every user document into a Snapshot."""
        snapshot: Snapshot = {}
        async for doc in self.collection.find({}):
            data = dict(doc)
            data.pop("_id", None)
            user_id = data.pop(USER_ID_FIELD, None)
            if user_id:
                snapshot[str(user_id)] = Vault.from_dict(data)
        return snapshot

    async def write(self, snapshot: Snapshot) -> list[str]:
        """Upsert one document per user, unordered.

        A failing document does not stop or roll back the others.

        Returns:
            User identifiers whose document could not be written.
        """
        user_ids = list(snapshot)
        if not user_ids:
            return []
        operations = [
            ReplaceOne(
                {USER_ID_FIELD: user_id},
                _document(user_id, snapshot[user_id]),
                upsert=True
            )
            for user_id in user_ids
        ]
        try:
            await self.collection.bulk_write(operations, ordered=False)
        except BulkWriteError as err:
            failed = [
                user_ids[error["index"]]
                for error in err.details.get("writeErrors", [])
            ]
            for user_id in failed:
                logger.error("Failed to write vault for user=%s", user_id)
            return failed
        return []

    async def read_user(self, user_id: str) -> Vault:
        doc = await self.collection.find_one({USER_ID_FIELD: user_id})
        if doc is None:
            return Vault()
        data = dict(doc)
        data.pop("_id", None)
        data.pop(USER_ID_FIELD, None)
        return Vault.from_dict(data)

    async def write_user(self, user_id: str, vault: Vault) -> None:
        await self.collection.replace_one(
            {USER_ID_FIELD: user_id},
            _document(user_id, vault),
            upsert=True
        )
