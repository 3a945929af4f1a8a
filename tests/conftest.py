"""Shared fixtures: key material, codecs, file stores and a fake MongoDB."""
import base64
from typing import Any, Optional

import pytest
from pymongo.errors import BulkWriteError, PyMongoError, ServerSelectionTimeoutError

from totp_vault.vault import FileBackend, SecretCodec, VaultConfig, VaultStore


@pytest.fixture
def key_material() -> str:
    """Valid base64 key material (64 bytes)."""
    return base64.b64encode(bytes(range(64))).decode("ascii")


@pytest.fixture
def other_key_material() -> str:
    return base64.b64encode(bytes(range(64, 128))).decode("ascii")


@pytest.fixture
def codec(key_material) -> SecretCodec:
    return SecretCodec(key_material)


@pytest.fixture
def plain_codec() -> SecretCodec:
    return SecretCodec(None)


@pytest.fixture
def data_file(tmp_path) -> str:
    return str(tmp_path / "data" / "user-secrets.json")


@pytest.fixture
def file_backend(data_file) -> FileBackend:
    return FileBackend(data_file)


@pytest.fixture
async def file_store(data_file) -> VaultStore:
    store = VaultStore(VaultConfig(data_file=data_file))
    await store.initialize()
    return store


# --- Fake MongoDB ---

class FakeCollection:
    """In-memory stand-in for an AsyncCollection."""

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.indexes: list[tuple] = []
        self.fail_users: set[str] = set()
        # raised by every single-document operation when set
        self.error: Optional[PyMongoError] = None
        self.bulk_calls: list[tuple] = []
        self._next_id = 0

    def _store(self, doc: dict) -> None:
        self._next_id += 1
        stored = dict(doc)
        stored["_id"] = self._next_id
        self.docs[doc["userId"]] = stored

    async def create_index(self, key, unique: bool = False):
        self.indexes.append((key, unique))
        return f"{key}_1"

    def find(self, query: dict):
        docs = [dict(d) for d in self.docs.values()]

        async def cursor():
            for doc in docs:
                yield doc
        return cursor()

    async def find_one(self, query: dict) -> Optional[dict]:
        if self.error is not None:
            raise self.error
        doc = self.docs.get(query["userId"])
        return dict(doc) if doc is not None else None

    async def replace_one(self, query: dict, doc: dict, upsert: bool = False):
        if self.error is not None:
            raise self.error
        self._store(doc)

    async def bulk_write(self, operations: list, ordered: bool = True):
        self.bulk_calls.append((len(operations), ordered))
        errors = []
        for index, op in enumerate(operations):
            user_id = op._filter["userId"]
            if user_id in self.fail_users:
                errors.append({"index": index, "code": 11000, "errmsg": "fail"})
                continue
            self._store(op._doc)
        if errors:
            raise BulkWriteError({"writeErrors": errors, "nInserted": 0})


class FakeAdmin:
    def __init__(self, client: "FakeClient"):
        self._client = client

    async def command(self, name: str):
        if not self._client.reachable:
            raise ServerSelectionTimeoutError("No servers found")
        return {"ok": 1}


class FakeClient:
    def __init__(self, mongo: "FakeMongo", uri: str, options: dict):
        self.uri = uri
        self.options = options
        self.reachable = options.get("tls") in mongo.reachable_tls
        self.admin = FakeAdmin(self)
        self.closed = False
        self._mongo = mongo

    def __getitem__(self, db_name: str) -> Any:
        mongo = self._mongo

        class _Database:
            def __getitem__(self, collection_name: str) -> FakeCollection:
                mongo.names = (db_name, collection_name)
                return mongo.collection
        return _Database()

    async def close(self):
        self.closed = True


class FakeMongo:
    """Client factory recording every connection attempt."""

    def __init__(self, reachable_tls=(False, True)):
        self.reachable_tls = set(reachable_tls)
        self.collection = FakeCollection()
        self.clients: list[FakeClient] = []
        self.names: Optional[tuple] = None

    def __call__(self, uri: str, **options) -> FakeClient:
        client = FakeClient(self, uri, options)
        self.clients.append(client)
        return client

    @property
    def attempts(self) -> list[bool]:
        return [c.options["tls"] for c in self.clients]


@pytest.fixture
def fake_mongo() -> FakeMongo:
    return FakeMongo()
