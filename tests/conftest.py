"""
Pytest configuration and shared fixtures for Catalog Engine tests.

Engine-facing tests run against every backend: the in-memory store, MongoDB
through mongomock-motor, SQLite through aiosqlite and an in-process stand-in
for the Firestore async client.
"""

import copy
import operator
import random
import string
import uuid

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_engine import CatalogEngine, EngineConfig
from catalog_engine.assets.base import AssetStore, AssetUpload, StoredAsset
from catalog_engine.assets.cloudinary_store import public_id_from_url
from catalog_engine.constants import (
    ADMIN_ROLE,
    BACKEND_FIRESTORE,
    BACKEND_MONGO,
    BACKEND_SQL,
    SUPPORTED_BACKENDS,
    USER_ROLE,
    WORKER_ROLE,
)
from catalog_engine.core.types import Requester
from catalog_engine.observability import get_metrics_collector

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"

# ============================================================================
# FIRESTORE STAND-IN
# ============================================================================

_FIRESTORE_ID_ALPHABET = string.ascii_letters + string.digits

_FIRESTORE_OPERATORS = {
    "==": operator.eq,
    ">=": operator.ge,
    "<": operator.lt,
}


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, records, doc_id):
        self._records = records
        self.id = doc_id

    async def get(self):
        return FakeSnapshot(self.id, self._records.get(self.id))

    async def set(self, data):
        self._records[self.id] = copy.deepcopy(data)

    async def update(self, data):
        self._records[self.id].update(copy.deepcopy(data))

    async def delete(self):
        self._records.pop(self.id, None)


class FakeQuery:
    """Immutable query: every refinement returns a new query, as the real client does."""

    def __init__(self, records, filters=(), offset=0, limit=None):
        self._records = records
        self._filters = filters
        self._offset = offset
        self._limit = limit

    def where(self, *, filter):
        return FakeQuery(self._records, self._filters + (filter,), self._offset, self._limit)

    def offset(self, count):
        return FakeQuery(self._records, self._filters, count, self._limit)

    def limit(self, count):
        return FakeQuery(self._records, self._filters, self._offset, count)

    def _matches(self, data):
        for field_filter in self._filters:
            if field_filter.field_path not in data:
                return False
            compare = _FIRESTORE_OPERATORS[field_filter.op_string]
            if not compare(data[field_filter.field_path], field_filter.value):
                return False
        return True

    async def stream(self):
        matches = [
            (doc_id, data) for doc_id, data in sorted(self._records.items()) if self._matches(data)
        ]
        end = None if self._limit is None else self._offset + self._limit
        for doc_id, data in matches[self._offset : end]:
            yield FakeSnapshot(doc_id, copy.deepcopy(data))


class FakeCollection(FakeQuery):
    def __init__(self, records):
        super().__init__(records)

    def document(self, doc_id=None):
        if doc_id is None:
            doc_id = "".join(random.choices(_FIRESTORE_ID_ALPHABET, k=20))
        return FakeDocument(self._records, doc_id)


class FakeFirestoreClient:
    """Subset of google.cloud.firestore.AsyncClient used by FirestoreAdapter."""

    def __init__(self):
        self._collections = {}
        self.closed = False

    def collection(self, name):
        return FakeCollection(self._collections.setdefault(name, {}))

    def close(self):
        self.closed = True


# ============================================================================
# ASSET STORE AND TOKEN ISSUER STAND-INS
# ============================================================================


class FakeAssetStore(AssetStore):
    """Keeps uploaded assets in a dict; failures are switched on per test."""

    base_url = "https://assets.example.test"

    def __init__(self):
        self.assets = {}
        self.removed = []
        self.fail_upload = False
        self.fail_remove = False

    async def upload(self, source, key, folder):
        if self.fail_upload:
            raise ConnectionError("asset store unavailable")
        key = key or uuid.uuid4().hex
        url = f"{self.base_url}/{folder}/{key}.png"
        self.assets[f"{folder}/{key}"] = url
        return StoredAsset(url=url, key=key)

    async def remove(self, key_or_url, folder):
        if self.fail_remove:
            raise ConnectionError("asset store unavailable")
        path = f"{folder}/{public_id_from_url(key_or_url)}"
        self.assets.pop(path, None)
        self.removed.append(path)


class FakeTokenIssuer:
    def issue(self, user_id):
        return f"token-{user_id}"


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty metrics collector."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def asset_store():
    return FakeAssetStore()


@pytest.fixture
def token_issuer():
    return FakeTokenIssuer()


@pytest.fixture
def png_upload():
    """Factory for image uploads with an accepted extension."""

    def factory(filename="picture.png"):
        return AssetUpload(b"\x89PNG\r\n", filename=filename)

    return factory


def engine_config(backend):
    return EngineConfig(
        backend=backend,
        mongo_uri="mongodb://localhost:27017",
        db_name="catalog_test",
        sql_url=SQLITE_MEMORY_URL,
    )


def backend_clients(backend):
    """Driver clients injected into the engine for one backend."""
    if backend == BACKEND_MONGO:
        return {"mongo_client": AsyncMongoMockClient()}
    if backend == BACKEND_FIRESTORE:
        return {"firestore_client": FakeFirestoreClient()}
    if backend == BACKEND_SQL:
        return {"sql_engine": create_async_engine(SQLITE_MEMORY_URL, poolclass=StaticPool)}
    return {}


@pytest_asyncio.fixture(params=SUPPORTED_BACKENDS)
async def engine(request, asset_store, token_issuer):
    """Initialized CatalogEngine with the default roles seeded, once per backend."""
    clients = backend_clients(request.param)
    catalog = CatalogEngine(
        engine_config(request.param),
        asset_store=asset_store,
        token_issuer=token_issuer,
        password_rounds=4,
        **clients,
    )
    await catalog.initialize()
    await catalog.seed_roles()

    yield catalog

    await catalog.shutdown()
    if "sql_engine" in clients:
        await clients["sql_engine"].dispose()


@pytest.fixture
def make_user(engine):
    """Factory creating a user with a role and returning its Requester."""

    async def factory(name="Ana", role=USER_ROLE, email=None, password="secret"):
        user = await engine.users.create(
            {
                "name": name,
                "email": email or f"{name.lower().replace(' ', '.')}@example.com",
                "password": password,
                "role": role,
            }
        )
        return Requester(id=user.id, role_id=user.role_id)

    return factory


@pytest_asyncio.fixture
async def member(make_user):
    return await make_user("Ana", USER_ROLE)


@pytest_asyncio.fixture
async def worker(make_user):
    return await make_user("Walter", WORKER_ROLE)


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("Adele", ADMIN_ROLE)
