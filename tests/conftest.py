# In-memory stand-in for google.cloud.firestore.AsyncClient, enough for dao and the tool dispatcher.
import copy
import itertools
from datetime import datetime, timezone

import pytest
from google.api_core.exceptions import NotFound

from mcp_servers.firestore_tools import FirestoreToolDispatcher

_auto_ids = itertools.count(1)


def _matches(data, field, op, value):
    if field not in data:
        return False
    actual = data[field]
    if op == "==":
        return actual == value
    if op == "!=":
        return actual != value
    if op == "<":
        return actual < value
    if op == "<=":
        return actual <= value
    if op == ">":
        return actual > value
    if op == ">=":
        return actual >= value
    if op == "in":
        return actual in value
    if op == "not-in":
        return actual not in value
    if op == "array_contains":
        return isinstance(actual, list) and value in actual
    if op == "array_contains_any":
        return isinstance(actual, list) and any(v in actual for v in value)
    raise ValueError(f"fake does not support {op}")


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = copy.deepcopy(data)

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentRef:
    def __init__(self, store, collection, doc_id):
        self._store = store
        self._collection = collection
        self.id = doc_id

    @property
    def path(self):
        return f"{self._collection}/{self.id}"

    def _docs(self):
        return self._store.setdefault(self._collection, {})

    async def get(self):
        return FakeSnapshot(self.id, self._docs().get(self.id))

    async def set(self, data, merge=False):
        docs = self._docs()
        if merge and self.id in docs:
            docs[self.id].update(copy.deepcopy(data))
        else:
            docs[self.id] = copy.deepcopy(data)

    async def update(self, data):
        docs = self._docs()
        if self.id not in docs:
            raise NotFound(f"No document to update: {self.path}")
        docs[self.id].update(copy.deepcopy(data))

    async def delete(self):
        self._docs().pop(self.id, None)


class FakeQuery:
    def __init__(self, store, collection, filters=(), order=None, limit=None):
        self._store = store
        self._collection = collection
        self._filters = list(filters)
        self._order = order
        self._limit = limit

    def _copy(self, **changes):
        kwargs = dict(filters=self._filters, order=self._order, limit=self._limit)
        kwargs.update(changes)
        return FakeQuery(self._store, self._collection, **kwargs)

    def where(self, *, filter):
        return self._copy(filters=self._filters + [(filter.field_path, filter.op_string, filter.value)])

    def order_by(self, field, direction="ASCENDING"):
        return self._copy(order=(field, direction))

    def limit(self, count):
        return self._copy(limit=count)

    async def get(self):
        docs = self._store.get(self._collection, {})
        rows = [
            (doc_id, data)
            for doc_id, data in docs.items()
            if all(_matches(data, f, op, v) for f, op, v in self._filters)
        ]
        if self._order:
            field, direction = self._order
            rows = [r for r in rows if field in r[1]]
            rows.sort(key=lambda r: r[1][field], reverse=(direction == "DESCENDING"))
        if self._limit is not None:
            rows = rows[: self._limit]
        return [FakeSnapshot(doc_id, data) for doc_id, data in rows]


class FakeCollection(FakeQuery):
    def __init__(self, store, name):
        super().__init__(store, name)
        self.id = name

    def document(self, doc_id=None):
        return FakeDocumentRef(self._store, self._collection, doc_id or f"auto{next(_auto_ids):06d}")

    async def add(self, data):
        ref = self.document()
        await ref.set(data)
        return datetime.now(timezone.utc), ref


class FakeFirestore:
    def __init__(self, seed=None):
        self.store = copy.deepcopy(seed or {})

    def collection(self, name):
        return FakeCollection(self.store, name)

    async def collections(self):
        for name in sorted(self.store):
            yield FakeCollection(self.store, name)


@pytest.fixture
def db():
    return FakeFirestore(
        {
            "users": {
                "alice": {"name": "Alice", "age": 31, "tags": ["admin", "dev"]},
                "bob": {"name": "Bob", "age": 25, "tags": ["dev"]},
                "carol": {"name": "Carol", "age": 42, "tags": []},
            },
            "orders": {
                "o1": {"total": 12.5, "user": "alice"},
            },
        }
    )


@pytest.fixture
def dispatcher(db):
    return FirestoreToolDispatcher(db)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every project-related env var and stub out the gcloud lookup."""
    for name in ("GOOGLE_CLOUD_PROJECT", "FIREBASE_PROJECT_ID", "GCLOUD_PROJECT", "FIRESTORE_EMULATOR_HOST"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("core.project_config.project_from_gcloud", lambda: None)
