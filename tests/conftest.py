import copy
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from google.api_core import exceptions as google_exceptions

_MISSING = object()


def _get_path(data, path):
    node = data
    for part in path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _set_path(data, path, value):
    parts = path.split('.')
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = copy.deepcopy(value)


def _matches(actual, op, expected):
    try:
        if op == '<':
            return actual < expected
        if op == '<=':
            return actual <= expected
        if op == '==':
            return actual == expected
        if op == '>=':
            return actual >= expected
        if op == '>':
            return actual > expected
    except TypeError:
        return False
    raise ValueError(f"unsupported operator {op}")


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentRef:
    def __init__(self, db, collection_name, doc_id):
        self._db = db
        self.id = doc_id
        self.path = (collection_name, doc_id)

    def get(self, transaction=None):
        data, version = self._db._read(self.path)
        if transaction is not None:
            transaction._record_read(self.path, version)
        return FakeSnapshot(self, data)

    def create(self, data):
        if self._db._read(self.path)[0] is not None:
            raise google_exceptions.AlreadyExists(f"{self.path} already exists")
        self._db._write(self.path, copy.deepcopy(data))

    def set(self, data, merge=False):
        current = self._db._read(self.path)[0] if merge else None
        merged = current or {}
        for key, value in data.items():
            merged[key] = copy.deepcopy(value)
        self._db._write(self.path, merged)

    def update(self, updates):
        current = self._db._read(self.path)[0]
        if current is None:
            raise google_exceptions.NotFound(f"{self.path} not found")
        for path, value in updates.items():
            _set_path(current, path, value)
        self._db._write(self.path, current)


class FakeQuery:
    def __init__(self, db, collection_name, filters=()):
        self._db = db
        self._collection_name = collection_name
        self._filters = tuple(filters)

    def where(self, field_path=None, op_string=None, value=None, *, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return FakeQuery(self._db, self._collection_name, self._filters + ((field_path, op_string, value),))

    def stream(self):
        for (collection_name, doc_id), (data, _version) in sorted(self._db._docs.items()):
            if collection_name != self._collection_name or data is None:
                continue
            if all(
                _get_path(data, path) is not _MISSING and _matches(_get_path(data, path), op, value)
                for path, op, value in self._filters
            ):
                yield FakeSnapshot(FakeDocumentRef(self._db, collection_name, doc_id), copy.deepcopy(data))


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocumentRef(self._db, self._collection_name, doc_id)


class FakeTransaction:
    def __init__(self, db, max_attempts=5):
        self._db = db
        self._max_attempts = max_attempts
        self._reads = {}
        self._writes = []

    def _begin(self):
        self._reads = {}
        self._writes = []

    def _record_read(self, path, version):
        self._reads.setdefault(path, version)

    def update(self, reference, updates):
        self._writes.append((reference, copy.deepcopy(updates)))

    def _commit(self):
        self._db._run_commit_hooks()
        for path, version in self._reads.items():
            if self._db._read(path)[1] != version:
                raise google_exceptions.Aborted(f"{path} changed since it was read")
        for reference, updates in self._writes:
            reference.update(updates)
        self._db.commits += 1


class FakeFirestoreModule:
    """Stands in for ``firebase_admin.firestore`` with the same retry contract."""

    @staticmethod
    def transactional(fn):
        def _wrapper(transaction, *args, **kwargs):
            last_exc = None
            for _ in range(transaction._max_attempts):
                transaction._begin()
                result = fn(transaction, *args, **kwargs)
                try:
                    transaction._commit()
                    return result
                except google_exceptions.Aborted as exc:
                    last_exc = exc
            raise ValueError(f"Failed to commit transaction in {transaction._max_attempts} attempts.") from last_exc

        return _wrapper


class FakeFirestore:
    def __init__(self):
        self._docs = {}
        self._versions = itertools.count(1)
        self._commit_hooks = []
        self.commits = 0

    def collection(self, name):
        return FakeCollection(self, name)

    def transaction(self, max_attempts=5, **_kwargs):
        return FakeTransaction(self, max_attempts=max_attempts)

    def before_next_commit(self, hook):
        self._commit_hooks.append(hook)

    def _run_commit_hooks(self):
        hooks, self._commit_hooks = self._commit_hooks, []
        for hook in hooks:
            hook()

    def _read(self, path):
        data, version = self._docs.get(path, (None, 0))
        return copy.deepcopy(data), version

    def _write(self, path, data):
        self._docs[path] = (data, next(self._versions))

    def seed(self, collection_name, doc_id, data):
        self._write((collection_name, doc_id), copy.deepcopy(data))

    def data(self, collection_name, doc_id):
        return self._read((collection_name, doc_id))[0]

    def has(self, collection_name, doc_id):
        return (collection_name, doc_id) in self._docs


@pytest.fixture()
def fake_db():
    return FakeFirestore()


@pytest.fixture()
def fake_firestore():
    return FakeFirestoreModule()


@pytest.fixture()
def now():
    return datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)


@pytest.fixture()
def yesterday(now):
    return now - timedelta(days=1)


@pytest.fixture()
def seed_user(fake_db, now):
    def _seed(uid, tier='free', videos=0, dreams=0, last_reset=None, total_videos=0, total_dreams=0):
        fake_db.seed('users', uid, {
            'userId': uid,
            'email': f"{uid}@example.com",
            'subscriptionStatus': tier,
            'dailyUsage': {
                'videos': videos,
                'dreams': dreams,
                'lastReset': last_reset or now,
            },
            'analyticsSummary': {
                'totalVideos': total_videos,
                'totalDreams': total_dreams,
                'lastActive': now,
            },
        })
        return uid

    return _seed
