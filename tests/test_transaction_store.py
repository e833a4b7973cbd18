import asyncio
import json
from datetime import date
from types import SimpleNamespace

import pytest

from models.transaction import TransactionDraft
from services.transaction_store import STORAGE_KEY, LocalTransactionStore, MongoTransactionStore
from utils.errors import StorageError, TransactionNotFoundError


def _draft(amount=10.0, type_="expense", category="Food", day=1):
    return TransactionDraft(type=type_, amount=amount, category=category, description="d", date=date(2024, 1, day))


# --- Local store ---

def test_local_ids_are_max_plus_one(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")

    async def run():
        a = await store.add(_draft())
        b = await store.add(_draft())
        await store.delete(a.id)
        c = await store.add(_draft())
        return a, b, c

    a, b, c = asyncio.run(run())
    assert (a.id, b.id, c.id) == (1, 2, 3)


def test_local_add_then_list_includes_record_once(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")

    async def run():
        await store.add(_draft(day=1))
        before = await store.list_all()
        new = await store.add(_draft(amount=42, day=2))
        return before, new, await store.list_all()

    before, new, after = asyncio.run(run())
    assert [t.id for t in after].count(new.id) == 1
    assert new.id > max(t.id for t in before)
    assert after[0].id == new.id  # newest first


def test_local_delete_removes_only_that_record(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")

    async def run():
        for day in (1, 2, 3):
            await store.add(_draft(day=day))
        await store.delete(2)
        return await store.list_all()

    assert sorted(t.id for t in asyncio.run(run())) == [1, 3]


def test_local_update_replaces_all_fields(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")

    async def run():
        t = await store.add(_draft())
        await store.update(t.id, _draft(amount=99, type_="income", category="Salary", day=5))
        return await store.get(t.id)

    t = asyncio.run(run())
    assert (t.id, t.type, t.amount, t.category, t.date) == (1, "income", 99.0, "Salary", date(2024, 1, 5))


def test_local_unknown_id(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")
    with pytest.raises(TransactionNotFoundError):
        asyncio.run(store.delete(7))
    with pytest.raises(TransactionNotFoundError):
        asyncio.run(store.update(7, _draft()))
    with pytest.raises(TransactionNotFoundError):
        asyncio.run(store.get(7))


def test_local_document_layout_keeps_other_keys(tmp_path):
    path = tmp_path / "s.json"
    path.write_text(json.dumps({"GOOGLE_AI_KEY": "x"}), encoding="utf-8")
    store = LocalTransactionStore(path)
    asyncio.run(store.add(_draft()))

    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["GOOGLE_AI_KEY"] == "x"
    assert doc[STORAGE_KEY][0]["date"] == "2024-01-01"
    assert doc[STORAGE_KEY][0]["id"] == 1


def test_local_corrupt_file_is_storage_error(tmp_path):
    path = tmp_path / "s.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        asyncio.run(LocalTransactionStore(path).list_all())


def test_subscribers_notified_after_each_write(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")
    seen = []
    unsubscribe = store.subscribe(lambda: seen.append(store.revision))

    async def run():
        t = await store.add(_draft())
        await store.update(t.id, _draft(amount=5))
        await store.delete(t.id)
        unsubscribe()
        await store.add(_draft())

    asyncio.run(run())
    assert seen == [1, 2, 3]
    assert store.revision == 4


def test_failing_subscriber_does_not_undo_write(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")

    def boom():
        raise RuntimeError("listener failed")

    store.subscribe(boom)
    asyncio.run(store.add(_draft()))
    assert len(asyncio.run(store.list_all())) == 1


def test_no_notification_for_failed_write(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")
    seen = []
    store.subscribe(lambda: seen.append(1))
    with pytest.raises(TransactionNotFoundError):
        asyncio.run(store.delete(1))
    assert seen == []


# --- Mongo store against an in-memory collection double ---

class FakeCursor:
    def __init__(self, docs):
        self.docs = list(docs)

    def sort(self, key, direction=None):
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, order in reversed(keys):
            self.docs.sort(key=lambda d, f=field: d[f], reverse=order == -1)
        return self

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for doc in self.docs:
            yield doc


class FakeCollection:
    name = "transactions"

    def __init__(self, fail=False):
        self.docs = []
        self.fail = fail

    def _match(self, flt):
        return [d for d in self.docs if all(d.get(k) == v for k, v in (flt or {}).items())]

    def find(self, flt=None, projection=None):
        if self.fail:
            raise RuntimeError("connection refused")
        return FakeCursor(dict(d, _id=f"oid{d['id']}") for d in self._match(flt))

    async def find_one(self, flt):
        found = self._match(flt)
        return dict(found[0]) if found else None

    async def insert_one(self, doc):
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=f"oid{doc['id']}")

    async def replace_one(self, flt, doc):
        for i, d in enumerate(self.docs):
            if all(d.get(k) == v for k, v in flt.items()):
                self.docs[i] = dict(doc)
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    async def delete_one(self, flt):
        found = self._match(flt)
        if found:
            self.docs.remove(found[0])
        return SimpleNamespace(deleted_count=len(found[:1]))


def test_mongo_crud_roundtrip():
    collection = FakeCollection()
    store = MongoTransactionStore(collection)

    async def run():
        a = await store.add(_draft(day=1))
        b = await store.add(_draft(day=3))
        await store.update(a.id, _draft(amount=7, day=2))
        await store.delete(b.id)
        return a, b, await store.list_all(), await store.get(a.id)

    a, b, listed, fetched = asyncio.run(run())
    assert (a.id, b.id) == (1, 2)
    assert [t.id for t in listed] == [1]
    assert fetched.amount == 7.0
    assert collection.docs[0]["date"] == "2024-01-02"
    assert store.revision == 4


def test_mongo_list_newest_first():
    store = MongoTransactionStore(FakeCollection())

    async def run():
        await store.add(_draft(day=2))
        await store.add(_draft(day=9))
        await store.add(_draft(day=2))
        return await store.list_all()

    assert [t.id for t in asyncio.run(run())] == [2, 3, 1]


def test_mongo_unknown_id():
    store = MongoTransactionStore(FakeCollection())
    with pytest.raises(TransactionNotFoundError):
        asyncio.run(store.delete(3))
    with pytest.raises(TransactionNotFoundError):
        asyncio.run(store.update(3, _draft()))


def test_mongo_backend_failure_is_storage_error_without_notification():
    store = MongoTransactionStore(FakeCollection(fail=True))
    seen = []
    store.subscribe(lambda: seen.append(1))
    with pytest.raises(StorageError):
        asyncio.run(store.list_all())
    with pytest.raises(StorageError):
        asyncio.run(store.add(_draft()))
    assert seen == []


def test_local_concurrent_adds_get_unique_ids(tmp_path):
    store = LocalTransactionStore(tmp_path / "s.json")

    async def run():
        added = await asyncio.gather(*(store.add(_draft(day=d)) for d in range(1, 6)))
        return added, await store.list_all()

    added, listed = asyncio.run(run())
    assert sorted(t.id for t in added) == [1, 2, 3, 4, 5]
    assert len(listed) == 5
