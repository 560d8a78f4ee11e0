"""Tests for the vector record stores."""

import shutil
import threading
from pathlib import Path

import numpy as np
import pytest

from codeindex.errors import StoreError
from codeindex.indexing.embeddings import vector_to_bytes
from codeindex.indexing.storage import (
    EmbeddingRecord,
    InMemoryVectorStore,
    SQLiteVectorStore,
)


def _record(record_id: str, path: str = "src/a.ts", values=(0.6, 0.8), **fields) -> EmbeddingRecord:
    vector = np.asarray(values, dtype=np.float32)
    return EmbeddingRecord(
        id=record_id,
        path=path,
        chunk=fields.pop("chunk", f"chunk {record_id}"),
        vector=vector_to_bytes(vector),
        dimensions=vector.shape[0],
        start_line=fields.pop("start_line", 1),
        end_line=fields.pop("end_line", 3),
        chunk_type=fields.pop("chunk_type", "function"),
        name=fields.pop("name", None),
        **fields,
    )


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path: Path):
    if request.param == "sqlite":
        backend = SQLiteVectorStore(str(tmp_path / "store" / "embeddings.sqlite"))
    else:
        backend = InMemoryVectorStore()
    backend.init()
    yield backend
    backend.close()


def test_put_and_get_by_path(store) -> None:
    store.put(_record("1", start_line=10, end_line=12))
    store.put(_record("2", start_line=1, end_line=5, name="add"))
    store.put(_record("3", path="src/b.ts"))

    records = store.get_by_path("src/a.ts")

    assert [r.id for r in records] == ["2", "1"]
    assert records[0].name == "add"
    assert records[0].chunk_type == "function"
    assert records[0].created_at > 0
    assert records[0].updated_at >= records[0].created_at


def test_vector_bytes_round_trip(store) -> None:
    original = _record("1", values=(0.1, -0.2, 0.3, 1e-7))
    store.put(original)

    [loaded] = store.get_by_path("src/a.ts")

    assert loaded.vector == original.vector
    assert loaded.dimensions == 4
    np.testing.assert_array_equal(loaded.embedding, np.asarray((0.1, -0.2, 0.3, 1e-7), dtype=np.float32))


def test_put_is_idempotent_per_id(store) -> None:
    store.put(_record("1", chunk="first version"))
    [first] = store.get_by_path("src/a.ts")

    store.put(_record("1", chunk="second version"))

    [second] = store.get_by_path("src/a.ts")
    assert store.count() == 1
    assert second.chunk == "second version"
    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at


def test_delete_by_path_is_complete(store) -> None:
    store.put(_record("1"))
    store.put(_record("2"))
    store.put(_record("3", path="src/b.ts"))

    removed = store.delete_by_path("src/a.ts")

    assert removed == 2
    assert store.get_by_path("src/a.ts") == []
    assert all(r.path != "src/a.ts" for r in store.scan_all())
    assert store.delete_by_path("src/a.ts") == 0


def test_replace_path_swaps_records(store) -> None:
    store.put(_record("old-1"))
    store.put(_record("keep"))
    store.put(_record("other", path="src/b.ts"))
    [kept_before] = [r for r in store.get_by_path("src/a.ts") if r.id == "keep"]

    store.replace_path("src/a.ts", [_record("keep", chunk="updated"), _record("new-1")])

    records = {r.id: r for r in store.get_by_path("src/a.ts")}
    assert set(records) == {"keep", "new-1"}
    assert records["keep"].chunk == "updated"
    assert records["keep"].created_at == kept_before.created_at
    assert [r.id for r in store.get_by_path("src/b.ts")] == ["other"]


def test_replace_path_with_no_records_forgets_path(store) -> None:
    store.put(_record("1"))

    store.replace_path("src/a.ts", [])

    assert store.get_by_path("src/a.ts") == []


def test_scan_count_unique_paths_and_clear(store) -> None:
    store.put(_record("1", path="b.ts"))
    store.put(_record("2", path="a.ts"))
    store.put(_record("3", path="a.ts", start_line=20))

    assert store.count() == 3
    assert store.unique_paths() == ["a.ts", "b.ts"]
    assert [r.id for r in store.scan_all()] == ["2", "3", "1"]
    assert store.size_bytes() > 0

    store.clear()

    assert store.count() == 0
    assert store.scan_all() == []
    assert store.unique_paths() == []


def test_use_before_init_and_after_close_raises(tmp_path: Path) -> None:
    for backend in (SQLiteVectorStore(str(tmp_path / "db.sqlite")), InMemoryVectorStore()):
        with pytest.raises(StoreError):
            backend.put(_record("1"))

        backend.init()
        backend.put(_record("1"))
        backend.close()

        with pytest.raises(StoreError):
            backend.scan_all()


def test_sqlite_store_persists_across_instances(tmp_path: Path) -> None:
    db_path = str(tmp_path / "embeddings.sqlite")
    first = SQLiteVectorStore(db_path)
    first.init()
    first.put(_record("1", name="add"))
    first.close()

    second = SQLiteVectorStore(db_path)
    second.init()

    [record] = second.scan_all()
    assert record.id == "1"
    assert record.name == "add"


def test_sqlite_init_failure_is_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way", encoding="utf-8")

    with pytest.raises(StoreError):
        SQLiteVectorStore(str(blocker / "embeddings.sqlite")).init()


def test_sqlite_store_directory_removed_after_init(tmp_path: Path) -> None:
    store = SQLiteVectorStore(str(tmp_path / "store" / "embeddings.sqlite"))
    store.init()
    shutil.rmtree(tmp_path / "store")

    with pytest.raises(StoreError):
        store.scan_all()
    with pytest.raises(StoreError):
        store.put(_record("1"))
    with pytest.raises(StoreError):
        store.delete_by_path("src/a.ts")


def test_concurrent_writers_and_readers(store) -> None:
    errors = []

    def writer(prefix: str) -> None:
        try:
            for i in range(20):
                store.put(_record(f"{prefix}-{i}", path=f"{prefix}.ts"))
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)

    def reader() -> None:
        try:
            for _ in range(20):
                for record in store.scan_all():
                    assert len(record.vector) == record.dimensions * 4
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b")]
    threads.append(threading.Thread(target=reader))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert store.count() == 40
