"""
Vector Storage System for Code Chunks

This module persists one record per embedded chunk: its id, relative path,
raw text, float32 vector and chunk metadata. A SQLite backend is used for
real projects and an in-memory backend for tests and throwaway sessions.
Both implement the VectorStore contract used by the indexer and the search.
"""

import logging
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from ..errors import StoreError
from .embeddings import bytes_to_vector

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingRecord:
    """A stored chunk with its embedding."""
    id: str
    path: str
    chunk: str
    vector: bytes
    dimensions: int
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    chunk_type: Optional[str] = None
    name: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def embedding(self) -> np.ndarray:
        return bytes_to_vector(self.vector)


class VectorStore(ABC):
    """Keyed record store for chunk embeddings."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the store for use. Safe to call more than once."""

    @abstractmethod
    def close(self) -> None:
        """Release the store; further use raises StoreError until init() is called again."""

    @abstractmethod
    def put(self, record: EmbeddingRecord) -> None:
        """Insert or replace a record by id."""

    @abstractmethod
    def get_by_path(self, path: str) -> List[EmbeddingRecord]:
        """All records for a relative path."""

    @abstractmethod
    def delete_by_path(self, path: str) -> int:
        """Remove every record for a path and return how many were removed."""

    @abstractmethod
    def replace_path(self, path: str, records: List[EmbeddingRecord]) -> None:
        """Atomically swap the records of a path for a new set."""

    @abstractmethod
    def scan_all(self) -> List[EmbeddingRecord]:
        """Every stored record."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all records."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""

    @abstractmethod
    def unique_paths(self) -> List[str]:
        """Distinct paths that have at least one record."""

    @abstractmethod
    def size_bytes(self) -> int:
        """Approximate storage footprint."""


SCHEMA = '''
    CREATE TABLE IF NOT EXISTS embeddings (
        id TEXT PRIMARY KEY,
        path TEXT NOT NULL,
        chunk TEXT NOT NULL,
        vector BLOB NOT NULL,
        dimensions INTEGER NOT NULL,
        start_line INTEGER,
        end_line INTEGER,
        chunk_type TEXT,
        name TEXT,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL
    )
'''

UPSERT = '''
    INSERT INTO embeddings
    (id, path, chunk, vector, dimensions, start_line, end_line, chunk_type, name,
     created_at, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        path = excluded.path,
        chunk = excluded.chunk,
        vector = excluded.vector,
        dimensions = excluded.dimensions,
        start_line = excluded.start_line,
        end_line = excluded.end_line,
        chunk_type = excluded.chunk_type,
        name = excluded.name,
        updated_at = excluded.updated_at
'''

COLUMNS = ('id, path, chunk, vector, dimensions, start_line, end_line, chunk_type, name, '
           'created_at, updated_at')


class SQLiteVectorStore(VectorStore):
    """SQLite-backed record store. Each operation opens its own connection."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self._ready = False

    def init(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute('PRAGMA journal_mode=WAL')
                conn.execute(SCHEMA)
                conn.execute('CREATE INDEX IF NOT EXISTS idx_embeddings_path ON embeddings(path)')
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Failed to initialize embedding store at {self.db_path}: {e}") from e

        self._ready = True
        logger.debug(f"Embedding store ready at {self.db_path}")

    def close(self) -> None:
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        if not self._ready:
            raise StoreError("Embedding store is not initialized")
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open embedding store at {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _read(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Embedding store read failed: {e}") from e
        finally:
            conn.close()

    def put(self, record: EmbeddingRecord) -> None:
        self.put_many([record])

    def put_many(self, records: List[EmbeddingRecord]) -> None:
        """Upsert several records in one transaction."""
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    self._insert(conn, records)
            except sqlite3.Error as e:
                raise StoreError(f"Failed to store embeddings: {e}") from e
            finally:
                conn.close()

    def replace_path(self, path: str, records: List[EmbeddingRecord]) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    created = {
                        row[0]: row[1]
                        for row in conn.execute(
                            'SELECT id, created_at FROM embeddings WHERE path = ?', (path,)
                        )
                    }
                    conn.execute('DELETE FROM embeddings WHERE path = ?', (path,))
                    self._insert(conn, [
                        replace(record, created_at=created.get(record.id, record.created_at))
                        for record in records
                    ])
            except sqlite3.Error as e:
                raise StoreError(f"Failed to replace embeddings for {path}: {e}") from e
            finally:
                conn.close()

    def _insert(self, conn: sqlite3.Connection, records: List[EmbeddingRecord]) -> None:
        now = time.time()
        conn.executemany(UPSERT, [
            (
                record.id, record.path, record.chunk, sqlite3.Binary(record.vector),
                record.dimensions, record.start_line, record.end_line,
                record.chunk_type, record.name,
                record.created_at or now, now,
            )
            for record in records
        ])

    def get_by_path(self, path: str) -> List[EmbeddingRecord]:
        rows = self._read(
            f'SELECT {COLUMNS} FROM embeddings WHERE path = ? ORDER BY start_line, id', (path,)
        )
        return [self._row_to_record(row) for row in rows]

    def delete_by_path(self, path: str) -> int:
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute('DELETE FROM embeddings WHERE path = ?', (path,))
                    return cursor.rowcount
            except sqlite3.Error as e:
                raise StoreError(f"Failed to delete embeddings for {path}: {e}") from e
            finally:
                conn.close()

    def scan_all(self) -> List[EmbeddingRecord]:
        rows = self._read(f'SELECT {COLUMNS} FROM embeddings ORDER BY path, start_line, id')
        return [self._row_to_record(row) for row in rows]

    def clear(self) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute('DELETE FROM embeddings')
            except sqlite3.Error as e:
                raise StoreError(f"Failed to clear embedding store: {e}") from e
            finally:
                conn.close()

    def count(self) -> int:
        return self._read('SELECT COUNT(*) FROM embeddings')[0][0]

    def unique_paths(self) -> List[str]:
        rows = self._read('SELECT DISTINCT path FROM embeddings ORDER BY path')
        return [row[0] for row in rows]

    def size_bytes(self) -> int:
        if not self._ready:
            raise StoreError("Embedding store is not initialized")
        total = 0
        for suffix in ('', '-wal'):
            file_path = f"{self.db_path}{suffix}"
            try:
                total += os.path.getsize(file_path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StoreError(f"Cannot stat {file_path}: {e}") from e
        return total

    def _row_to_record(self, row: sqlite3.Row) -> EmbeddingRecord:
        return EmbeddingRecord(
            id=row['id'],
            path=row['path'],
            chunk=row['chunk'],
            vector=bytes(row['vector']),
            dimensions=row['dimensions'],
            start_line=row['start_line'],
            end_line=row['end_line'],
            chunk_type=row['chunk_type'],
            name=row['name'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )


class InMemoryVectorStore(VectorStore):
    """Simple in-memory record store for testing and small projects."""

    def __init__(self):
        self.records: Dict[str, EmbeddingRecord] = {}
        self._lock = threading.Lock()
        self._ready = False

    def init(self) -> None:
        self._ready = True

    def close(self) -> None:
        self._ready = False

    def _check_ready(self) -> None:
        if not self._ready:
            raise StoreError("Embedding store is not initialized")

    def _stamp(self, record: EmbeddingRecord, now: float) -> EmbeddingRecord:
        existing = self.records.get(record.id)
        created_at = existing.created_at if existing else (record.created_at or now)
        return replace(record, created_at=created_at, updated_at=now)

    def put(self, record: EmbeddingRecord) -> None:
        self._check_ready()
        with self._lock:
            self.records[record.id] = self._stamp(record, time.time())

    def replace_path(self, path: str, records: List[EmbeddingRecord]) -> None:
        self._check_ready()
        with self._lock:
            kept = {rid: r for rid, r in self.records.items() if r.path != path}
            now = time.time()
            for record in records:
                # created_at survives for ids that are being rewritten
                kept[record.id] = self._stamp(record, now)
            self.records = kept

    def get_by_path(self, path: str) -> List[EmbeddingRecord]:
        self._check_ready()
        with self._lock:
            matches = [r for r in self.records.values() if r.path == path]
        return sorted(matches, key=lambda r: (r.start_line or 0, r.id))

    def delete_by_path(self, path: str) -> int:
        self._check_ready()
        with self._lock:
            doomed = [rid for rid, r in self.records.items() if r.path == path]
            for rid in doomed:
                del self.records[rid]
        return len(doomed)

    def scan_all(self) -> List[EmbeddingRecord]:
        self._check_ready()
        with self._lock:
            records = list(self.records.values())
        return sorted(records, key=lambda r: (r.path, r.start_line or 0, r.id))

    def clear(self) -> None:
        self._check_ready()
        with self._lock:
            self.records.clear()

    def count(self) -> int:
        self._check_ready()
        return len(self.records)

    def unique_paths(self) -> List[str]:
        self._check_ready()
        with self._lock:
            return sorted({r.path for r in self.records.values()})

    def size_bytes(self) -> int:
        self._check_ready()
        with self._lock:
            return sum(len(r.vector) + len(r.chunk.encode('utf-8')) for r in self.records.values())
