"""
Main Codebase Indexer

This module provides the main interface for indexing a project: it walks the
project, skips files whose records are still fresh, chunks and embeds the rest,
and keeps the vector store in step with the files on disk. It is also the
service facade callers use for search, statistics and forgetting paths.

Per-file and per-chunk failures never abort a run; they are collected in
ProcessingStats.errors. Failing to enumerate the project root, invalid
configuration and store failures are raised.
"""

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import CodeIndexError, ConfigurationError, EmbeddingError
from .chunker import Chunk, CodeChunker
from .config import IndexerConfig
from .embeddings import EmbeddingClient, generate_chunk_id, vector_to_bytes
from .retriever import SearchResult, SimilaritySearch
from .storage import EmbeddingRecord, SQLiteVectorStore, VectorStore
from .walker import FileRecord, FileWalker

logger = logging.getLogger(__name__)


def format_bytes(size: int) -> str:
    """Human readable byte count, e.g. "0 bytes", "512 bytes", "12.5 KB"."""
    if size == 0:
        return "0 bytes"
    units = ['bytes', 'KB', 'MB', 'GB']
    value = float(size)
    unit_index = 0
    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1
    return f"{round(value, 2):g} {units[unit_index]}"


@dataclass
class ProcessingStats:
    """Statistics from one indexing run."""
    total_files: int = 0
    processed_files: int = 0
    skipped_files: int = 0
    removed_files: int = 0
    total_chunks: int = 0
    processed_chunks: int = 0
    errors: List[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    cancelled: bool = False

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['duration'] = self.duration
        return data


@dataclass
class IndexStats:
    """Summary of what the store currently holds."""
    total_embeddings: int
    unique_files: int
    store_size: str
    store_size_bytes: int


class CodebaseIndexer:
    """Main indexer with incremental updates and semantic search."""

    def __init__(self,
                 config: IndexerConfig,
                 walker: Optional[FileWalker] = None,
                 chunker: Optional[CodeChunker] = None,
                 embedder: Optional[EmbeddingClient] = None,
                 store: Optional[VectorStore] = None):
        self.config = config
        self.walker = walker or FileWalker()
        self.chunker = chunker or CodeChunker(max_chunk_chars=config.chunk_size)
        self.embedder = embedder or EmbeddingClient(
            base_url=config.ollama_base_url,
            model=config.embedding_model,
            timeout=config.request_timeout,
        )
        # The default store lives under the project root, so it is created in initialize()
        self.store = store
        self.searcher: Optional[SimilaritySearch] = None
        self._stats_lock = threading.Lock()
        self._initialized = False

    def initialize(self) -> None:
        """Validate configuration and open the store."""
        self.config.validate()
        root = self.config.root
        if not root.is_dir():
            raise ConfigurationError(f"Project root does not exist or is not a directory: {root}")

        if self.store is None:
            self.store = SQLiteVectorStore(str(self.config.resolved_store_path()))
        self.store.init()

        self.searcher = SimilaritySearch(self.embedder, self.store)
        self._initialized = True

        logger.info(f"🏗️ Initialized indexer for project: {root}")
        logger.info(f"🔤 Embedding model: {self.config.embedding_model} @ {self.config.ollama_base_url}")

    def shutdown(self) -> None:
        if self.store is not None:
            self.store.close()
        self._initialized = False

    def __enter__(self) -> "CodebaseIndexer":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise CodeIndexError("Indexer is not initialized; call initialize() first")

    def process_codebase(self, cancel_event: Optional[threading.Event] = None) -> ProcessingStats:
        """
        Index the project incrementally.

        Args:
            cancel_event: When set, the run stops before starting the next file

        Returns:
            ProcessingStats for the run; check its errors list for partial failures
        """
        self._require_initialized()
        logger.info("🚀 Starting codebase indexing...")

        stats = ProcessingStats()
        files = self.walker.walk(str(self.config.root), self.config.walk_options)
        files.sort(key=lambda f: f.relative_path)
        stats.total_files = len(files)
        logger.info(f"📂 Found {len(files)} files to scan")

        executor = self._create_executor()
        try:
            for file_record in files:
                if cancel_event is not None and cancel_event.is_set():
                    stats.cancelled = True
                    logger.info("⏹️ Indexing cancelled")
                    break
                self._process_file(file_record, stats, executor=executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        if self.config.prune_missing and not stats.cancelled:
            self._prune_missing({f.relative_path for f in files}, stats)

        stats.end_time = time.time()
        self._log_summary(stats)
        return stats

    def rebuild(self, cancel_event: Optional[threading.Event] = None) -> ProcessingStats:
        """Drop every record and index the whole project again."""
        self._require_initialized()
        logger.info("🗑️ Clearing index before rebuild...")
        self.store.clear()
        return self.process_codebase(cancel_event)

    def update_file(self, file_path: str) -> ProcessingStats:
        """
        Re-index a single file regardless of freshness.

        Args:
            file_path: Path relative to the project root (absolute paths inside the root are accepted)

        Returns:
            ProcessingStats for this file; a file that no longer exists is forgotten
        """
        self._require_initialized()
        stats = ProcessingStats(total_files=1)
        relative_path = self._relative_path(file_path)
        full_path = self.config.root / relative_path

        logger.info(f"🔄 Updating index for: {relative_path}")

        if not full_path.is_file():
            removed = self.store.delete_by_path(relative_path)
            if removed:
                stats.removed_files = 1
            logger.info(f"🗑️ Removed {removed} chunks for deleted file: {relative_path}")
        else:
            try:
                file_stat = full_path.stat()
            except OSError as e:
                self._record_error(stats, f"Failed to stat {relative_path}: {e}")
            else:
                record = FileRecord(
                    path=str(full_path),
                    relative_path=relative_path,
                    size=file_stat.st_size,
                    last_modified=file_stat.st_mtime,
                    extension=full_path.suffix.lower(),
                )
                executor = self._create_executor()
                try:
                    self._process_file(record, stats, force=True, executor=executor)
                finally:
                    if executor is not None:
                        executor.shutdown(wait=True)

        stats.end_time = time.time()
        return stats

    def _relative_path(self, file_path: str) -> str:
        root = self.config.root
        path = Path(file_path)
        if path.is_absolute():
            try:
                path = path.resolve().relative_to(root)
            except ValueError:
                raise CodeIndexError(f"{file_path} is outside the project root {root}")
        return path.as_posix()

    def _create_executor(self) -> Optional[Executor]:
        if self.config.embed_workers > 1:
            return ThreadPoolExecutor(
                max_workers=self.config.embed_workers,
                thread_name_prefix="codeindex-embed",
            )
        return None

    def _is_fresh(self, file_record: FileRecord) -> bool:
        existing = self.store.get_by_path(file_record.relative_path)
        if not existing:
            return False
        return file_record.last_modified <= min(record.updated_at for record in existing)

    def _process_file(self, file_record: FileRecord, stats: ProcessingStats,
                      force: bool = False, executor: Optional[Executor] = None) -> None:
        relative_path = file_record.relative_path

        if not force and self._is_fresh(file_record):
            stats.skipped_files += 1
            logger.debug(f"Skipping unchanged file: {relative_path}")
            return

        try:
            content = self.walker.read_file_content(file_record.path)
        except UnicodeDecodeError as e:
            self._record_error(stats, f"Could not decode file {relative_path}: {e}")
            return
        except OSError as e:
            self._record_error(stats, f"Failed to read {relative_path}: {e}")
            return

        chunks = self.chunker.chunk_file(relative_path, content)
        stats.total_chunks += len(chunks)

        records = self._embed_chunks(relative_path, chunks, stats, executor)
        self.store.replace_path(relative_path, records)

        stats.processed_files += 1
        stats.processed_chunks += len(records)
        logger.info(f"📝 Indexed {relative_path}: {len(records)}/{len(chunks)} chunks")

    def _embed_chunks(self, relative_path: str, chunks: List[Chunk], stats: ProcessingStats,
                      executor: Optional[Executor] = None) -> List[EmbeddingRecord]:
        """Embed every chunk of a file, keeping the ones that succeed."""

        def embed_one(index: int, chunk: Chunk) -> Optional[EmbeddingRecord]:
            try:
                vector = self.embedder.embed(chunk.content)
            except EmbeddingError as e:
                self._record_error(
                    stats,
                    f"Failed to embed chunk {index} of {relative_path} "
                    f"(lines {chunk.start_line}-{chunk.end_line}): {e}"
                )
                return None

            return EmbeddingRecord(
                id=generate_chunk_id(relative_path, index, chunk.content),
                path=relative_path,
                chunk=chunk.content,
                vector=vector_to_bytes(vector),
                dimensions=int(vector.shape[0]),
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                chunk_type=chunk.chunk_type.value,
                name=chunk.name,
            )

        if executor is not None and len(chunks) > 1:
            futures = [executor.submit(embed_one, i, chunk) for i, chunk in enumerate(chunks)]
            results = [future.result() for future in futures]
        else:
            results = [embed_one(i, chunk) for i, chunk in enumerate(chunks)]

        return [record for record in results if record is not None]

    def _prune_missing(self, present_paths, stats: ProcessingStats) -> None:
        """Forget records of paths that the walk no longer returns."""
        for path in self.store.unique_paths():
            if path in present_paths:
                continue
            removed = self.store.delete_by_path(path)
            stats.removed_files += 1
            logger.info(f"🗑️ Removed {removed} chunks for missing file: {path}")

    def _record_error(self, stats: ProcessingStats, message: str) -> None:
        with self._stats_lock:
            stats.errors.append(message)
        logger.error(f"❌ {message}")

    def _log_summary(self, stats: ProcessingStats) -> None:
        logger.info("✅ Indexing complete!")
        logger.info(
            f"📊 Results: {stats.processed_files} indexed, {stats.skipped_files} unchanged, "
            f"{stats.removed_files} removed, {stats.processed_chunks}/{stats.total_chunks} chunks"
        )
        logger.info(f"⏱️ Time: {stats.duration:.1f}s")
        if stats.errors:
            logger.warning(f"⚠️ {len(stats.errors)} errors occurred during indexing")

    def search_similar(self, query: str, limit: int = 10) -> List[SearchResult]:
        """Search the index for the chunks most similar to a query."""
        self._require_initialized()
        return self.searcher.search(query, limit)

    def get_stats(self) -> IndexStats:
        """Get statistics about the stored index."""
        self._require_initialized()
        size = self.store.size_bytes()
        return IndexStats(
            total_embeddings=self.store.count(),
            unique_files=len(self.store.unique_paths()),
            store_size=format_bytes(size),
            store_size_bytes=size,
        )

    def get_embeddings_by_path(self, file_path: str) -> List[EmbeddingRecord]:
        self._require_initialized()
        return self.store.get_by_path(self._relative_path(file_path))

    def delete_embeddings_by_path(self, file_path: str) -> int:
        self._require_initialized()
        relative_path = self._relative_path(file_path)
        removed = self.store.delete_by_path(relative_path)
        logger.info(f"🗑️ Removed {removed} chunks for: {relative_path}")
        return removed

    def clear_all_embeddings(self) -> None:
        self._require_initialized()
        logger.info("🗑️ Clearing index...")
        self.store.clear()
        logger.info("✅ Index cleared")
