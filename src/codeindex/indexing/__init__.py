"""
Codebase Indexing System

This package implements vector-based indexing of a project tree for semantic
retrieval of code and documentation chunks.

Core Components:
- CodebaseIndexer: Main indexing orchestrator
- FileWalker: Project file discovery
- CodeChunker: Semantic chunking for code, prose and other text
- EmbeddingClient: Vector embedding generation through Ollama
- SQLiteVectorStore / InMemoryVectorStore: Vector record storage
- SimilaritySearch: Top-K cosine similarity search
"""

from .chunker import Chunk, ChunkType, CodeChunker
from .config import IndexerConfig, WalkOptions
from .embeddings import EmbeddingClient
from .indexer import CodebaseIndexer, IndexStats, ProcessingStats
from .retriever import SearchResult, SimilaritySearch
from .storage import EmbeddingRecord, InMemoryVectorStore, SQLiteVectorStore, VectorStore
from .walker import FileRecord, FileWalker

__all__ = [
    "CodebaseIndexer",
    "ProcessingStats",
    "IndexStats",
    "IndexerConfig",
    "WalkOptions",
    "FileWalker",
    "FileRecord",
    "CodeChunker",
    "Chunk",
    "ChunkType",
    "EmbeddingClient",
    "EmbeddingRecord",
    "VectorStore",
    "SQLiteVectorStore",
    "InMemoryVectorStore",
    "SimilaritySearch",
    "SearchResult",
]
