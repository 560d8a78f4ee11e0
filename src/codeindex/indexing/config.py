"""
Indexer Configuration

Configuration objects for the walker and the indexer, plus loading from
environment variables (a .env file is loaded by the CLI before this runs).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

from ..errors import ConfigurationError

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_STORE_DIR = ".chunk_store"
DEFAULT_STORE_FILE = "embeddings.sqlite"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB


@dataclass
class WalkOptions:
    """Options for a directory walk.

    exclude_directories and exclude_files are added to the walker defaults;
    include_extensions replaces the default allow-list when given.
    """
    exclude_directories: Set[str] = None
    exclude_files: Set[str] = None
    include_extensions: Optional[Set[str]] = None
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    hidden_allowlist: Set[str] = None

    def __post_init__(self):
        if self.exclude_directories is None:
            self.exclude_directories = set()
        if self.exclude_files is None:
            self.exclude_files = set()
        if self.hidden_allowlist is None:
            # Environment files stay visible even though they start with a dot
            self.hidden_allowlist = {".env"}
        if self.include_extensions is not None:
            self.include_extensions = {ext.lower() for ext in self.include_extensions}
        if self.max_file_size <= 0:
            raise ConfigurationError("max_file_size must be a positive number of bytes")


@dataclass
class IndexerConfig:
    """Configuration for CodebaseIndexer."""
    project_root: Optional[str] = None
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    store_path: Optional[str] = None
    chunk_size: int = 6000
    request_timeout: float = 60.0
    embed_workers: int = 1
    prune_missing: bool = True
    walk_options: WalkOptions = field(default_factory=WalkOptions)

    def validate(self) -> None:
        """Check required settings before any I/O happens."""
        if not self.project_root:
            raise ConfigurationError("project_root is required")
        if not self.ollama_base_url:
            raise ConfigurationError("ollama_base_url must not be empty")
        if not self.embedding_model:
            raise ConfigurationError("embedding_model must not be empty")
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.embed_workers < 1:
            raise ConfigurationError("embed_workers must be at least 1")

    @property
    def root(self) -> Path:
        self.validate()
        return Path(self.project_root).expanduser().resolve()

    def resolved_store_path(self) -> Path:
        """Store location, defaulting to a hidden directory inside the project."""
        if self.store_path:
            return Path(self.store_path).expanduser().resolve()
        return self.root / DEFAULT_STORE_DIR / DEFAULT_STORE_FILE

    @classmethod
    def from_env(cls, project_root: Optional[str] = None, **overrides) -> "IndexerConfig":
        """Build a config from CODEINDEX_* / OLLAMA_* environment variables."""
        config = cls(
            project_root=project_root or os.getenv("CODEINDEX_PROJECT_ROOT"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_BASE_URL),
            embedding_model=os.getenv("CODEINDEX_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            store_path=os.getenv("CODEINDEX_STORE_PATH") or None,
            chunk_size=_int_env("CODEINDEX_CHUNK_SIZE", 6000),
            request_timeout=_float_env("CODEINDEX_TIMEOUT", 60.0),
            embed_workers=_int_env("CODEINDEX_EMBED_WORKERS", 1),
        )
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise ConfigurationError(f"Unknown configuration option: {key}")
            setattr(config, key, value)
        return config


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
