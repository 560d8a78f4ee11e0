"""Shared fixtures for codeindex tests."""

import hashlib
import re
import threading
from pathlib import Path
from typing import List

import numpy as np
import pytest

from codeindex.errors import EmbeddingAPIError
from codeindex.indexing.config import IndexerConfig
from codeindex.indexing.embeddings import normalize_vector
from codeindex.indexing.indexer import CodebaseIndexer
from codeindex.indexing.storage import InMemoryVectorStore

FAKE_DIMENSIONS = 256
FAIL_MARKER = "EMBED_FAILS_HERE"


class FakeEmbedder:
    """Deterministic bag-of-words embedder; no network involved.

    Texts sharing words get similar vectors. Any text containing FAIL_MARKER
    raises EmbeddingAPIError, like a server answering 500.
    """

    def __init__(self, dimensions: int = FAKE_DIMENSIONS):
        self.dimensions = dimensions
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str) -> np.ndarray:
        with self._lock:
            self.calls.append(text)
        if FAIL_MARKER in text:
            raise EmbeddingAPIError(500, "Internal Server Error")

        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.sha1(token.encode("utf-8")).hexdigest(), 16) % self.dimensions
            vector[bucket] += 1.0
        return normalize_vector(vector)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project tree with code, prose and ignored directories."""
    root = tmp_path / "project"
    (root / "src" / "components").mkdir(parents=True)
    (root / "node_modules" / "left-pad").mkdir(parents=True)

    (root / "src" / "utils.ts").write_text(
        "export function add(a: number, b: number): number {\n"
        "  return a + b;\n"
        "}\n"
        "\n"
        "export interface Point {\n"
        "  x: number;\n"
        "  y: number;\n"
        "}\n",
        encoding="utf-8",
    )
    (root / "src" / "components" / "Button.tsx").write_text(
        "import React from 'react';\n"
        "\n"
        "export const Button = (props: ButtonProps) => {\n"
        "  return <button onClick={props.onClick}>{props.label}</button>;\n"
        "};\n",
        encoding="utf-8",
    )
    (root / "README.md").write_text(
        "# Demo project\n"
        "A tiny project used to exercise the indexer.\n"
        "\n"
        "## Usage\n"
        "Run the build and open the browser.\n",
        encoding="utf-8",
    )
    (root / "node_modules" / "left-pad" / "index.js").write_text(
        "module.exports = function leftPad() { return ''; };\n", encoding="utf-8"
    )
    return root


@pytest.fixture
def make_indexer(project: Path, fake_embedder: FakeEmbedder, memory_store: InMemoryVectorStore):
    """Factory for initialized indexers over the sample project."""
    created = []

    def factory(**overrides) -> CodebaseIndexer:
        config = IndexerConfig(project_root=str(project), **overrides)
        indexer = CodebaseIndexer(config, embedder=fake_embedder, store=memory_store)
        indexer.initialize()
        created.append(indexer)
        return indexer

    yield factory

    for indexer in created:
        indexer.shutdown()
