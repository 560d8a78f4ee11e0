"""
Embedding Service for Code Chunks

This module turns chunk text into unit-length vectors through a local Ollama
server's /api/embeddings endpoint, and carries the small amount of vector math
the rest of the engine relies on: normalization, the float32 byte codec used
by the record store, cosine similarity and content-addressed chunk ids.
"""

import hashlib
import logging
import math
from typing import List, Optional, Sequence, Union

import numpy as np
import requests

from ..errors import (
    EmbeddingAPIError,
    EmbeddingProtocolError,
    EmbeddingTimeoutError,
    ServiceUnavailableError,
)
from .config import DEFAULT_EMBEDDING_MODEL, DEFAULT_OLLAMA_BASE_URL

logger = logging.getLogger(__name__)

# Stored vectors are little-endian float32 regardless of host byte order
VECTOR_DTYPE = np.dtype('<f4')

VectorLike = Union[np.ndarray, Sequence[float]]


def normalize_vector(vector: VectorLike) -> np.ndarray:
    """Scale a vector to unit L2 norm. A zero vector is returned unchanged."""
    values = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(values)
    if norm == 0:
        return values.astype(np.float32)
    return (values / norm).astype(np.float32)


def vector_to_bytes(vector: VectorLike) -> bytes:
    """Encode a vector as N little-endian float32 values."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def bytes_to_vector(data: bytes) -> np.ndarray:
    """Decode bytes written by vector_to_bytes."""
    if len(data) % VECTOR_DTYPE.itemsize != 0:
        raise ValueError(f"Vector blob length {len(data)} is not a multiple of {VECTOR_DTYPE.itemsize}")
    return np.frombuffer(data, dtype=VECTOR_DTYPE).astype(np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Calculate cosine similarity between two vectors."""
    vec1 = np.asarray(a, dtype=np.float64)
    vec2 = np.asarray(b, dtype=np.float64)

    if vec1.shape != vec2.shape:
        raise ValueError(f"Vector length mismatch: {vec1.shape[0]} vs {vec2.shape[0]}")

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def generate_chunk_id(path: str, chunk_index: int, content: str) -> str:
    """Deterministic id from the relative path, chunk position and leading content."""
    key = f"{path}:{chunk_index}:{content[:100]}"
    return hashlib.sha256(key.encode('utf-8')).hexdigest()


class EmbeddingClient:
    """Client for the Ollama embeddings endpoint."""

    def __init__(self,
                 base_url: str = DEFAULT_OLLAMA_BASE_URL,
                 model: str = DEFAULT_EMBEDDING_MODEL,
                 timeout: float = 60.0):
        if not model:
            raise ValueError("Embedding model name is required")
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/embeddings"

    def embed(self, text: str) -> np.ndarray:
        """
        Generate a unit-length embedding for a piece of text.

        Args:
            text: Chunk content or search query

        Returns:
            float32 numpy vector with L2 norm 1 (or all zeros if the server returned zeros)

        Raises:
            ServiceUnavailableError: server unreachable
            EmbeddingTimeoutError: server did not answer within the timeout
            EmbeddingAPIError: non-2xx response
            EmbeddingProtocolError: response body is not a usable embedding
        """
        if not text:
            raise ValueError("Text to embed must not be empty")

        try:
            response = requests.post(
                self.endpoint,
                json={"model": self.model, "prompt": text},
                timeout=self.timeout,
            )
        # ConnectTimeout is both a ConnectionError and a Timeout; treat it as unreachable
        except requests.exceptions.ConnectionError as e:
            raise ServiceUnavailableError(self.base_url, str(e)) from e
        except requests.exceptions.Timeout as e:
            raise EmbeddingTimeoutError(self.base_url, self.timeout) from e

        if not response.ok:
            raise EmbeddingAPIError(response.status_code, response.reason or "", self.endpoint)

        return normalize_vector(self._parse_embedding(response))

    def embed_many(self, texts: List[str]) -> List[np.ndarray]:
        """Embed texts one request at a time, in order."""
        return [self.embed(text) for text in texts]

    def _parse_embedding(self, response: requests.Response) -> List[float]:
        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingProtocolError(f"Invalid JSON from {self.endpoint}: {e}") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list):
            raise EmbeddingProtocolError("Invalid embedding response from Ollama: missing 'embedding' array")
        if not embedding:
            raise EmbeddingProtocolError("Invalid embedding response from Ollama: empty embedding")

        for value in embedding:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EmbeddingProtocolError(f"Non-numeric value in embedding: {value!r}")
            if not math.isfinite(value):
                raise EmbeddingProtocolError(f"Non-finite value in embedding: {value!r}")

        return embedding

    def is_available(self, timeout: Optional[float] = 5.0) -> bool:
        """Check whether the server answers on /api/tags."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=timeout)
            return response.ok
        except requests.exceptions.RequestException as e:
            logger.debug(f"Embedding service probe failed: {e}")
            return False
