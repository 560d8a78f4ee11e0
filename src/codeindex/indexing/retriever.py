"""
Similarity Search

Ranks stored chunks against a query by cosine similarity. Stored vectors and
query vectors are both unit length, so similarity is a plain dot product and
the whole store is scored with a single matrix-vector product.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .embeddings import EmbeddingClient, normalize_vector
from .storage import EmbeddingRecord, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Result from vector search."""
    record: EmbeddingRecord
    similarity: float
    rank: int


class SimilaritySearch:
    """Exhaustive top-K search over a VectorStore."""

    def __init__(self, embedder: EmbeddingClient, store: VectorStore,
                 min_similarity: Optional[float] = None):
        self.embedder = embedder
        self.store = store
        self.min_similarity = min_similarity

    def search(self, query_text: str, k: int = 10) -> List[SearchResult]:
        """
        Find the k stored chunks most similar to a query.

        Embedding failures propagate to the caller; they are not turned into
        an empty result. A blank query matches nothing.
        """
        if k <= 0 or not query_text.strip():
            return []

        logger.info(f"🔍 Searching for: {query_text[:100]}")
        query_vector = self.embedder.embed(query_text)
        return self.search_vector(query_vector, k)

    def search_vector(self, vector, k: int = 10) -> List[SearchResult]:
        """Rank stored records against a precomputed query vector."""
        if k <= 0:
            return []

        query = normalize_vector(vector)
        dimensions = query.shape[0]

        records = []
        vectors = []
        skipped = 0
        for record in self.store.scan_all():
            if record.dimensions != dimensions:
                skipped += 1
                continue
            records.append(record)
            vectors.append(record.embedding)

        if skipped:
            logger.warning(
                f"⚠️ Skipped {skipped} records whose dimensions do not match the query ({dimensions})"
            )

        if not records:
            return []

        matrix = np.vstack(vectors)
        similarities = matrix @ query

        # Stable sort keeps store order among equal scores
        order = np.argsort(-similarities, kind='stable')[:min(k, len(records))]

        results = []
        for idx in order:
            similarity = float(similarities[idx])
            if self.min_similarity is not None and similarity < self.min_similarity:
                break
            results.append(SearchResult(
                record=records[idx],
                similarity=similarity,
                rank=len(results) + 1,
            ))

        return results
