"""
Retriever

Embeds a query, over-fetches similar chunks from the vector store and
deduplicates them so a single page cannot dominate the context.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from ..config import settings
from ..db.vector_store import RetrievedMatch, VectorStore
from ..embeddings.embedder import Embedder

logger = logging.getLogger("rag.retriever")


def deduplicate_matches(
    matches: Sequence[RetrievedMatch],
    max_per_url: int = 2,
) -> List[RetrievedMatch]:
    """
    Keep at most ``max_per_url`` matches per URL, preserving input order.
    """
    counts: Dict[str, int] = {}
    kept: List[RetrievedMatch] = []
    for match in matches:
        url = match.url or "unknown"
        seen = counts.get(url, 0)
        if seen < max_per_url:
            kept.append(match)
            counts[url] = seen + 1
    return kept


class Retriever:
    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        overfetch_factor: Optional[int] = None,
        max_per_url: Optional[int] = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.overfetch_factor = overfetch_factor or settings.rag_overfetch_factor
        self.max_per_url = max_per_url or settings.rag_max_chunks_per_url

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[RetrievedMatch]:
        """
        Return up to ``top_k`` deduplicated matches, best first.

        Raises ``EmbeddingError`` or ``VectorStoreError`` on upstream failure.
        """
        top_k = top_k or settings.rag_top_k
        if min_similarity is None:
            min_similarity = settings.rag_min_similarity

        query_vec = await self.embedder.embed_one(query)
        candidates = await self.store.search(
            query_vec,
            match_count=top_k * self.overfetch_factor,
            similarity_threshold=min_similarity,
        )

        matches = deduplicate_matches(candidates, self.max_per_url)[:top_k]
        logger.debug(
            "Retrieved %d candidates, %d after dedup (top_k=%d)",
            len(candidates),
            len(matches),
            top_k,
        )
        return matches
