"""
Vector Store

PostgreSQL + pgvector based document storage and similarity search.

This is the only module that knows how documents are persisted; the
ingestion and retrieval layers talk to it through the methods below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Document


class VectorStoreError(RuntimeError):
    """Raised when a vector store operation fails."""


@dataclass(frozen=True)
class DocumentRecord:
    """A chunk ready to be persisted. ``embedding`` may be None (pending)."""
    url: str
    title: str
    content: str
    embedding: Optional[List[float]] = None


@dataclass(frozen=True)
class RetrievedMatch:
    """A similarity search hit."""
    url: str
    content: str
    similarity: float


@dataclass(frozen=True)
class PendingDocument:
    """A stored chunk whose embedding still has to be generated."""
    id: int
    content: str


class VectorStore:
    """
    PostgreSQL-backed vector store using pgvector for similarity search.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        """
        Commit the current transaction.
        """
        await self._session.commit()

    async def search(
        self,
        query_embedding: List[float],
        match_count: int = 18,
        similarity_threshold: float = 0.25,
    ) -> List[RetrievedMatch]:
        """
        Search for similar documents using cosine similarity.

        Parameters
        ----------
        query_embedding : List[float]
            Query vector.
        match_count : int
            Maximum number of rows to return.
        similarity_threshold : float
            Rows with cosine similarity below this value are excluded.

        Returns
        -------
        List[RetrievedMatch]
            Matches ordered by similarity, highest first.
        """
        # pgvector's <=> operator; similarity = 1 - cosine distance
        cosine_distance = Document.embedding.cosine_distance(query_embedding)
        similarity = (1 - cosine_distance).label("similarity")

        stmt = (
            select(Document.url, Document.content, similarity)
            .where(Document.embedding.is_not(None))
            .where(1 - cosine_distance >= similarity_threshold)
            .order_by(cosine_distance)
            .limit(match_count)
        )

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise VectorStoreError(f"Similarity search failed: {type(exc).__name__}") from exc

        return [
            RetrievedMatch(
                url=row.url,
                content=row.content,
                similarity=float(row.similarity),
            )
            for row in result.all()
        ]

    async def delete_url(self, url: str) -> int:
        """
        Remove all documents for a given URL.

        Returns the number of deleted rows.
        """
        stmt = delete(Document).where(Document.url == url)
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def replace_url(self, url: str, records: Sequence[DocumentRecord]) -> int:
        """
        Atomically swap every stored chunk of ``url`` for ``records``.

        Runs inside a savepoint so a failure leaves the url untouched and
        the outer transaction usable.

        Returns
        -------
        int
            Number of rows added.
        """
        try:
            async with self._session.begin_nested():
                await self.delete_url(url)
                return await self.insert_documents(records)
        except SQLAlchemyError as exc:
            raise VectorStoreError(f"Replacing documents for {url} failed: {type(exc).__name__}") from exc

    async def insert_documents(self, records: Sequence[DocumentRecord]) -> int:
        """
        Add document chunks to the store.

        Returns
        -------
        int
            Number of rows added.
        """
        if not records:
            return 0

        for record in records:
            self._session.add(
                Document(
                    url=record.url,
                    title=record.title,
                    content=record.content,
                    embedding=record.embedding,
                )
            )

        await self._session.flush()
        return len(records)

    async def get_documents_missing_embeddings(self) -> List[PendingDocument]:
        """
        Return every stored chunk whose embedding is NULL.
        """
        stmt = (
            select(Document.id, Document.content)
            .where(Document.embedding.is_(None))
            .order_by(Document.id)
        )
        result = await self._session.execute(stmt)
        return [PendingDocument(id=row.id, content=row.content) for row in result.all()]

    async def update_embedding(self, doc_id: int, embedding: List[float]) -> bool:
        """
        Set the embedding of one stored chunk.

        Returns True if a row was updated.
        """
        stmt = (
            update(Document)
            .where(Document.id == doc_id)
            .values(embedding=embedding)
        )
        # Savepoint: a failed row must not abort the surrounding transaction
        try:
            async with self._session.begin_nested():
                result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise VectorStoreError(f"Updating embedding of {doc_id} failed: {type(exc).__name__}") from exc
        return bool(result.rowcount)
