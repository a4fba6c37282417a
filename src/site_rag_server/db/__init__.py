"""
Database Package

Provides SQLAlchemy async session management and model definitions
for PostgreSQL with pgvector.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal
from .models import Base, Document
from .vector_store import (
    VectorStore,
    VectorStoreError,
    DocumentRecord,
    PendingDocument,
    RetrievedMatch,
)

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "Base",
    "Document",
    "VectorStore",
    "VectorStoreError",
    "DocumentRecord",
    "PendingDocument",
    "RetrievedMatch",
]
