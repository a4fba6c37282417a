"""
SQLAlchemy Models

Defines the database schema for ingested website content:
- Documents (one row per chunk, vector storage with pgvector)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    Text,
    DateTime,
    Index,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Document Model
# ---------------------------------------------------------------------

class Document(Base):
    """
    One chunk of crawled page content and its embedding.

    Rows for a URL are deleted and re-inserted on every crawl of that URL.
    A NULL embedding marks the row as pending regeneration; such rows are
    never returned by similarity search.
    """
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    # pgvector column - 768 dimensions for text-embedding-004
    embedding = Column(Vector(settings.embedding_dimensions), nullable=True)

    __table_args__ = (
        Index("idx_documents_url", "url"),
    )
