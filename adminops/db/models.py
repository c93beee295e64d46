"""
Database Models - SQLAlchemy ORM model backing the document store.

Every logical collection (users, licenses, config, admin_logs) lives in the
single ``documents`` table, keyed by (collection, doc_id), with the document
body in a JSON column. ``seq`` gives a stable insertion order for paging.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Document(Base):
    """
    ORM model for documents table.

    One row per stored document of any collection.
    """

    __tablename__ = "documents"

    # Insertion order; SQLite only autoincrements INTEGER primary keys
    seq: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    collection: Mapped[str] = mapped_column(String(64), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False)

    data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        Index("idx_documents_collection_created", "collection", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id}>"
