"""
Entity Store Adapter - Uniform document access over logical collections.

The adapter owns physical storage and nothing else: no business rules live
here. Two implementations share one contract:

- ``InMemoryDocumentStore``: process-local, used by tests and local runs
- ``SQLDocumentStore``: SQLAlchemy async over the ``documents`` table

Contract notes:
- Single-document operations are atomic; load -> validate -> mutate sequences
  across calls are NOT (callers accept that race).
- ``set(merge=True)`` deep-merges nested maps: a nested partial map replaces
  only the leaf keys it names.
- ``update`` is a shallow top-level merge and requires the document to exist.
- ``delete_many`` snapshots matching ids, then deletes them in one
  all-or-nothing batch. Documents created after the snapshot survive.
"""

from __future__ import annotations

import asyncio
import copy
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from itertools import count
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from adminops.db.models import Document
from adminops.exceptions import DocumentNotFoundError
from adminops.models.domain import format_timestamp, utc_now
from adminops.observability.metrics import metrics

logger = get_logger(__name__)

Predicate = Callable[[dict[str, Any]], bool]
Clock = Callable[[], datetime]

# Field the store stamps on documents created through ``add``
TIMESTAMP_FIELD = "timestamp"


@dataclass(frozen=True)
class StoredDocument:
    """A document as read from the store."""

    id: str
    data: dict[str, Any]
    created_at: datetime


def normalize_fields(value: Any) -> Any:
    """Make a document body JSON-safe: datetimes become ISO-8601 strings."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, dict):
        return {str(k): normalize_fields(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize_fields(v) for v in value]
    return value


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Merge ``updates`` into a copy of ``base``, recursing into nested maps."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class DocumentStore(ABC):
    """Async document store over string-keyed collections."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        """Fetch one document, or None if absent."""

    @abstractmethod
    async def list(
        self,
        collection: str,
        limit: int,
        cursor: str | None = None,
        newest_first: bool = False,
    ) -> list[StoredDocument]:
        """
        Fetch one page in insertion order (or newest first).

        ``cursor`` is the id of the last document of the previous page.
        Raises DocumentNotFoundError if the cursor document no longer exists.
        """

    @abstractmethod
    async def find(
        self, collection: str, predicate: Predicate | None = None
    ) -> list[StoredDocument]:
        """Fetch every document of a collection matching ``predicate``."""

    @abstractmethod
    async def set(
        self, collection: str, doc_id: str, fields: dict[str, Any], merge: bool = False
    ) -> None:
        """Upsert a document. ``merge=False`` replaces the whole body."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Overwrite top-level fields of an existing document."""

    @abstractmethod
    async def add(self, collection: str, fields: dict[str, Any]) -> StoredDocument:
        """Append a document under a generated id, stamping ``timestamp``."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting an absent document is a no-op."""

    @abstractmethod
    async def delete_many(self, collection: str, predicate: Predicate) -> int:
        """Delete every matching document in one batch. Returns the count."""

    async def close(self) -> None:
        """Release underlying resources."""
        return None


# ============================================================================
# In-memory store
# ============================================================================


@dataclass
class _Entry:
    seq: int
    data: dict[str, Any]
    created_at: datetime = field(default_factory=utc_now)

    def snapshot(self, doc_id: str) -> StoredDocument:
        return StoredDocument(id=doc_id, data=copy.deepcopy(self.data), created_at=self.created_at)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Every call holds one lock, so each is atomic."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._collections: dict[str, dict[str, _Entry]] = {}
        self._seq = count(1)
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> dict[str, _Entry]:
        return self._collections.setdefault(name, {})

    def _ordered(self, collection: str, newest_first: bool) -> list[tuple[str, _Entry]]:
        items = list(self._collection(collection).items())
        if newest_first:
            items.sort(key=lambda item: (item[1].created_at, item[1].seq), reverse=True)
        else:
            items.sort(key=lambda item: item[1].seq)
        return items

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        async with self._lock:
            entry = self._collection(collection).get(doc_id)
            return entry.snapshot(doc_id) if entry else None

    async def list(
        self,
        collection: str,
        limit: int,
        cursor: str | None = None,
        newest_first: bool = False,
    ) -> list[StoredDocument]:
        async with self._lock:
            items = self._ordered(collection, newest_first)
            if cursor is not None:
                ids = [doc_id for doc_id, _ in items]
                if cursor not in ids:
                    raise DocumentNotFoundError(collection, cursor)
                items = items[ids.index(cursor) + 1 :]
            return [entry.snapshot(doc_id) for doc_id, entry in items[:limit]]

    async def find(
        self, collection: str, predicate: Predicate | None = None
    ) -> list[StoredDocument]:
        async with self._lock:
            return [
                entry.snapshot(doc_id)
                for doc_id, entry in self._ordered(collection, newest_first=False)
                if predicate is None or predicate(entry.data)
            ]

    async def set(
        self, collection: str, doc_id: str, fields: dict[str, Any], merge: bool = False
    ) -> None:
        fields = normalize_fields(fields)
        async with self._lock:
            docs = self._collection(collection)
            entry = docs.get(doc_id)
            if entry is None:
                docs[doc_id] = _Entry(
                    seq=next(self._seq), data=copy.deepcopy(fields), created_at=self._clock()
                )
            elif merge:
                entry.data = deep_merge(entry.data, fields)
            else:
                entry.data = copy.deepcopy(fields)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        fields = normalize_fields(fields)
        async with self._lock:
            entry = self._collection(collection).get(doc_id)
            if entry is None:
                raise DocumentNotFoundError(collection, doc_id)
            entry.data = {**entry.data, **copy.deepcopy(fields)}

    async def add(self, collection: str, fields: dict[str, Any]) -> StoredDocument:
        body = normalize_fields(fields)
        async with self._lock:
            now = self._clock()
            body[TIMESTAMP_FIELD] = format_timestamp(now)
            doc_id = uuid4().hex
            entry = _Entry(seq=next(self._seq), data=body, created_at=now)
            self._collection(collection)[doc_id] = entry
            return entry.snapshot(doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            self._collection(collection).pop(doc_id, None)

    async def delete_many(self, collection: str, predicate: Predicate) -> int:
        async with self._lock:
            docs = self._collection(collection)
            doomed = [doc_id for doc_id, entry in docs.items() if predicate(entry.data)]
            for doc_id in doomed:
                del docs[doc_id]
            return len(doomed)


# ============================================================================
# SQL store
# ============================================================================


class SQLDocumentStore(DocumentStore):
    """
    Document store over the ``documents`` table.

    Each public call runs in its own session and transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _timed(self, operation: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        except Exception:
            metrics.record_db_query(operation, False, time.perf_counter() - start)
            raise
        metrics.record_db_query(operation, True, time.perf_counter() - start)

    @staticmethod
    async def _row(session: AsyncSession, collection: str, doc_id: str) -> Document | None:
        stmt = select(Document).where(
            Document.collection == collection, Document.doc_id == doc_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _snapshot(row: Document) -> StoredDocument:
        return StoredDocument(id=row.doc_id, data=dict(row.data or {}), created_at=row.created_at)

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        with self._timed("get"):
            async with self._session_factory() as session:
                row = await self._row(session, collection, doc_id)
                return self._snapshot(row) if row else None

    async def list(
        self,
        collection: str,
        limit: int,
        cursor: str | None = None,
        newest_first: bool = False,
    ) -> list[StoredDocument]:
        with self._timed("list"):
            async with self._session_factory() as session:
                stmt = select(Document).where(Document.collection == collection)

                if cursor is not None:
                    anchor = await self._row(session, collection, cursor)
                    if anchor is None:
                        raise DocumentNotFoundError(collection, cursor)
                    if newest_first:
                        stmt = stmt.where(
                            or_(
                                Document.created_at < anchor.created_at,
                                and_(
                                    Document.created_at == anchor.created_at,
                                    Document.seq < anchor.seq,
                                ),
                            )
                        )
                    else:
                        stmt = stmt.where(Document.seq > anchor.seq)

                if newest_first:
                    stmt = stmt.order_by(Document.created_at.desc(), Document.seq.desc())
                else:
                    stmt = stmt.order_by(Document.seq)

                result = await session.execute(stmt.limit(limit))
                return [self._snapshot(row) for row in result.scalars().all()]

    async def find(
        self, collection: str, predicate: Predicate | None = None
    ) -> list[StoredDocument]:
        with self._timed("find"):
            async with self._session_factory() as session:
                stmt = (
                    select(Document)
                    .where(Document.collection == collection)
                    .order_by(Document.seq)
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        return [
            self._snapshot(row)
            for row in rows
            if predicate is None or predicate(row.data or {})
        ]

    async def set(
        self, collection: str, doc_id: str, fields: dict[str, Any], merge: bool = False
    ) -> None:
        fields = normalize_fields(fields)
        with self._timed("set"):
            async with self._session_factory() as session, session.begin():
                row = await self._row(session, collection, doc_id)
                if row is None:
                    session.add(
                        Document(
                            collection=collection,
                            doc_id=doc_id,
                            data=fields,
                            created_at=self._clock(),
                        )
                    )
                elif merge:
                    row.data = deep_merge(row.data or {}, fields)
                else:
                    row.data = fields

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        fields = normalize_fields(fields)
        with self._timed("update"):
            async with self._session_factory() as session, session.begin():
                row = await self._row(session, collection, doc_id)
                if row is None:
                    raise DocumentNotFoundError(collection, doc_id)
                row.data = {**(row.data or {}), **fields}

    async def add(self, collection: str, fields: dict[str, Any]) -> StoredDocument:
        body = normalize_fields(fields)
        now = self._clock()
        body[TIMESTAMP_FIELD] = format_timestamp(now)
        row = Document(collection=collection, doc_id=uuid4().hex, data=body, created_at=now)
        with self._timed("add"):
            async with self._session_factory() as session, session.begin():
                session.add(row)
        return StoredDocument(id=row.doc_id, data=dict(body), created_at=now)

    async def delete(self, collection: str, doc_id: str) -> None:
        with self._timed("delete"):
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    delete(Document).where(
                        Document.collection == collection, Document.doc_id == doc_id
                    )
                )

    async def delete_many(self, collection: str, predicate: Predicate) -> int:
        with self._timed("delete_many"):
            async with self._session_factory() as session, session.begin():
                stmt = select(Document.seq, Document.data).where(
                    Document.collection == collection
                )
                result = await session.execute(stmt)
                doomed = [seq for seq, data in result.all() if predicate(data or {})]
                if doomed:
                    await session.execute(delete(Document).where(Document.seq.in_(doomed)))

        logger.debug("documents_batch_deleted", collection=collection, count=len(doomed))
        return len(doomed)
