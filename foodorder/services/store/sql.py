"""
SQL Document Store

Production backend keeping documents as JSON rows in a single
``documents`` table through SQLAlchemy async.

- Each row carries a ``version`` that increments on every write
- Rows touched by a commit are locked (``SELECT ... FOR UPDATE``)
- Documents read by a transaction are written with ``WHERE version = :seen``;
  a lost race surfaces as StoreError("aborted"). Batch writes are unconditional
- Deleted documents keep their row with ``data = NULL`` so versions never
  go backwards
- Listeners are served in-process after each commit

Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import func

from foodorder.database import Base, init_db
from foodorder.services.store.base import (
    BaseDocumentStore,
    DocumentRef,
    DocumentSnapshot,
    StoreError,
    Write,
    apply_write,
)

logger = logging.getLogger(__name__)

TIMESTAMP_MARKER = "__ts__"


class DocumentRow(Base):
    """One document of any collection."""
    __tablename__ = "documents"

    collection = Column(String(255), primary_key=True)
    doc_id = Column(String(128), primary_key=True)
    data = Column(JSON(none_as_null=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# =============================================================================
# JSON ENCODING
# =============================================================================

def encode_value(value: Any) -> Any:
    """Make a document JSON-safe; datetimes become ``{"__ts__": iso}``."""
    if isinstance(value, datetime):
        return {TIMESTAMP_MARKER: value.isoformat()}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {TIMESTAMP_MARKER}:
            return datetime.fromisoformat(value[TIMESTAMP_MARKER])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


# =============================================================================
# STORE
# =============================================================================

class SqlDocumentStore(BaseDocumentStore):
    """Document store on a relational database."""

    def __init__(self, engine: AsyncEngine, clock: Optional[Callable] = None):
        super().__init__(clock=clock)
        self._engine = engine
        logger.info(f"SqlDocumentStore initialized ({engine.url.drivername})")

    @property
    def provider_name(self) -> str:
        return "sql"

    async def init(self) -> None:
        """Create the documents table if missing."""
        try:
            await init_db(self._engine)
        except OperationalError as e:
            raise StoreError("unavailable", f"Database unreachable: {e}") from e

    async def close(self) -> None:
        await super().close()
        await self._engine.dispose()

    async def health_check(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(select(func.count()).select_from(DocumentRow))
            return True
        except Exception as e:
            logger.error(f"SQL store health check failed: {e}")
            return False

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_snapshot(collection: str, doc_id: str, row: Any) -> DocumentSnapshot:
        if row is None:
            return DocumentSnapshot(collection=collection, id=doc_id)
        data = decode_value(row.data) if row.data is not None else None
        return DocumentSnapshot(collection=collection, id=doc_id, data=data, version=row.version)

    @staticmethod
    async def _select_row(conn: AsyncConnection, ref: DocumentRef, lock: bool = False) -> Any:
        statement = select(DocumentRow.data, DocumentRow.version).where(
            DocumentRow.collection == ref.collection,
            DocumentRow.doc_id == ref.id,
        )
        if lock:
            statement = statement.with_for_update()
        result = await conn.execute(statement)
        return result.first()

    async def _fetch(self, ref: DocumentRef) -> DocumentSnapshot:
        try:
            async with self._engine.connect() as conn:
                row = await self._select_row(conn, ref)
        except (OperationalError, PoolTimeoutError) as e:
            raise self._translate(e) from e
        return self._to_snapshot(ref.collection, ref.id, row)

    async def _fetch_collection(self, collection: str) -> list[DocumentSnapshot]:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(DocumentRow.doc_id, DocumentRow.data, DocumentRow.version).where(
                        DocumentRow.collection == collection,
                        DocumentRow.data.is_not(None),
                    )
                )
                rows = result.all()
        except (OperationalError, PoolTimeoutError) as e:
            raise self._translate(e) from e
        return [self._to_snapshot(collection, row.doc_id, row) for row in rows]

    async def _commit(
        self,
        writes: list[Write],
        read_versions: dict[DocumentRef, int],
    ) -> list[DocumentRef]:
        try:
            async with self._engine.begin() as conn:
                return await self._commit_in(conn, writes, read_versions)
        except IntegrityError as e:
            creating = any(w.kind == "create" for w in writes)
            raise StoreError(
                "already-exists" if creating and not read_versions else "aborted",
                "Document was created concurrently",
            ) from e
        except (OperationalError, PoolTimeoutError) as e:
            raise self._translate(e) from e

    async def _commit_in(
        self,
        conn: AsyncConnection,
        writes: list[Write],
        read_versions: dict[DocumentRef, int],
    ) -> list[DocumentRef]:
        # Versions as seen inside this database transaction
        seen: dict[DocumentRef, tuple[Optional[dict[str, Any]], int]] = {}

        async def load(ref: DocumentRef) -> tuple[Optional[dict[str, Any]], int]:
            if ref not in seen:
                # Rows written here stay locked until commit
                row = await self._select_row(conn, ref, lock=True)
                if row is None:
                    seen[ref] = (None, 0)
                else:
                    data = decode_value(row.data) if row.data is not None else None
                    seen[ref] = (data, row.version)
            return seen[ref]

        for ref, version in read_versions.items():
            _, current_version = await load(ref)
            if current_version != version:
                raise StoreError("aborted", f"Document {ref.path} was modified concurrently")

        now = self.now()
        staged: dict[DocumentRef, Optional[dict[str, Any]]] = {}
        for write in writes:
            ref = write.ref
            current = staged[ref] if ref in staged else (await load(ref))[0]
            staged[ref] = apply_write(write, current, now)

        for ref, data in staged.items():
            _, version = seen[ref]
            encoded = encode_value(data) if data is not None else None
            if version == 0:
                await conn.execute(
                    DocumentRow.__table__.insert().values(
                        collection=ref.collection,
                        doc_id=ref.id,
                        data=encoded,
                        version=1,
                    )
                )
            elif ref in read_versions:
                conn_result = await conn.execute(
                    update(DocumentRow)
                    .where(
                        DocumentRow.collection == ref.collection,
                        DocumentRow.doc_id == ref.id,
                        DocumentRow.version == version,
                    )
                    .values(data=encoded, version=version + 1)
                )
                if conn_result.rowcount != 1:
                    raise StoreError("aborted", f"Document {ref.path} was modified concurrently")
            else:
                # Unread documents are written unconditionally
                await conn.execute(
                    update(DocumentRow)
                    .where(
                        DocumentRow.collection == ref.collection,
                        DocumentRow.doc_id == ref.id,
                    )
                    .values(data=encoded, version=DocumentRow.version + 1)
                )

        return list(staged)

    @staticmethod
    def _translate(error: Exception) -> StoreError:
        if isinstance(error, PoolTimeoutError):
            return StoreError("deadline-exceeded", "Timed out waiting for a database connection")
        logger.error(f"Database error: {error}")
        return StoreError("unavailable", "Database unavailable")
