"""
Document Store Abstract Base Class

Defines the interface contract for all document store implementations.
Both InMemoryDocumentStore and SqlDocumentStore implement the same small
set of primitives; everything else (queries, transactions, batches,
listeners, field sentinels) is shared here so both backends behave
identically.

Design Pattern: Strategy Pattern
    - Repositories depend only on BaseDocumentStore
    - Development runs on the in-memory store, production on SQL
    - Tests use the in-memory store with failure injection

Consistency model:
    - Every document carries a version that increments on each write
    - Transactions record the versions they read; commit aborts with
      StoreError("aborted") when any of them changed
    - Batches commit their writes without read checks

Version: 1.0.0
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from foodorder.core.errors import ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreError(ServiceError):
    """
    Error raised by document store backends.

    ``code`` is one of: not-found, already-exists, aborted, permission-denied,
    unavailable, deadline-exceeded, resource-exhausted, invalid-argument,
    failed-precondition, unknown.
    """


# =============================================================================
# FIELD SENTINELS
# =============================================================================

class _Sentinel:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name


SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD = _Sentinel("DELETE_FIELD")


@dataclass(frozen=True)
class ArrayUnion:
    """Append values not already present."""
    values: tuple

    def __init__(self, *values: Any):
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    """Remove every occurrence of the given values."""
    values: tuple

    def __init__(self, *values: Any):
        object.__setattr__(self, "values", tuple(values))


def resolve_fields(base: dict[str, Any], changes: dict[str, Any], now: datetime) -> dict[str, Any]:
    """
    Apply ``changes`` on top of ``base`` resolving sentinels.

    Returns a new dict; neither argument is modified.
    """
    result = copy.deepcopy(base)
    for key, value in changes.items():
        if value is DELETE_FIELD:
            result.pop(key, None)
        elif value is SERVER_TIMESTAMP:
            result[key] = now
        elif isinstance(value, ArrayUnion):
            current = list(result.get(key) or [])
            for item in value.values:
                if item not in current:
                    current.append(item)
            result[key] = current
        elif isinstance(value, ArrayRemove):
            result[key] = [item for item in (result.get(key) or []) if item not in value.values]
        else:
            result[key] = copy.deepcopy(value)
    return result


# =============================================================================
# SNAPSHOTS & QUERIES
# =============================================================================

@dataclass(frozen=True)
class DocumentRef:
    """Address of a single document."""
    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass
class DocumentSnapshot:
    """Point-in-time copy of a document. ``data`` is None when missing."""
    collection: str
    id: str
    data: Optional[dict[str, Any]] = None
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(self.collection, self.id)

    def get(self, key: str, default: Any = None) -> Any:
        return (self.data or {}).get(key, default)


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
    "array-contains": lambda a, b: isinstance(a, list) and b in a,
    "array-contains-any": lambda a, b: isinstance(a, list) and any(v in a for v in b),
}


@dataclass(frozen=True)
class Query:
    """
    Immutable query over one collection.

    Example:
        >>> Query("orders").where("restaurantId", "==", rid).order_by("createdAt", "desc").limit(20)
    """
    collection: str
    filters: tuple[tuple[str, str, Any], ...] = ()
    ordering: tuple[tuple[str, str], ...] = ()
    limit_to: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        if op not in _OPERATORS:
            raise StoreError("invalid-argument", f"Unsupported operator: {op}")
        return replace(self, filters=self.filters + ((field_name, op, value),))

    def order_by(self, field_name: str, direction: str = "asc") -> "Query":
        if direction not in ("asc", "desc"):
            raise StoreError("invalid-argument", f"Invalid direction: {direction}")
        return replace(self, ordering=self.ordering + ((field_name, direction),))

    def limit(self, count: int) -> "Query":
        return replace(self, limit_to=count)

    def matches(self, data: Optional[dict[str, Any]]) -> bool:
        if data is None:
            return False
        try:
            return all(_OPERATORS[op](data.get(name), value) for name, op, value in self.filters)
        except TypeError:
            return False

    def apply(self, snapshots: list[DocumentSnapshot]) -> list[DocumentSnapshot]:
        """Filter, order and limit snapshots of this collection."""
        docs = [s for s in snapshots if self.matches(s.data)]
        for name, direction in reversed(self.ordering):
            present = [d for d in docs if d.get(name) is not None]
            missing = [d for d in docs if d.get(name) is None]
            present.sort(key=lambda d: d.get(name), reverse=direction == "desc")
            docs = present + missing
        if self.limit_to is not None:
            docs = docs[: self.limit_to]
        return docs


@dataclass
class QuerySnapshot:
    """Result set delivered by ``query`` and query listeners."""
    query: Query
    docs: list[DocumentSnapshot] = field(default_factory=list)
    from_cache: bool = False

    @property
    def empty(self) -> bool:
        return not self.docs

    def __len__(self) -> int:
        return len(self.docs)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

class Subscription:
    """
    Handle for a live listener.

    The owner must dispose it (``unsubscribe()`` or ``with subscription:``);
    a live subscription keeps invoking its callbacks.
    """

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None, description: str = ""):
        self._on_cancel = on_cancel
        self._active = on_cancel is not None
        self.description = description

    @classmethod
    def closed(cls, description: str = "") -> "Subscription":
        """A subscription that was never attached (e.g. invalid arguments)."""
        return cls(None, description)

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel:
            on_cancel()
        logger.debug(f"Subscription closed: {self.description}")

    close = unsubscribe

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"<Subscription {self.description} ({state})>"


ListenTarget = Union[Query, DocumentRef]
OnNext = Callable[[Any], None]
OnError = Callable[[StoreError], None]


@dataclass
class _Listener:
    target: ListenTarget
    on_next: OnNext
    on_error: Optional[OnError]

    @property
    def collection(self) -> str:
        return self.target.collection


# =============================================================================
# WRITES
# =============================================================================

@dataclass
class Write:
    """A buffered write. ``kind`` is set, merge, update, create or delete."""
    kind: str
    ref: DocumentRef
    data: dict[str, Any] = field(default_factory=dict)


def apply_write(write: Write, current: Optional[dict[str, Any]], now: datetime) -> Optional[dict[str, Any]]:
    """
    Compute a document's new body. ``None`` means deleted.

    Raises:
        StoreError("not-found") for an update of a missing document,
        StoreError("already-exists") for a create over an existing one
    """
    if write.kind == "delete":
        return None
    if write.kind == "set":
        return resolve_fields({}, write.data, now)
    if write.kind == "merge":
        return resolve_fields(current or {}, write.data, now)
    if write.kind == "update":
        if current is None:
            raise StoreError("not-found", f"No document to update: {write.ref.path}")
        return resolve_fields(current, write.data, now)
    if write.kind == "create":
        if current is not None:
            raise StoreError("already-exists", f"Document already exists: {write.ref.path}")
        return resolve_fields({}, write.data, now)
    raise StoreError("invalid-argument", f"Unknown write kind: {write.kind}")


class WriteBatch:
    """
    Unconditional multi-document write.

    Writes are applied together on ``commit()`` without pre-read checks.
    """

    def __init__(self, store: "BaseDocumentStore"):
        self._store = store
        self._writes: list[Write] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> "WriteBatch":
        self._writes.append(Write("merge" if merge else "set", DocumentRef(collection, doc_id), data))
        return self

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        self._writes.append(Write("update", DocumentRef(collection, doc_id), data))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._writes.append(Write("delete", DocumentRef(collection, doc_id)))
        return self

    def __len__(self) -> int:
        return len(self._writes)

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("failed-precondition", "Batch already committed")
        self._committed = True
        if self._writes:
            await self._store._commit_and_notify(self._writes, {})


class Transaction(WriteBatch):
    """
    Read-modify-write unit with optimistic concurrency.

    All reads must happen before the first write. Commit fails with
    StoreError("aborted") when a document read here was modified by
    someone else in the meantime.
    """

    def __init__(self, store: "BaseDocumentStore"):
        super().__init__(store)
        self._reads: dict[DocumentRef, int] = {}

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        if self._writes:
            raise StoreError("invalid-argument", "Transactions require all reads before writes")
        snapshot = await self._store.get(collection, doc_id)
        self._reads.setdefault(snapshot.ref, snapshot.version)
        return snapshot

    def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> "Transaction":
        self._writes.append(Write("create", DocumentRef(collection, doc_id), data))
        return self

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("failed-precondition", "Transaction already committed")
        self._committed = True
        if self._writes:
            await self._store._commit_and_notify(self._writes, dict(self._reads))


# =============================================================================
# STORE
# =============================================================================

class BaseDocumentStore(ABC):
    """
    Abstract base class for document stores.

    Subclasses implement four primitives: ``_fetch``, ``_fetch_collection``,
    ``_commit`` and ``provider_name``. Listener fan-out, queries and the
    transaction protocol are provided here.

    Example:
        >>> store = get_document_store()
        >>> order_id = await store.add("orders", {"status": "Pending"})
        >>> snapshot = await store.get("orders", order_id)
        >>> snapshot.data["status"]
        'Pending'
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._listeners: dict[int, _Listener] = {}
        self._next_listener_id = 0

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name (e.g. "memory", "sql")."""
        pass

    @abstractmethod
    async def _fetch(self, ref: DocumentRef) -> DocumentSnapshot:
        """Read one document (missing documents have ``data=None``)."""
        pass

    @abstractmethod
    async def _fetch_collection(self, collection: str) -> list[DocumentSnapshot]:
        """Read every document of a collection."""
        pass

    @abstractmethod
    async def _commit(
        self,
        writes: list[Write],
        read_versions: dict[DocumentRef, int],
    ) -> list[DocumentRef]:
        """
        Atomically verify ``read_versions`` and apply ``writes``.

        Returns:
            References of the documents that changed

        Raises:
            StoreError("aborted") on version mismatch,
            StoreError("not-found") when updating a missing document,
            StoreError("already-exists") when creating an existing one
        """
        pass

    async def health_check(self) -> bool:
        """Verify the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def new_id(self) -> str:
        """Generate a random document id."""
        return uuid.uuid4().hex[:20]

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        if not doc_id:
            raise StoreError("invalid-argument", "Document id is required")
        return await self._fetch(DocumentRef(collection, doc_id))

    async def query(self, query: Query) -> QuerySnapshot:
        docs = await self._fetch_collection(query.collection)
        return QuerySnapshot(query=query, docs=query.apply(docs))

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id()
        await self._commit_and_notify([Write("create", DocumentRef(collection, doc_id), data)], {})
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        kind = "merge" if merge else "set"
        await self._commit_and_notify([Write(kind, DocumentRef(collection, doc_id), data)], {})

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self._commit_and_notify([Write("update", DocumentRef(collection, doc_id), data)], {})

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._commit_and_notify([Write("delete", DocumentRef(collection, doc_id))], {})

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run ``fn`` inside a transaction and commit its writes.

        Conflicts surface as StoreError("aborted"); there is no automatic
        retry here, callers decide.
        """
        transaction = Transaction(self)
        result = await fn(transaction)
        await transaction.commit()
        return result

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    async def on_snapshot(
        self,
        target: ListenTarget,
        on_next: OnNext,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        """
        Attach a real-time listener.

        ``on_next`` receives a QuerySnapshot (Query targets) or a
        DocumentSnapshot (DocumentRef targets), first with the current
        state and then after every committed write touching the target.
        Errors go to ``on_error`` and leave the listener attached.
        """
        listener = _Listener(target, on_next, on_error)
        initial = await self._snapshot_for(target)

        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        self._deliver(listener, initial)
        return Subscription(
            lambda: self._listeners.pop(listener_id, None),
            description=f"{type(target).__name__}({target.collection})",
        )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def _snapshot_for(self, target: ListenTarget) -> Any:
        if isinstance(target, DocumentRef):
            return await self._fetch(target)
        return await self.query(target)

    def _deliver(self, listener: _Listener, snapshot: Any) -> None:
        try:
            listener.on_next(snapshot)
        except Exception:
            logger.exception(f"Listener callback failed for {listener.collection}")

    def _deliver_error(self, listener: _Listener, error: StoreError) -> None:
        if listener.on_error is None:
            logger.warning(f"Unhandled listener error on {listener.collection}: {error!r}")
            return
        try:
            listener.on_error(error)
        except Exception:
            logger.exception(f"Listener error callback failed for {listener.collection}")

    async def _commit_and_notify(
        self,
        writes: list[Write],
        read_versions: dict[DocumentRef, int],
    ) -> None:
        changed = await self._commit(writes, read_versions)
        if changed and self._listeners:
            await self._notify(changed)

    async def _notify(self, changed: list[DocumentRef]) -> None:
        changed_collections = {ref.collection for ref in changed}
        for listener_id, listener in list(self._listeners.items()):
            if listener_id not in self._listeners:
                continue
            target = listener.target
            if isinstance(target, DocumentRef):
                if target not in changed:
                    continue
            elif target.collection not in changed_collections:
                continue
            try:
                snapshot = await self._snapshot_for(target)
            except StoreError as e:
                if listener_id in self._listeners:
                    self._deliver_error(listener, e)
                continue
            # Unsubscribed while the snapshot was loading
            if listener_id in self._listeners:
                self._deliver(listener, snapshot)

    def _broadcast_error(self, error: StoreError, collection: Optional[str] = None) -> int:
        """Deliver ``error`` to listeners (optionally of one collection)."""
        delivered = 0
        for listener_id, listener in list(self._listeners.items()):
            if listener_id not in self._listeners:
                continue
            if collection is None or listener.collection == collection:
                self._deliver_error(listener, error)
                delivered += 1
        return delivered
