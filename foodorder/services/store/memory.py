"""
In-Memory Document Store

Development and test backend. Holds documents in process memory and
behaves like a remote store where it matters:

- Every call yields to the event loop (optionally after a simulated
  latency) so concurrent callers interleave
- Documents are deep-copied on the way in and out
- Transactions abort when a document they read was written meanwhile
- Failures can be injected for the next N calls

Version: 1.0.0
"""

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from foodorder.services.store.base import (
    BaseDocumentStore,
    DocumentRef,
    DocumentSnapshot,
    StoreError,
    Write,
    apply_write,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(BaseDocumentStore):
    """In-memory document store with optimistic versioning."""

    def __init__(self, latency: float = 0.0, clock: Optional[Callable] = None):
        super().__init__(clock=clock)
        self.latency = latency
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        # Versions survive deletes so a re-created document never reuses one
        self._versions: dict[DocumentRef, int] = {}
        self._injected: list[StoreError] = []
        self.commit_count = 0
        logger.info(f"InMemoryDocumentStore initialized (latency={latency}s)")

    @property
    def provider_name(self) -> str:
        return "memory"

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def inject_failure(self, error: StoreError, times: int = 1) -> None:
        """Make the next ``times`` store calls raise ``error``."""
        self._injected.extend([error] * times)

    def simulate_listener_error(self, error: StoreError, collection: Optional[str] = None) -> int:
        """Push a runtime error to live listeners. Returns how many got it."""
        return self._broadcast_error(error, collection)

    def dump(self, collection: str) -> dict[str, dict[str, Any]]:
        """Raw copy of a collection (id -> data)."""
        return {doc_id: copy.deepcopy(data) for doc_id, data in self._collections[collection].items()}

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    async def _roundtrip(self) -> None:
        await asyncio.sleep(self.latency)
        if self._injected:
            raise self._injected.pop(0)

    def _snapshot(self, ref: DocumentRef) -> DocumentSnapshot:
        data = self._collections[ref.collection].get(ref.id)
        return DocumentSnapshot(
            collection=ref.collection,
            id=ref.id,
            data=copy.deepcopy(data) if data is not None else None,
            version=self._versions.get(ref, 0),
        )

    async def _fetch(self, ref: DocumentRef) -> DocumentSnapshot:
        await self._roundtrip()
        return self._snapshot(ref)

    async def _fetch_collection(self, collection: str) -> list[DocumentSnapshot]:
        await self._roundtrip()
        return [self._snapshot(DocumentRef(collection, doc_id)) for doc_id in list(self._collections[collection])]

    async def _commit(
        self,
        writes: list[Write],
        read_versions: dict[DocumentRef, int],
    ) -> list[DocumentRef]:
        await self._roundtrip()

        # No awaits below: check and apply happen atomically on the loop
        for ref, version in read_versions.items():
            if self._versions.get(ref, 0) != version:
                logger.debug(f"Transaction aborted: {ref.path} changed (read v{version})")
                raise StoreError("aborted", f"Document {ref.path} was modified concurrently")

        now = self.now()
        staged: dict[DocumentRef, Optional[dict[str, Any]]] = {}
        for write in writes:
            ref = write.ref
            current = staged[ref] if ref in staged else self._collections[ref.collection].get(ref.id)
            staged[ref] = apply_write(write, current, now)

        for ref, data in staged.items():
            if data is None:
                self._collections[ref.collection].pop(ref.id, None)
            else:
                self._collections[ref.collection][ref.id] = data
            self._versions[ref] = self._versions.get(ref, 0) + 1

        self.commit_count += 1
        return list(staged)
