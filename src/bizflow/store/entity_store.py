"""Per-collection entity store scoped to the signed-in actor.

``EntityStore.subscribe`` returns a ``Subscription``: an async iterator that
yields the full collection as a ``Snapshot`` right away and again after every
committed change, until ``cancel()`` is called. Backend failures are turned
into ``SyncFailure``; the subscription keeps its last known snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from bizflow.errors import NotReady, SyncFailure, ValidationFailure
from bizflow.models import Record, normalize_patch, record_type, strip_transient
from bizflow.store.base import Documents

if TYPE_CHECKING:
    from bizflow.session import Session

logger = logging.getLogger(__name__)

FailureHandler = Callable[[SyncFailure], None]

_CLOSED = object()


class Snapshot(Mapping[str, Record]):
    """Complete contents of one collection at a point in time."""

    def __init__(self, collection: str, records: dict[str, Record], version: int = 0) -> None:
        self.collection = collection
        self.version = version
        self._records = records

    @classmethod
    def empty(cls, collection: str) -> Snapshot:
        return cls(collection, {})

    def __getitem__(self, doc_id: str) -> Record:
        return self._records[doc_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[Record]:
        return list(self._records.values())

    def __repr__(self) -> str:
        return f"Snapshot({self.collection!r}, {len(self)} records, version={self.version})"


class Subscription:
    """Cancellable stream of snapshots for one collection."""

    def __init__(self, store: EntityStore, on_error: FailureHandler | None = None) -> None:
        self._store = store
        self._on_error = on_error
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._unsubscribe: Callable[[], None] | None = None
        self._version = 0
        self.cancelled = False
        self.latest: Snapshot | None = None
        self.error: SyncFailure | None = None

    @property
    def collection(self) -> str:
        return self._store.collection

    def _attach(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        if self.cancelled:
            unsubscribe()

    # Backend callbacks may fire on foreign threads; hop onto the loop.

    def _on_snapshot(self, documents: Documents) -> None:
        self._loop.call_soon_threadsafe(self._deliver, documents)

    def _on_backend_error(self, error: Exception) -> None:
        self._loop.call_soon_threadsafe(self._fail, error)

    def _deliver(self, documents: Documents) -> None:
        if self.cancelled:
            return
        self._version += 1
        snapshot = self._store.to_snapshot(documents, self._version)
        self.latest = snapshot
        self.error = None
        self._queue.put_nowait(snapshot)

    def _fail(self, error: Exception) -> None:
        if self.cancelled:
            return
        failure = error if isinstance(error, SyncFailure) else SyncFailure(self.collection, str(error))
        self.error = failure
        logger.error("Sync failure on %s: %s", self.collection, error)
        if self._on_error is not None:
            self._on_error(failure)

    def cancel(self) -> None:
        """Stop delivery immediately. Safe to call more than once."""
        if self.cancelled:
            return
        self.cancelled = True
        if self._unsubscribe is not None:
            self._unsubscribe()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        self._store._forget(self)
        logger.debug("Unsubscribed from %s", self.collection)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Snapshot:
        if self.cancelled and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self.cancelled:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.cancel()


class EntityStore:
    """Realtime access to one collection for the current actor."""

    def __init__(self, session: Session, collection: str) -> None:
        self._session = session
        self.collection = collection
        self.record_type = record_type(collection)
        self._subscriptions: set[Subscription] = set()
        session.coordinator.on_teardown(self.close_subscriptions)

    def _path(self) -> str:
        return self._session.collection_path(self.collection)

    def to_snapshot(self, documents: Documents, version: int = 0) -> Snapshot:
        records: dict[str, Record] = {}
        for doc_id, data in documents.items():
            try:
                records[doc_id] = self.record_type.from_dict(data, id=doc_id)
            except ValidationFailure as e:
                logger.warning("Skipping malformed %s document %s: %s", self.collection, doc_id, e)
        return Snapshot(self.collection, records, version)

    def _prepare(self, record: Record | Mapping[str, Any] | Any) -> dict[str, Any]:
        """Validate a new record and return its persisted form."""
        if isinstance(record, Record):
            if not isinstance(record, self.record_type):
                raise ValidationFailure(
                    f"Cannot store {type(record).__name__} in {self.collection}"
                )
            return record.to_dict()
        if hasattr(record, "to_dict"):
            record = record.to_dict()
        if not isinstance(record, Mapping):
            raise ValidationFailure(f"Unsupported record for {self.collection}: {record!r}")
        data = strip_transient(record)
        data.pop("id", None)
        unknown = set(data) - set(self.record_type.document_keys())
        if unknown:
            raise ValidationFailure(f"Unknown fields for {self.collection}: {sorted(unknown)}")
        return self.record_type.from_dict(data).to_dict()

    # ── Subscriptions ─────────────────────────────────────────

    def subscribe(
        self, actor_id: str | None = None, on_error: FailureHandler | None = None
    ) -> Subscription:
        """Start streaming snapshots of this collection for the current actor."""
        current = self._session.coordinator.require_actor()
        if actor_id is not None and actor_id != current:
            raise NotReady(f"Actor {actor_id} is not the signed-in actor")
        path = self._path()
        subscription = Subscription(self, on_error)
        self._subscriptions.add(subscription)
        try:
            unsubscribe = self._session.backend.listen(
                path, subscription._on_snapshot, subscription._on_backend_error
            )
        except Exception as e:
            self._subscriptions.discard(subscription)
            raise SyncFailure(self.collection, str(e)) from e
        subscription._attach(unsubscribe)
        logger.debug("Subscribed to %s", path)
        return subscription

    def _forget(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    def close_subscriptions(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()

    # ── Writes ────────────────────────────────────────────────

    async def create(self, record: Record | Mapping[str, Any]) -> str:
        data = self._prepare(record)
        path = self._path()
        try:
            doc_id = await self._session.backend.add(path, data)
        except Exception as e:
            raise SyncFailure(self.collection, str(e)) from e
        logger.info("Created %s %s", self.collection, doc_id)
        return doc_id

    async def update(self, doc_id: str, patch: Mapping[str, Any]) -> None:
        data = normalize_patch(self.record_type, patch, allow_status=True)
        path = self._path()
        if not data:
            return
        try:
            await self._session.backend.update(path, doc_id, data)
        except Exception as e:
            raise SyncFailure(self.collection, str(e)) from e
        logger.info("Updated %s %s (%s)", self.collection, doc_id, ", ".join(data))

    async def delete(self, doc_id: str) -> None:
        path = self._path()
        try:
            await self._session.backend.delete(path, doc_id)
        except Exception as e:
            raise SyncFailure(self.collection, str(e)) from e
        logger.info("Deleted %s %s", self.collection, doc_id)

    async def fetch(self) -> Snapshot:
        """One-shot read of the collection."""
        path = self._path()
        try:
            documents = await self._session.backend.fetch(path)
        except Exception as e:
            raise SyncFailure(self.collection, str(e)) from e
        return self.to_snapshot(documents)
