"""In-process realtime backend, used for tests and throwaway sessions."""

from __future__ import annotations

import copy
import logging
from typing import Any

from bizflow.store.base import (
    Documents,
    ErrorListener,
    SnapshotListener,
    Unsubscribe,
    new_document_id,
)

logger = logging.getLogger(__name__)


class MemoryBackend:
    """Keeps every collection in a dict and pushes snapshots to listeners."""

    def __init__(self) -> None:
        self._collections: dict[str, Documents] = {}
        self._listeners: dict[str, list[tuple[SnapshotListener, ErrorListener]]] = {}

    @property
    def name(self) -> str:
        return "memory"

    def _snapshot(self, path: str) -> Documents:
        return copy.deepcopy(self._collections.get(path, {}))

    def _notify(self, path: str) -> None:
        snapshot = self._snapshot(path)
        for on_snapshot, _ in list(self._listeners.get(path, [])):
            on_snapshot(copy.deepcopy(snapshot))

    async def add(self, path: str, data: dict[str, Any]) -> str:
        docs = self._collections.setdefault(path, {})
        doc_id = new_document_id()
        while doc_id in docs:
            doc_id = new_document_id()
        docs[doc_id] = copy.deepcopy(data)
        self._notify(path)
        return doc_id

    async def update(self, path: str, doc_id: str, data: dict[str, Any]) -> None:
        docs = self._collections.get(path, {})
        if doc_id not in docs:
            raise KeyError(f"No document to update: {doc_id}")
        docs[doc_id].update(copy.deepcopy(data))
        self._notify(path)

    async def delete(self, path: str, doc_id: str) -> None:
        self._collections.get(path, {}).pop(doc_id, None)
        self._notify(path)

    async def fetch(self, path: str) -> Documents:
        return self._snapshot(path)

    def listen(
        self, path: str, on_snapshot: SnapshotListener, on_error: ErrorListener
    ) -> Unsubscribe:
        entry = (on_snapshot, on_error)
        self._listeners.setdefault(path, []).append(entry)
        on_snapshot(self._snapshot(path))

        def unsubscribe() -> None:
            listeners = self._listeners.get(path, [])
            if entry in listeners:
                listeners.remove(entry)

        return unsubscribe

    def fail(self, path: str, error: Exception) -> None:
        """Push a backend error to every listener of ``path``."""
        for _, on_error in list(self._listeners.get(path, [])):
            on_error(error)

    async def close(self) -> None:
        self._listeners.clear()
