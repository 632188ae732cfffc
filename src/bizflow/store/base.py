"""Document backend protocol and shared helpers."""

from __future__ import annotations

import secrets
import string
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

# id -> persisted document, in commit order
Documents = dict[str, dict[str, Any]]

SnapshotListener = Callable[[Documents], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

_ID_ALPHABET = string.ascii_letters + string.digits


def new_document_id(length: int = 20) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def collection_path(app_id: str, actor_id: str, collection: str) -> str:
    """Private data path: artifacts/{app_id}/users/{actor_id}/{collection}."""
    return f"artifacts/{app_id}/users/{actor_id}/{collection}"


@runtime_checkable
class DocumentBackend(Protocol):
    """Protocol that all realtime document stores must implement.

    ``listen`` calls ``on_snapshot`` with the full collection right away and
    again after every committed change. Callbacks may arrive on any thread.
    """

    @property
    def name(self) -> str: ...

    async def add(self, path: str, data: dict[str, Any]) -> str:
        """Create a document and return its assigned id."""
        ...

    async def update(self, path: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge ``data`` into an existing document."""
        ...

    async def delete(self, path: str, doc_id: str) -> None:
        ...

    async def fetch(self, path: str) -> Documents:
        """One-shot read of the whole collection."""
        ...

    def listen(
        self, path: str, on_snapshot: SnapshotListener, on_error: ErrorListener
    ) -> Unsubscribe:
        ...

    async def close(self) -> None:
        ...
