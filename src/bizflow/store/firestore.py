"""Cloud Firestore backend via the Firebase Admin SDK.

Requires: pip install 'bizflow[firestore]'

Limitation: the SDK closes a failed watch stream without invoking the
snapshot callback, so a broken listener is not reported through
``on_error``; only exceptions raised while delivering a snapshot are.
Write failures still surface as ``SyncFailure`` from the entity store.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from bizflow.store.base import Documents, ErrorListener, SnapshotListener, Unsubscribe

logger = logging.getLogger(__name__)


class FirestoreBackend:
    """Realtime document store on Firestore. Watches call back on SDK threads."""

    def __init__(self, project_id: str = "", credentials_path: Path | None = None) -> None:
        try:
            import firebase_admin
            from firebase_admin import credentials, firestore
        except ImportError:
            raise ImportError(
                "firebase-admin package required. Install with: pip install 'bizflow[firestore]'"
            )

        try:
            app = firebase_admin.get_app()
        except ValueError:
            cred = (
                credentials.Certificate(str(credentials_path))
                if credentials_path
                else credentials.ApplicationDefault()
            )
            options = {"projectId": project_id} if project_id else None
            app = firebase_admin.initialize_app(cred, options)
            logger.info("Firebase Admin initialized (project=%s)", project_id or "default")
        self._client = firestore.client(app)

    @property
    def name(self) -> str:
        return "firestore"

    def _collection(self, path: str):
        return self._client.collection(path)

    async def add(self, path: str, data: dict[str, Any]) -> str:
        _, ref = await asyncio.to_thread(self._collection(path).add, data)
        return ref.id

    async def update(self, path: str, doc_id: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._collection(path).document(doc_id).update, data)

    async def delete(self, path: str, doc_id: str) -> None:
        await asyncio.to_thread(self._collection(path).document(doc_id).delete)

    async def fetch(self, path: str) -> Documents:
        docs = await asyncio.to_thread(lambda: list(self._collection(path).stream()))
        return {doc.id: doc.to_dict() or {} for doc in docs}

    def listen(
        self, path: str, on_snapshot: SnapshotListener, on_error: ErrorListener
    ) -> Unsubscribe:
        def callback(docs, changes, read_time) -> None:
            try:
                on_snapshot({doc.id: doc.to_dict() or {} for doc in docs})
            except Exception as e:
                on_error(e)

        watch = self._collection(path).on_snapshot(callback)
        return watch.unsubscribe

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)
