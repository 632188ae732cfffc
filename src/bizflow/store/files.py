"""Local file backend: one Markdown document per record.

Layout:
    ~/.bizflow/data/
    ├── artifacts/{app_id}/users/{actor_id}/
    │   ├── appointments/
    │   │   └── {id}.md              # YAML frontmatter holds the document
    │   ├── quotations/
    │   ├── invoices/
    │   └── receipts/
    └── .versions/                   # Timestamped backups (10 per document)

Markdown files are the source of truth. An in-memory index per collection
(loaded on first access, updated on every write) keeps commit order and
avoids repeated disk scans. Listeners in this process are notified after each
committed write.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import frontmatter

from bizflow.store.base import (
    Documents,
    ErrorListener,
    SnapshotListener,
    Unsubscribe,
    new_document_id,
)

logger = logging.getLogger(__name__)

MAX_VERSIONS = 10


class FileBackend:
    """Read/write access to documents stored as frontmatter Markdown files."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._index: dict[str, dict[str, dict[str, Any]]] = {}
        self._listeners: dict[str, list[tuple[SnapshotListener, ErrorListener]]] = {}
        (self.root / ".versions").mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "file"

    # ── Index ─────────────────────────────────────────────────

    def _dir(self, path: str) -> Path:
        return self.root / path

    def _load(self, path: str) -> dict[str, dict[str, Any]]:
        """Scan a collection directory once, keyed by id in commit order."""
        if path in self._index:
            return self._index[path]
        entries: list[dict[str, Any]] = []
        directory = self._dir(path)
        if directory.is_dir():
            for md_file in directory.glob("*.md"):
                meta = self._parse_frontmatter(md_file)
                if not meta.get("id"):
                    logger.warning("Skipping document without id: %s", md_file)
                    continue
                entries.append(meta)
        entries.sort(key=lambda m: (m.get("seq", 0), m["id"]))
        self._index[path] = {m["id"]: m for m in entries}
        return self._index[path]

    def _parse_frontmatter(self, md_file: Path) -> dict[str, Any]:
        try:
            return dict(frontmatter.load(str(md_file)).metadata)
        except Exception as e:
            logger.warning("Unreadable document %s: %s", md_file, e)
            return {}

    def _documents(self, path: str) -> Documents:
        return {doc_id: copy.deepcopy(meta.get("data") or {}) for doc_id, meta in self._load(path).items()}

    # ── Files ─────────────────────────────────────────────────

    def _file(self, path: str, doc_id: str) -> Path:
        return self._dir(path) / f"{doc_id}.md"

    def _write(self, path: str, meta: dict[str, Any]) -> None:
        collection = path.rsplit("/", 1)[-1]
        data = meta["data"]
        title = data.get("clientName") or meta["id"]
        post = frontmatter.Post(f"# {collection[:-1].title()}: {title}\n", **meta)
        target = self._file(path, meta["id"])
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")

    def _backup(self, path: str, doc_id: str) -> None:
        """Backup to .versions/, keep at most MAX_VERSIONS per document."""
        source = self._file(path, doc_id)
        if not source.exists():
            return
        versions_dir = self.root / ".versions"
        ts = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        (versions_dir / f"{doc_id}-{ts}.md").write_text(
            source.read_text(encoding="utf-8"), encoding="utf-8"
        )
        old = sorted(versions_dir.glob(f"{doc_id}-*.md"))
        for f in old[:-MAX_VERSIONS]:
            f.unlink()

    # ── Listeners ─────────────────────────────────────────────

    def _notify(self, path: str) -> None:
        listeners = list(self._listeners.get(path, []))
        if not listeners:
            return
        snapshot = self._documents(path)
        for on_snapshot, _ in listeners:
            on_snapshot(copy.deepcopy(snapshot))

    # ── Backend protocol ──────────────────────────────────────

    async def add(self, path: str, data: dict[str, Any]) -> str:
        index = self._load(path)
        doc_id = new_document_id()
        while doc_id in index:
            doc_id = new_document_id()
        ts = datetime.now().isoformat(timespec="seconds")
        seq = max((m.get("seq", 0) for m in index.values()), default=0) + 1
        meta = {"id": doc_id, "seq": seq, "created": ts, "updated": ts, "data": copy.deepcopy(data)}
        self._write(path, meta)
        index[doc_id] = meta
        logger.debug("Created %s/%s", path, doc_id)
        self._notify(path)
        return doc_id

    async def update(self, path: str, doc_id: str, data: dict[str, Any]) -> None:
        index = self._load(path)
        if doc_id not in index:
            raise KeyError(f"No document to update: {doc_id}")
        self._backup(path, doc_id)
        meta = copy.deepcopy(index[doc_id])
        meta["data"].update(copy.deepcopy(data))
        meta["updated"] = datetime.now().isoformat(timespec="seconds")
        self._write(path, meta)
        index[doc_id] = meta
        logger.debug("Updated %s/%s", path, doc_id)
        self._notify(path)

    async def delete(self, path: str, doc_id: str) -> None:
        index = self._load(path)
        if doc_id in index:
            self._backup(path, doc_id)
            self._file(path, doc_id).unlink(missing_ok=True)
            index.pop(doc_id)
            logger.debug("Deleted %s/%s", path, doc_id)
        self._notify(path)

    async def fetch(self, path: str) -> Documents:
        return self._documents(path)

    def listen(
        self, path: str, on_snapshot: SnapshotListener, on_error: ErrorListener
    ) -> Unsubscribe:
        entry = (on_snapshot, on_error)
        self._listeners.setdefault(path, []).append(entry)
        try:
            snapshot = self._documents(path)
        except OSError as e:
            on_error(e)
        else:
            on_snapshot(snapshot)

        def unsubscribe() -> None:
            listeners = self._listeners.get(path, [])
            if entry in listeners:
                listeners.remove(entry)

        return unsubscribe

    async def close(self) -> None:
        self._listeners.clear()
        self._index.clear()
