"""JSON-file document store backing products, carts, orders, and users.

Documents are plain dicts grouped into named collections. Every write is flushed
to disk so carts and orders survive restarts; reads return copies so callers can
never mutate stored documents in place.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("voiceshop.store")

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]


class PersistenceError(RuntimeError):
    """Raised when the backing file cannot be written."""


class JsonDocumentStore:
    """Thread-safe collection store persisted as a single JSON file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Purpose: Initialize the store and hydrate collections from disk if available.
        Inputs/Outputs: Input is an optional file path (None keeps data in memory only).
        Side Effects / State: Loads collections into memory.
        Dependencies: Calls _load.
        Failure Modes: Corrupt JSON is logged and leaves empty collections.
        If Removed: Carts, orders, and users have nowhere to live.
        Testing Notes: Write through one instance and read through a fresh one.
        """
        self._path = path
        self._lock = threading.RLock()
        self._collections: Dict[str, List[Document]] = {}
        self._load()

    def _load(self) -> None:
        # Read and decode persisted JSON if present.
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("store=%s status=corrupt action=start_empty", self._path)
            return
        if not isinstance(data, dict):
            return
        for name, documents in data.items():
            if isinstance(documents, list):
                self._collections[name] = [doc for doc in documents if isinstance(doc, dict)]

    def _persist(self) -> None:
        """Purpose: Flush all collections to disk.
        Inputs/Outputs: Writes to self._path; no return value.
        Side Effects / State: Replaces the JSON file through a temporary sibling.
        Dependencies: Uses json.dumps and Path.replace.
        Failure Modes: IO errors raise PersistenceError.
        If Removed: Writes are lost on restart.
        Testing Notes: Point the store at an unwritable path and expect PersistenceError.
        """
        if not self._path:
            return
        payload = json.dumps(self._collections, ensure_ascii=False, indent=2)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            raise PersistenceError(f"could not write {self._path}: {exc}") from exc

    def find(
        self,
        collection: str,
        filter: Optional[Document] = None,
        predicate: Optional[Predicate] = None,
        sort_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Purpose: Return copies of documents matching an equality filter.
        Inputs/Outputs: Inputs are the collection name, an optional key/value
            filter, an optional predicate, sort key/direction, and a limit.
        Side Effects / State: None.
        Dependencies: Uses _matches.
        Failure Modes: Unknown collections return an empty list.
        If Removed: Catalog, cart, and order reads break.
        Testing Notes: Verify sort order and limit on a small collection.
        """
        with self._lock:
            documents = [
                doc
                for doc in self._collections.get(collection, [])
                if _matches(doc, filter) and (predicate is None or predicate(doc))
            ]
            if sort_by:
                documents = sorted(documents, key=lambda doc: doc.get(sort_by) or "", reverse=descending)
            if limit is not None:
                documents = documents[: max(limit, 0)]
            return copy.deepcopy(documents)

    def find_one(self, collection: str, filter: Optional[Document] = None) -> Optional[Document]:
        found = self.find(collection, filter, limit=1)
        return found[0] if found else None

    def insert(self, collection: str, document: Document) -> Document:
        """Purpose: Insert a document, assigning an id when it has none.
        Inputs/Outputs: Inputs are collection and document; returns the stored copy.
        Side Effects / State: Appends to the collection and persists.
        Dependencies: Uses uuid and _persist.
        Failure Modes: PersistenceError on write failure (the insert is rolled back).
        If Removed: Orders and users cannot be created.
        Testing Notes: Inserted documents get a 32-char hex id.
        """
        stored = copy.deepcopy(document)
        stored.setdefault("id", uuid.uuid4().hex)
        with self._lock:
            docs = self._collections.setdefault(collection, [])
            docs.append(stored)
            try:
                self._persist()
            except PersistenceError:
                docs.pop()
                raise
            return copy.deepcopy(stored)

    def insert_many(self, collection: str, documents: List[Document]) -> int:
        with self._lock:
            docs = self._collections.setdefault(collection, [])
            before = len(docs)
            for document in documents:
                stored = copy.deepcopy(document)
                stored.setdefault("id", uuid.uuid4().hex)
                docs.append(stored)
            try:
                self._persist()
            except PersistenceError:
                del docs[before:]
                raise
            return len(documents)

    def update_one(
        self,
        collection: str,
        filter: Document,
        values: Document,
        upsert: bool = False,
    ) -> Optional[Document]:
        """Purpose: Set fields on the first matching document, optionally inserting.
        Inputs/Outputs: Inputs are collection, filter, new values, and upsert flag;
            returns the updated copy or None when nothing matched.
        Side Effects / State: Mutates the collection and persists.
        Dependencies: Uses _matches and _persist.
        Failure Modes: PersistenceError on write failure (previous values restored).
        If Removed: Carts cannot be saved.
        Testing Notes: upsert=True on an empty collection creates the document.
        """
        with self._lock:
            docs = self._collections.setdefault(collection, [])
            for index, doc in enumerate(docs):
                if _matches(doc, filter):
                    previous = doc
                    updated = copy.deepcopy(doc)
                    updated.update(copy.deepcopy(values))
                    docs[index] = updated
                    try:
                        self._persist()
                    except PersistenceError:
                        docs[index] = previous
                        raise
                    return copy.deepcopy(updated)
            if not upsert:
                return None
            document = dict(filter)
            document.update(values)
            return self.insert(collection, document)

    def delete_many(self, collection: str, filter: Optional[Document] = None) -> int:
        with self._lock:
            docs = self._collections.get(collection, [])
            kept = [doc for doc in docs if not _matches(doc, filter)]
            removed = len(docs) - len(kept)
            if removed:
                self._collections[collection] = kept
                try:
                    self._persist()
                except PersistenceError:
                    self._collections[collection] = docs
                    raise
            return removed

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, []))

    def ping(self) -> bool:
        """Report whether the backing file location is usable."""
        if not self._path:
            return True
        directory = self._path.parent
        return directory.exists() and directory.is_dir()


def _matches(document: Document, filter: Optional[Document]) -> bool:
    # Equality on every filter key; None filter matches everything.
    if not filter:
        return True
    return all(document.get(key) == value for key, value in filter.items())
