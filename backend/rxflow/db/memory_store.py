"""
In-process document store.

Default backend for local runs and tests. Records are deep-copied in and
out so callers never share state with the store.
"""

import copy
import threading
import uuid
from typing import Dict, Optional

from rxflow.db.store import DocumentNotFound, ObservableStore, Record, Snapshot


class MemoryDocumentStore(ObservableStore):
    """Dictionary-backed store with an in-process change feed."""

    def __init__(self):
        super().__init__()
        self._records: Dict[str, Record] = {}
        self._lock = threading.RLock()

    def create(self, record: Record) -> str:
        document_id = uuid.uuid4().hex
        with self._lock:
            self._records[document_id] = copy.deepcopy(record)
        self._notify()
        return document_id

    def patch(self, document_id: str, fields: Record) -> None:
        with self._lock:
            if document_id not in self._records:
                raise DocumentNotFound(document_id)
            self._records[document_id].update(copy.deepcopy(fields))
        self._notify()

    def delete(self, document_id: str) -> None:
        with self._lock:
            if document_id not in self._records:
                raise DocumentNotFound(document_id)
            del self._records[document_id]
        self._notify()

    def get(self, document_id: str) -> Optional[Record]:
        with self._lock:
            record = self._records.get(document_id)
            return copy.deepcopy(record) if record is not None else None

    def list(self) -> Snapshot:
        with self._lock:
            return [(doc_id, copy.deepcopy(record)) for doc_id, record in self._records.items()]
