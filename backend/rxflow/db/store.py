"""
DocumentStore: the port every subscription store implements.

A store holds one collection of camelCase records keyed by id and pushes
full-collection snapshots to its listeners whenever the collection
changes. Listeners receive a list of (id, record) pairs.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from rxflow.config import config

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Snapshot = List[Tuple[str, Record]]
SnapshotListener = Callable[[Snapshot], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class StoreError(Exception):
    """Raised when the backing store fails a read or write."""
    pass


class DocumentNotFound(StoreError):
    """Raised when patch, delete or get names an id that does not exist."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class DocumentStore(ABC):
    """Abstract subscription store."""

    @abstractmethod
    def subscribe(
        self,
        listener: SnapshotListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        """Register for snapshots. Returns a callable that stops delivery."""

    @abstractmethod
    def create(self, record: Record) -> str:
        """Insert a record and return its new id."""

    @abstractmethod
    def patch(self, document_id: str, fields: Record) -> None:
        """Replace the given top-level fields of an existing record."""

    @abstractmethod
    def delete(self, document_id: str) -> None:
        """Remove a record permanently."""

    @abstractmethod
    def get(self, document_id: str) -> Optional[Record]:
        """Return one record, or None if it does not exist."""

    @abstractmethod
    def list(self) -> Snapshot:
        """Return the current full-collection snapshot."""


class ObservableStore(DocumentStore):
    """
    Base for stores that own their writes.

    Delivers the current snapshot on subscribe and a fresh snapshot after
    every successful write. Snapshots are read and delivered under one
    lock, so they reach listeners in the order they were read. Listener
    failures go to that listener's on_error; without one they propagate
    to the writer after the write has been applied.
    """

    def __init__(self):
        self._listeners: Dict[int, Tuple[SnapshotListener, Optional[ErrorListener]]] = {}
        self._listener_seq = 0
        self._listener_lock = threading.Lock()
        self._delivery_lock = threading.RLock()

    def subscribe(self, listener, on_error=None):
        with self._listener_lock:
            self._listener_seq += 1
            token = self._listener_seq
            self._listeners[token] = (listener, on_error)

        with self._delivery_lock:
            self._deliver(listener, on_error)

        def unsubscribe():
            with self._listener_lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def _notify(self) -> None:
        with self._listener_lock:
            listeners = list(self._listeners.values())
        with self._delivery_lock:
            for listener, on_error in listeners:
                self._deliver(listener, on_error)

    def _deliver(self, listener: SnapshotListener, on_error: Optional[ErrorListener]) -> None:
        try:
            snapshot = self.list()
        except StoreError as e:
            logger.error("Snapshot read failed: %s", e)
            if on_error is not None:
                on_error(e)
            return

        try:
            listener(snapshot)
        except Exception as e:
            logger.exception("Snapshot listener failed")
            if on_error is None:
                raise
            on_error(e)


# =============================================================================
# Factory
# =============================================================================

_document_store: Optional[DocumentStore] = None


def build_document_store(backend: Optional[str] = None) -> DocumentStore:
    """Construct the store named by `backend` (defaults to STORE_BACKEND)."""
    backend = (backend or config.STORE_BACKEND).lower()
    collection = config.SUBSCRIPTIONS_COLLECTION

    if backend == "memory":
        from rxflow.db.memory_store import MemoryDocumentStore
        return MemoryDocumentStore()

    if backend == "sql":
        from rxflow.db.postgres import get_session_factory
        from rxflow.db.sql_store import SqlDocumentStore
        return SqlDocumentStore(get_session_factory(), collection=collection)

    if backend == "firestore":
        from rxflow.db.firestore import FirestoreDocumentStore, get_firestore_client
        client = get_firestore_client()
        if client is None:
            raise StoreError("Firestore store selected but Firestore is not available")
        return FirestoreDocumentStore(client, collection=collection)

    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


def get_document_store() -> DocumentStore:
    """Get the process-wide store singleton."""
    global _document_store
    if _document_store is None:
        _document_store = build_document_store()
        logger.info("Using %s", type(_document_store).__name__)
    return _document_store


def set_document_store(store: Optional[DocumentStore]) -> None:
    """Replace the singleton (tests, scripts). None resets it."""
    global _document_store
    _document_store = store
