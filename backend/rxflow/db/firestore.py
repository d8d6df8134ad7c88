"""
Firestore client wrapper and document store.

Supports multiple databases based on DATABASE_MODE:
- local: uses 'rxflow-dev' database
- cloud: uses '(default)' database

google-cloud-firestore is an optional dependency and is imported only
when a client is first requested.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from rxflow.config import config
from rxflow.db.store import DocumentNotFound, DocumentStore, Record, Snapshot, StoreError

logger = logging.getLogger(__name__)

# Firestore client (initialized lazily)
_firestore_client = None


def firestore_enabled() -> bool:
    """Check if Firestore is enabled in config."""
    return config.ENABLE_FIRESTORE


def get_firestore_client():
    """
    Get or create the Firestore client.

    Returns None if Firestore is disabled or the credentials file is missing.
    """
    global _firestore_client

    if not firestore_enabled():
        return None

    if _firestore_client is not None:
        return _firestore_client

    # Resolve credentials path relative to backend/
    creds_path = config.GCP_CREDENTIALS_PATH
    if not os.path.isabs(creds_path):
        backend_dir = Path(__file__).parent.parent.parent
        creds_path = backend_dir / creds_path

    if not os.path.exists(creds_path):
        logger.warning("Firestore credentials not found: %s", creds_path)
        return None

    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = str(creds_path)

    from google.cloud import firestore

    database_id = config.get_firestore_database()
    _firestore_client = firestore.Client(
        project=config.GCP_PROJECT_ID,
        database=database_id,
    )
    logger.info("Firestore connected to project %s, database %s", config.GCP_PROJECT_ID, database_id)
    return _firestore_client


class FirestoreDocumentStore(DocumentStore):
    """
    Subscription store on a Firestore collection.

    The change feed is Firestore's own on_snapshot listener, so writes by
    any client reach every subscriber.
    """

    def __init__(self, client, collection: str = "subscriptions"):
        self._client = client
        self.collection = collection

    @property
    def _collection(self):
        return self._client.collection(self.collection)

    def subscribe(self, listener, on_error=None):
        def _on_snapshot(documents, changes, read_time):
            try:
                listener([(doc.id, doc.to_dict()) for doc in documents])
            except Exception as e:
                logger.exception("Snapshot listener failed")
                if on_error is None:
                    raise
                on_error(e)

        try:
            watch = self._collection.on_snapshot(_on_snapshot)
        except Exception as e:
            logger.error("Could not open Firestore listener on %s: %s", self.collection, e)
            raise StoreError(str(e)) from e
        return watch.unsubscribe

    def create(self, record: Record) -> str:
        try:
            _, ref = self._collection.add(dict(record))
        except Exception as e:
            logger.error("Firestore add to %s failed: %s", self.collection, e)
            raise StoreError(str(e)) from e
        return ref.id

    def _existing_ref(self, document_id: str):
        ref = self._collection.document(document_id)
        if not ref.get().exists:
            raise DocumentNotFound(document_id)
        return ref

    def patch(self, document_id: str, fields: Record) -> None:
        try:
            self._existing_ref(document_id).update(dict(fields))
        except DocumentNotFound:
            raise
        except Exception as e:
            logger.error("Firestore update of %s/%s failed: %s", self.collection, document_id, e)
            raise StoreError(str(e)) from e

    def delete(self, document_id: str) -> None:
        try:
            self._existing_ref(document_id).delete()
        except DocumentNotFound:
            raise
        except Exception as e:
            logger.error("Firestore delete of %s/%s failed: %s", self.collection, document_id, e)
            raise StoreError(str(e)) from e

    def get(self, document_id: str) -> Optional[Record]:
        try:
            snapshot = self._collection.document(document_id).get()
        except Exception as e:
            logger.error("Firestore read of %s/%s failed: %s", self.collection, document_id, e)
            raise StoreError(str(e)) from e
        return snapshot.to_dict() if snapshot.exists else None

    def list(self) -> Snapshot:
        try:
            return [(doc.id, doc.to_dict()) for doc in self._collection.stream()]
        except Exception as e:
            logger.error("Firestore listing of %s failed: %s", self.collection, e)
            raise StoreError(str(e)) from e
