"""
SQLAlchemy-backed document store.

Each subscription is one row of subscription_document holding the whole
record as JSON. The change feed fires after writes made through this
store instance; writes from other processes are seen on the next read.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from rxflow.db.store import DocumentNotFound, ObservableStore, Record, Snapshot, StoreError
from rxflow.models.record import SubscriptionDocument

logger = logging.getLogger(__name__)


class SqlDocumentStore(ObservableStore):
    """Document store on a SQL table."""

    def __init__(self, session_factory, collection: str = "subscriptions"):
        super().__init__()
        self._session_factory = session_factory
        self.collection = collection

    def _find(self, session, document_id: str) -> Optional[SubscriptionDocument]:
        return session.query(SubscriptionDocument).filter(
            SubscriptionDocument.document_id == document_id,
            SubscriptionDocument.collection == self.collection,
        ).first()

    def create(self, record: Record) -> str:
        document_id = uuid.uuid4().hex
        try:
            with self._session_factory() as session:
                session.add(SubscriptionDocument(
                    document_id=document_id,
                    collection=self.collection,
                    data=dict(record),
                ))
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Insert into %s failed: %s", self.collection, e)
            raise StoreError(str(e)) from e
        self._notify()
        return document_id

    def patch(self, document_id: str, fields: Record) -> None:
        try:
            with self._session_factory() as session:
                document = self._find(session, document_id)
                if document is None:
                    raise DocumentNotFound(document_id)
                # Reassign so the JSON column is flagged dirty
                document.data = {**document.data, **fields}
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Update of %s/%s failed: %s", self.collection, document_id, e)
            raise StoreError(str(e)) from e
        self._notify()

    def delete(self, document_id: str) -> None:
        try:
            with self._session_factory() as session:
                document = self._find(session, document_id)
                if document is None:
                    raise DocumentNotFound(document_id)
                session.delete(document)
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Delete of %s/%s failed: %s", self.collection, document_id, e)
            raise StoreError(str(e)) from e
        self._notify()

    def get(self, document_id: str) -> Optional[Record]:
        try:
            with self._session_factory() as session:
                document = self._find(session, document_id)
                return dict(document.data) if document is not None else None
        except SQLAlchemyError as e:
            logger.error("Read of %s/%s failed: %s", self.collection, document_id, e)
            raise StoreError(str(e)) from e

    def list(self) -> Snapshot:
        try:
            with self._session_factory() as session:
                documents = session.query(SubscriptionDocument).filter(
                    SubscriptionDocument.collection == self.collection,
                ).order_by(
                    SubscriptionDocument.created_at,
                    SubscriptionDocument.document_id,
                ).all()
                return [(d.document_id, dict(d.data)) for d in documents]
        except SQLAlchemyError as e:
            logger.error("Listing %s failed: %s", self.collection, e)
            raise StoreError(str(e)) from e
