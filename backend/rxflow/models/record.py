"""
Subscription document table.

The SQL store keeps each subscription as one JSON document so that the
record shape matches the document stores exactly.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB

from rxflow.db.postgres import Base


class SubscriptionDocument(Base):
    """One subscription record in a named collection."""

    __tablename__ = "subscription_document"

    document_id = Column(String(64), primary_key=True)
    collection = Column(String(100), nullable=False, default="subscriptions")

    # camelCase record as produced by Subscription.to_record()
    data = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_subscription_document_collection", "collection"),
    )
