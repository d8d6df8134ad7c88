"""
Rxflow models.

Domain values live in subscription.py; record.py holds the SQLAlchemy
table the SQL document store writes to.
"""

from rxflow.models.subscription import (
    ALLOWED_DURATIONS,
    Actor,
    AdministrativeStatus,
    Fulfillment,
    FulfillmentStatus,
    LogEntry,
    OverallStatus,
    PhysicianStatus,
    Subscription,
)
from rxflow.models.record import SubscriptionDocument

__all__ = [
    "ALLOWED_DURATIONS",
    "Actor",
    "AdministrativeStatus",
    "Fulfillment",
    "FulfillmentStatus",
    "LogEntry",
    "OverallStatus",
    "PhysicianStatus",
    "Subscription",
    "SubscriptionDocument",
]
