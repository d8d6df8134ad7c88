"""
CommunicationLog: append-only audit trail on a subscription.

Entries are stored in insertion order and never edited or removed.
Display order is newest first.
"""

from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from rxflow.models.subscription import Actor, LogEntry, Subscription, to_utc, utcnow

SUBSCRIPTION_CREATED = "Subscription created."


def new_entry(message: str, actor: Actor, now: Optional[datetime] = None) -> LogEntry:
    """Build a log entry stamped with `now` (defaults to the current time)."""
    return LogEntry(
        date=to_utc(now) if now is not None else utcnow(),
        message=message,
        actor=Actor(actor),
    )


def append_entry(subscription: Subscription, entry: LogEntry) -> Subscription:
    return replace(subscription, communication_log=subscription.communication_log + (entry,))


def append(
    subscription: Subscription,
    message: str,
    actor: Actor,
    now: Optional[datetime] = None,
) -> Subscription:
    """Return `subscription` with one more log entry at the end."""
    return append_entry(subscription, new_entry(message, actor, now))


def entries_for_display(subscription: Subscription) -> List[LogEntry]:
    """Entries newest first; entries with equal dates keep insertion order."""
    # sorted() stays stable with reverse=True
    return sorted(subscription.communication_log, key=lambda entry: entry.date, reverse=True)
