"""
DashboardFeed: store change feed -> decode -> derive -> sort.

Each inbound snapshot runs through build_dashboard(), a pure stage that
takes the snapshot and returns ordered, status-annotated rows. The feed
keeps the last good result; when a snapshot fails it keeps the previous
rows and exposes the error message instead.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from rxflow.db.store import DocumentStore, Snapshot, get_document_store
from rxflow.models.subscription import OverallStatus, Subscription, format_date, to_iso, utcnow
from rxflow.services.communication_log import entries_for_display
from rxflow.services.sorting import is_past_due, next_actionable_date, sort_subscriptions
from rxflow.services.status_derivation import (
    ManualOverride,
    StatusResolution,
    fulfillment_badge,
    resolve_status,
    status_badge,
)

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load subscription data."


@dataclass(frozen=True)
class DashboardRow:
    """A subscription with its derived status, ready for display."""

    subscription: Subscription
    resolution: StatusResolution
    past_due: bool

    @property
    def status(self) -> OverallStatus:
        return self.resolution.status

    def to_dict(self) -> Dict[str, Any]:
        return serialize_subscription(self.subscription, resolution=self.resolution, past_due=self.past_due)


def serialize_subscription(
    subscription: Subscription,
    now: Optional[datetime] = None,
    resolution: Optional[StatusResolution] = None,
    past_due: Optional[bool] = None,
) -> Dict[str, Any]:
    """JSON shape of a subscription as the API returns it."""
    resolution = resolution or resolve_status(subscription)
    if past_due is None:
        past_due = is_past_due(subscription, now or utcnow())
    next_date = next_actionable_date(subscription)

    return {
        "id": subscription.id,
        "patientName": subscription.patient_name,
        "drugName": subscription.drug_name,
        "newRxCall": subscription.new_rx_call,
        "duration": subscription.duration,
        "status": resolution.status.value,
        "statusSource": "override" if isinstance(resolution, ManualOverride) else "derived",
        "storedStatus": subscription.status.value,
        "statusBadge": status_badge(resolution.status).to_dict(),
        "physicianStatus": subscription.physician_status.value,
        "startDate": to_iso(subscription.start_date),
        "nextActionDate": to_iso(next_date) if next_date else None,
        "nextActionDisplay": format_date(next_date) if next_date else "Completed",
        "pastDue": past_due,
        "fulfillments": [
            {
                **f.to_record(),
                "displayDate": format_date(f.fulfillment_date),
                "badge": fulfillment_badge(f.status).to_dict(),
            }
            for f in subscription.fulfillments
        ],
        "communicationLog": [entry.to_record() for entry in entries_for_display(subscription)],
        "version": subscription.version,
    }


def build_dashboard(snapshot: Snapshot, now: Optional[datetime] = None) -> List[DashboardRow]:
    """Decode, derive and sort one full-collection snapshot."""
    now = now or utcnow()
    subscriptions = [Subscription.from_record(doc_id, record) for doc_id, record in snapshot]
    return [
        DashboardRow(
            subscription=subscription,
            resolution=resolve_status(subscription),
            past_due=is_past_due(subscription, now),
        )
        for subscription in sort_subscriptions(subscriptions)
    ]


class DashboardFeed:
    """Keeps the sorted dashboard current with the store's change feed."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock
        self._rows: List[DashboardRow] = []
        self._error: Optional[str] = None
        self._loaded = False
        self._unsubscribe = None
        self._listeners: List[Callable[[List[DashboardRow]], None]] = []
        self._lock = threading.Lock()

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self.handle_snapshot, self.handle_error)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_listener(self, listener: Callable[[List[DashboardRow]], None]) -> None:
        self._listeners.append(listener)

    def handle_snapshot(self, snapshot: Snapshot) -> None:
        rows = build_dashboard(snapshot, self._clock())
        with self._lock:
            self._rows = rows
            self._error = None
            self._loaded = True
        for listener in list(self._listeners):
            listener(rows)

    def handle_error(self, error: Exception) -> None:
        logger.error("Dashboard snapshot failed: %s", error)
        with self._lock:
            self._error = LOAD_FAILED

    @property
    def rows(self) -> List[DashboardRow]:
        with self._lock:
            return list(self._rows)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def loaded(self) -> bool:
        return self._loaded


# Singleton instance
_dashboard_feed: Optional[DashboardFeed] = None


def get_dashboard_feed() -> DashboardFeed:
    """Get the running dashboard feed for the configured store."""
    global _dashboard_feed
    if _dashboard_feed is None:
        _dashboard_feed = DashboardFeed(get_document_store())
        _dashboard_feed.start()
    return _dashboard_feed


def reset_dashboard_feed() -> None:
    """Stop and drop the feed (tests, store changes)."""
    global _dashboard_feed
    if _dashboard_feed is not None:
        _dashboard_feed.stop()
    _dashboard_feed = None
