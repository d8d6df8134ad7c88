"""
Unit tests for the dashboard pipeline and feed.
"""

import threading
import time
from datetime import datetime, timezone

from rxflow.db.memory_store import MemoryDocumentStore
from rxflow.models.subscription import AdministrativeStatus, FulfillmentStatus, OverallStatus
from rxflow.services.dashboard import DashboardFeed, build_dashboard, serialize_subscription
from rxflow.services.status_derivation import ManualOverride

UTC = timezone.utc
NOW = datetime(2024, 2, 15, tzinfo=UTC)
SHIPPED = FulfillmentStatus.SHIPPED
SCHEDULED = FulfillmentStatus.SCHEDULED


def _snapshot(*subscriptions):
    return [(s.id, s.to_record()) for s in subscriptions]


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition():
        assert time.monotonic() < deadline, "condition not met in time"
        time.sleep(0.01)


class _StallingStore(MemoryDocumentStore):
    """Memory store that holds one named thread inside its snapshot read."""

    def __init__(self):
        super().__init__()
        self.stalled_thread = None
        self.reading = threading.Event()
        self.release = threading.Event()

    def list(self):
        snapshot = super().list()
        if threading.current_thread().name == self.stalled_thread:
            self.stalled_thread = None
            self.reading.set()
            self.release.wait(5)
        return snapshot


class TestBuildDashboard:

    def test_rows_are_derived_and_sorted(self, make_subscription):
        """Rows carry derived status and come back in priority order."""
        done = make_subscription(subscription_id="done", statuses=[SHIPPED] * 3)
        active = make_subscription(subscription_id="active", statuses=[SHIPPED, SCHEDULED, SCHEDULED])
        action = make_subscription(subscription_id="action", start=datetime(2024, 9, 1, tzinfo=UTC))

        rows = build_dashboard(_snapshot(done, active, action), now=NOW)

        assert [row.subscription.id for row in rows] == ["action", "active", "done"]
        assert [row.status for row in rows] == [
            OverallStatus.ACTION_REQUIRED, OverallStatus.ACTIVE, OverallStatus.FULFILLED,
        ]
        assert [row.past_due for row in rows] == [False, True, False]

    def test_empty_snapshot(self):
        """An empty collection gives an empty dashboard."""
        assert build_dashboard([], now=NOW) == []


class TestSerializeSubscription:

    def test_completed_display(self, make_subscription):
        """A fully shipped subscription shows Completed and is never past due."""
        data = serialize_subscription(make_subscription(statuses=[SHIPPED] * 3), now=NOW)
        assert data["status"] == "Fulfilled"
        assert data["nextActionDate"] is None
        assert data["nextActionDisplay"] == "Completed"
        assert data["pastDue"] is False

    def test_override_is_marked(self, make_subscription):
        """On Hold is reported as a manual override."""
        subscription = make_subscription(status=AdministrativeStatus.ON_HOLD)
        data = serialize_subscription(subscription, now=NOW, resolution=ManualOverride())
        assert data["status"] == "On Hold"
        assert data["statusSource"] == "override"
        assert data["storedStatus"] == "On Hold"

    def test_fulfillment_display_fields(self, make_subscription):
        """Fulfillments carry display dates and badges."""
        data = serialize_subscription(make_subscription(), now=NOW)
        first = data["fulfillments"][0]
        assert first["displayDate"] == "1/1/2024"
        assert first["badge"]["label"] == "RX Received - Ready to Ship"
        assert data["nextActionDisplay"] == "1/1/2024"
        assert data["pastDue"] is True


class TestDashboardFeed:

    def test_follows_store_changes(self, make_subscription):
        """The feed republishes after every write until stopped."""
        store = MemoryDocumentStore()
        feed = DashboardFeed(store, clock=lambda: NOW)
        published = []
        feed.add_listener(published.append)

        feed.start()
        assert feed.loaded
        assert feed.rows == []

        store.create(make_subscription().to_record())
        assert len(feed.rows) == 1
        assert feed.rows[0].status == OverallStatus.ACTION_REQUIRED
        assert len(published) == 2

        feed.stop()
        store.create(make_subscription().to_record())
        assert len(feed.rows) == 1

    def test_bad_snapshot_keeps_last_good_rows(self, make_subscription):
        """A snapshot that fails to decode keeps the previous rows."""
        store = MemoryDocumentStore()
        feed = DashboardFeed(store, clock=lambda: NOW)
        feed.start()
        store.create(make_subscription().to_record())

        # A record the decoder cannot read
        store.create({"patientName": "Broken", "fulfillments": [{"status": "Scheduled"}]})

        assert feed.error == "Failed to load subscription data."
        assert len(feed.rows) == 1

    def test_error_clears_on_next_good_snapshot(self, make_subscription):
        """The load error clears once a good snapshot arrives."""
        store = MemoryDocumentStore()
        feed = DashboardFeed(store, clock=lambda: NOW)
        feed.start()
        broken_id = store.create({"fulfillments": [{"status": "Scheduled"}]})
        assert feed.error is not None

        store.delete(broken_id)

        assert feed.error is None

    def test_slow_writer_cannot_publish_older_snapshot(self, make_subscription):
        """A writer stalled in its snapshot read must not hide a later write."""
        store = _StallingStore()
        feed = DashboardFeed(store, clock=lambda: NOW)
        feed.start()
        store.stalled_thread = "writer-a"

        writer_a = threading.Thread(
            name="writer-a",
            target=store.create,
            args=(make_subscription(patient_name="A").to_record(),),
        )
        writer_b = threading.Thread(
            name="writer-b",
            target=store.create,
            args=(make_subscription(patient_name="B").to_record(),),
        )

        writer_a.start()
        assert store.reading.wait(5)
        writer_b.start()
        _wait_for(lambda: len(store.list()) == 2)
        store.release.set()
        writer_a.join(5)
        writer_b.join(5)

        assert len(store.list()) == 2
        assert sorted(row.subscription.patient_name for row in feed.rows) == ["A", "B"]
