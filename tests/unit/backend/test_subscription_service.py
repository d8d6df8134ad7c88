"""
Unit tests for SubscriptionService.

Tests:
- Creation defaults and validation
- Edits, deletes and the optional version check
- Fulfillment transitions written as one patch
- Store failures surfaced as user-facing errors
"""

import re
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from rxflow.db.memory_store import MemoryDocumentStore
from rxflow.db.store import StoreError
from rxflow.errors import (
    ConflictError,
    FulfillmentNotFound,
    InvalidSubscriptionInput,
    PersistenceError,
    SubscriptionNotFound,
    TrackingRequired,
)
from rxflow.models.subscription import (
    Actor,
    AdministrativeStatus,
    FulfillmentStatus,
    OverallStatus,
)
from rxflow.services.sorting import sort_subscriptions
from rxflow.services.status_derivation import derive_status
from rxflow.services.subscription_service import SubscriptionService

UTC = timezone.utc
NOW = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def service(store):
    return SubscriptionService(store)


@pytest.fixture
def three_month(service):
    return service.create_subscription(
        {"patientName": "Patient-4321", "duration": 3, "startDate": "2024-01-01"}, now=NOW
    )


# =============================================================================
# Create
# =============================================================================

class TestCreateSubscription:

    def test_defaults(self, service):
        """Creation applies the documented defaults."""
        subscription = service.create_subscription({}, now=NOW)

        assert re.fullmatch(r"Patient-\d{4}", subscription.patient_name)
        assert subscription.drug_name == "Lisinopril 10mg"
        assert subscription.duration == 1
        assert subscription.status == AdministrativeStatus.PENDING
        assert subscription.new_rx_call is False
        assert subscription.start_date == NOW
        assert subscription.id is not None

    def test_three_month_schedule(self, three_month):
        """A three-month subscription gets monthly fulfillments from the start date."""
        assert [f.fulfillment_date for f in three_month.fulfillments] == [
            datetime(2024, 1, 1, tzinfo=UTC),
            datetime(2024, 2, 1, tzinfo=UTC),
            datetime(2024, 3, 1, tzinfo=UTC),
        ]
        assert [f.status for f in three_month.fulfillments] == [
            FulfillmentStatus.RX_RECEIVED, FulfillmentStatus.SCHEDULED, FulfillmentStatus.SCHEDULED,
        ]
        assert derive_status(three_month) == OverallStatus.ACTION_REQUIRED

    def test_initial_rx_id_only_on_first(self, three_month):
        """Only the first fulfillment carries the initial RX id."""
        assert three_month.fulfillments[0].rx_id == f"RX-INITIAL-{int(NOW.timestamp() * 1000)}"
        assert three_month.fulfillments[1].rx_id is None

    def test_fulfillment_ids_are_unique(self, service):
        """Every fulfillment gets its own id."""
        subscription = service.create_subscription({"duration": 6}, now=NOW)
        ids = [f.fulfillment_id for f in subscription.fulfillments]
        assert len(set(ids)) == 6

    def test_creation_is_logged(self, three_month):
        """Creation writes the system log entry."""
        entry = three_month.communication_log[0]
        assert entry.message == "Subscription created."
        assert entry.actor == Actor.SYSTEM
        assert entry.date == NOW

    def test_persisted_record_matches(self, service, store, three_month):
        """The stored record matches the returned subscription."""
        assert service.get_subscription(three_month.id) == three_month

    @pytest.mark.parametrize("data", [
        {"duration": 2},
        {"duration": "twelve"},
        {"status": "Action Required"},
        {"physicianStatus": "Denied"},
        {"patientName": "   "},
        {"startDate": "soon"},
    ])
    def test_invalid_input(self, service, data):
        """Bad form input raises InvalidSubscriptionInput."""
        with pytest.raises(InvalidSubscriptionInput):
            service.create_subscription(data, now=NOW)

    def test_store_failure(self):
        """A failed insert surfaces the creation error message."""
        store = MagicMock()
        store.create.side_effect = StoreError("unavailable")
        with pytest.raises(PersistenceError) as exc_info:
            SubscriptionService(store).create_subscription({}, now=NOW)
        assert exc_info.value.message == "Could not create the subscription."
        assert exc_info.value.status_code == 503


# =============================================================================
# Update / delete
# =============================================================================

class TestUpdateSubscription:

    def test_edits_keep_schedule_and_log(self, service, three_month):
        """Administrative edits leave fulfillments and log alone."""
        updated = service.update_subscription(three_month.id, {
            "patientName": "Patient-9999",
            "status": "On Hold",
            "physicianStatus": "Approved",
            "newRxCall": True,
        })

        reloaded = service.get_subscription(three_month.id)
        assert reloaded == updated
        assert reloaded.patient_name == "Patient-9999"
        assert reloaded.fulfillments == three_month.fulfillments
        assert reloaded.communication_log == three_month.communication_log
        assert reloaded.start_date == three_month.start_date
        assert reloaded.version == three_month.version + 1
        assert derive_status(reloaded) == OverallStatus.ON_HOLD

    def test_duration_is_immutable(self, service, three_month):
        """Duration cannot be changed after creation."""
        with pytest.raises(InvalidSubscriptionInput):
            service.update_subscription(three_month.id, {"duration": 6})
        # Same value is accepted
        service.update_subscription(three_month.id, {"duration": 3})

    def test_stale_version_rejected(self, service, three_month):
        """A stale expected version raises ConflictError."""
        service.update_subscription(three_month.id, {"drugName": "Metformin 500mg"})
        with pytest.raises(ConflictError):
            service.update_subscription(
                three_month.id, {"drugName": "Atorvastatin 20mg"}, expected_version=three_month.version
            )

    def test_matching_version_accepted(self, service, three_month):
        """A current expected version is accepted."""
        updated = service.update_subscription(
            three_month.id, {"drugName": "Metformin 500mg"}, expected_version=three_month.version
        )
        assert updated.drug_name == "Metformin 500mg"

    def test_unknown_subscription(self, service):
        """Editing an unknown id raises SubscriptionNotFound."""
        with pytest.raises(SubscriptionNotFound):
            service.update_subscription("missing", {"drugName": "X"})

    def test_patch_failure(self, three_month):
        """A failed patch surfaces the update error message."""
        store = MagicMock()
        store.get.return_value = three_month.to_record()
        store.patch.side_effect = StoreError("timeout")
        with pytest.raises(PersistenceError) as exc_info:
            SubscriptionService(store).update_subscription(three_month.id, {"drugName": "X"})
        assert exc_info.value.message == "Could not update the subscription."


class TestDeleteSubscription:

    def test_delete(self, service, three_month):
        """Deleted subscriptions can no longer be read."""
        service.delete_subscription(three_month.id)
        with pytest.raises(SubscriptionNotFound):
            service.get_subscription(three_month.id)

    def test_delete_missing(self, service):
        """Deleting an unknown id raises SubscriptionNotFound."""
        with pytest.raises(SubscriptionNotFound):
            service.delete_subscription("missing")

    def test_delete_failure(self):
        """A failed delete surfaces the delete error message."""
        store = MagicMock()
        store.delete.side_effect = StoreError("boom")
        with pytest.raises(PersistenceError) as exc_info:
            SubscriptionService(store).delete_subscription("abc")
        assert exc_info.value.message == "Could not delete the subscription."


# =============================================================================
# Log
# =============================================================================

class TestAddLogEntry:

    def test_staff_note(self, service, three_month):
        """Notes are logged as Pharmacy Staff."""
        updated = service.add_log_entry(three_month.id, "  Called patient.  ", now=NOW)
        entry = updated.communication_log[-1]
        assert entry.message == "Called patient."
        assert entry.actor == Actor.PHARMACY_STAFF
        assert len(service.get_subscription(three_month.id).communication_log) == 2

    def test_empty_message_rejected(self, service, three_month):
        """An empty note is rejected."""
        with pytest.raises(InvalidSubscriptionInput):
            service.add_log_entry(three_month.id, "   ")

    def test_failure_message(self, three_month):
        """A failed note write surfaces the log error message."""
        store = MagicMock()
        store.get.return_value = three_month.to_record()
        store.patch.side_effect = StoreError("boom")
        with pytest.raises(PersistenceError) as exc_info:
            SubscriptionService(store).add_log_entry(three_month.id, "note")
        assert exc_info.value.message == "Failed to add log entry."


# =============================================================================
# Fulfillments
# =============================================================================

class TestFulfillmentOperations:

    def test_ship_by_iso_date(self, service, three_month):
        """Shipping by ISO date updates the matching fulfillment."""
        updated = service.mark_shipped(three_month.id, "2024-01-01T00:00:00+00:00", "1Z999", now=NOW)

        entry = updated.communication_log[-1]
        assert entry.actor == Actor.PHARMACY_STAFF
        assert "1Z999" in entry.message
        assert derive_status(service.get_subscription(three_month.id)) == OverallStatus.ACTIVE

    def test_ship_requires_tracking(self, service, three_month):
        """Shipping without a tracking number raises TrackingRequired."""
        key = three_month.fulfillments[0].fulfillment_id
        with pytest.raises(TrackingRequired):
            service.mark_shipped(three_month.id, key, "  ")
        with pytest.raises(TrackingRequired):
            service.transition_fulfillment(three_month.id, key, "Shipped")

    def test_transition_to_any_status(self, service, three_month):
        """Any status can be set from any other."""
        key = three_month.fulfillments[2].fulfillment_id
        updated = service.transition_fulfillment(three_month.id, key, "Awaiting RX", now=NOW)
        assert updated.fulfillments[2].status == FulfillmentStatus.AWAITING_RX
        assert updated.communication_log[-1].message == "Updated fulfillment for 3/1/2024 to status: Awaiting RX."

    def test_invalid_status(self, service, three_month):
        """An unknown status value is rejected."""
        with pytest.raises(InvalidSubscriptionInput):
            service.transition_fulfillment(three_month.id, three_month.fulfillments[0].fulfillment_id, "Lost")

    def test_record_event(self, service, three_month):
        """A simulated event moves the fulfillment and logs it."""
        key = three_month.fulfillments[1].fulfillment_id
        service.record_event(three_month.id, key, "intake_sent", now=NOW)
        updated = service.record_event(three_month.id, key, "patient_responded", now=NOW)
        assert updated.fulfillments[1].status == FulfillmentStatus.AWAITING_RX
        assert len(updated.communication_log) == 3

    def test_unknown_key(self, service, three_month):
        """An unknown fulfillment key raises FulfillmentNotFound."""
        with pytest.raises(FulfillmentNotFound):
            service.record_event(three_month.id, "not-a-fulfillment", "intake_sent")

    def test_single_patch_per_transition(self, three_month):
        """A transition is written as one patch."""
        store = MagicMock()
        store.get.return_value = three_month.to_record()

        SubscriptionService(store).mark_shipped(
            three_month.id, three_month.fulfillments[0].fulfillment_id, "1Z999", now=NOW
        )

        store.patch.assert_called_once()
        subscription_id, fields = store.patch.call_args[0]
        assert subscription_id == three_month.id
        assert set(fields) == {"fulfillments", "communicationLog", "version"}
        assert fields["fulfillments"][0]["status"] == "Shipped"
        assert fields["communicationLog"][-1]["actor"] == "Pharmacy Staff"

    def test_transition_failure_message(self, three_month):
        """A failed transition write surfaces the update error message."""
        store = MagicMock()
        store.get.return_value = three_month.to_record()
        store.patch.side_effect = StoreError("boom")
        with pytest.raises(PersistenceError) as exc_info:
            SubscriptionService(store).record_event(
                three_month.id, three_month.fulfillments[1].fulfillment_id, "intake_sent"
            )
        assert exc_info.value.message == "Failed to update fulfillment status."

    def test_load_failure_message(self):
        """A failed read surfaces the load error message."""
        store = MagicMock()
        store.get.side_effect = StoreError("boom")
        with pytest.raises(PersistenceError) as exc_info:
            SubscriptionService(store).get_subscription("abc")
        assert exc_info.value.message == "Failed to load subscription data."

    def test_fully_shipped_is_fulfilled_and_sorts_last(self, service, three_month):
        """Shipping every fulfillment makes it Fulfilled and sorts it last."""
        for i, f in enumerate(three_month.fulfillments):
            service.mark_shipped(three_month.id, f.fulfillment_id, f"1Z99{i}", now=NOW)
        other = service.create_subscription({"duration": 3, "startDate": "2025-01-01"}, now=NOW)
        service.mark_shipped(other.id, other.fulfillments[0].fulfillment_id, "1Z000", now=NOW)

        done = service.get_subscription(three_month.id)
        assert derive_status(done) == OverallStatus.FULFILLED
        ordered = sort_subscriptions(service.list_subscriptions())
        assert [s.id for s in ordered] == [other.id, three_month.id]
