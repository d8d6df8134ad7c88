"""
SubscriptionService: every mutation of a subscription.

Each operation reads the latest record, applies a pure transform from the
model and state-machine modules, and writes the changed fields back with
a single patch. Writes are last-writer-wins unless the caller passes
`expected_version`, in which case a stale version raises ConflictError.
"""

import logging
import random
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from rxflow.db.store import DocumentNotFound, DocumentStore, StoreError, get_document_store
from rxflow.errors import (
    ConflictError,
    FulfillmentNotFound,
    InvalidSubscriptionInput,
    PersistenceError,
    SubscriptionNotFound,
    TrackingRequired,
)
from rxflow.models.subscription import (
    ALLOWED_DURATIONS,
    Actor,
    AdministrativeStatus,
    Fulfillment,
    FulfillmentStatus,
    PhysicianStatus,
    Subscription,
    add_months,
    to_utc,
    utcnow,
)
from rxflow.services import communication_log
from rxflow.services.fulfillment_machine import FulfillmentKey, apply_event, apply_transition

logger = logging.getLogger(__name__)

DEFAULT_DRUG_NAME = "Lisinopril 10mg"

# User-facing failure messages
LOAD_FAILED = "Failed to load subscription data."
CREATE_FAILED = "Could not create the subscription."
UPDATE_FAILED = "Could not update the subscription."
DELETE_FAILED = "Could not delete the subscription."
LOG_FAILED = "Failed to add log entry."
FULFILLMENT_FAILED = "Failed to update fulfillment status."


# =============================================================================
# Pure construction and form parsing
# =============================================================================

def default_patient_name() -> str:
    return f"Patient-{random.randint(1000, 9999)}"


def new_subscription(
    patient_name: str,
    drug_name: str,
    duration: int,
    start_date: Optional[datetime] = None,
    status: AdministrativeStatus = AdministrativeStatus.PENDING,
    physician_status: PhysicianStatus = PhysicianStatus.PENDING,
    new_rx_call: bool = False,
    now: Optional[datetime] = None,
) -> Subscription:
    """
    Build a new subscription with every fulfillment materialized.

    Fulfillment 0 starts at RX Received with an initial RX id; the rest
    are Scheduled, one calendar month apart from the start date.
    """
    if duration < 1:
        raise InvalidSubscriptionInput("Duration must be at least one month.")
    now = to_utc(now) if now is not None else utcnow()
    start = to_utc(start_date) if start_date is not None else now

    fulfillments = tuple(
        Fulfillment(
            fulfillment_id=uuid.uuid4().hex,
            fulfillment_date=add_months(start, i),
            status=FulfillmentStatus.RX_RECEIVED if i == 0 else FulfillmentStatus.SCHEDULED,
            tracking=None,
            rx_id=f"RX-INITIAL-{int(now.timestamp() * 1000)}" if i == 0 else None,
        )
        for i in range(duration)
    )

    subscription = Subscription(
        id=None,
        patient_name=patient_name,
        drug_name=drug_name,
        duration=duration,
        start_date=start,
        status=AdministrativeStatus(status),
        physician_status=PhysicianStatus(physician_status),
        new_rx_call=new_rx_call,
        fulfillments=fulfillments,
        version=1,
    )
    return communication_log.append(subscription, communication_log.SUBSCRIPTION_CREATED, Actor.SYSTEM, now)


def _parse_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidSubscriptionInput(f"Invalid {field_name} '{value}'. Expected one of: {allowed}.")


def _parse_text(data: Dict[str, Any], key: str, label: str) -> Optional[str]:
    if key not in data:
        return None
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidSubscriptionInput(f"{label} is required.")
    return value.strip()


def parse_duration(value: Any) -> int:
    try:
        duration = int(value)
    except (TypeError, ValueError):
        raise InvalidSubscriptionInput("Duration must be a whole number of months.")
    if duration not in ALLOWED_DURATIONS:
        allowed = ", ".join(str(d) for d in ALLOWED_DURATIONS)
        raise InvalidSubscriptionInput(f"Duration must be one of {allowed} months.")
    return duration


def parse_expected_version(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidSubscriptionInput("expectedVersion must be an integer.")


# =============================================================================
# Service
# =============================================================================

class SubscriptionService:
    """Reads and writes subscriptions through a DocumentStore."""

    def __init__(self, store: Optional[DocumentStore] = None):
        self._explicit_store = store

    @property
    def store(self) -> DocumentStore:
        if self._explicit_store is not None:
            return self._explicit_store
        return get_document_store()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_subscription(self, subscription_id: str, failure_message: str = LOAD_FAILED) -> Subscription:
        try:
            record = self.store.get(subscription_id)
        except StoreError as e:
            logger.error("Reading subscription %s failed: %s", subscription_id, e)
            raise PersistenceError(failure_message) from e
        if record is None:
            raise SubscriptionNotFound()
        return Subscription.from_record(subscription_id, record)

    def list_subscriptions(self) -> List[Subscription]:
        try:
            snapshot = self.store.list()
        except StoreError as e:
            logger.error("Listing subscriptions failed: %s", e)
            raise PersistenceError(LOAD_FAILED) from e
        return [Subscription.from_record(doc_id, record) for doc_id, record in snapshot]

    # -------------------------------------------------------------------------
    # Create / update / delete
    # -------------------------------------------------------------------------

    def create_subscription(self, data: Dict[str, Any], now: Optional[datetime] = None) -> Subscription:
        """Create a subscription from form data (camelCase keys, all optional)."""
        patient_name = _parse_text(data, "patientName", "Patient name") or default_patient_name()
        drug_name = _parse_text(data, "drugName", "Drug name") or DEFAULT_DRUG_NAME
        duration = parse_duration(data.get("duration", 1))
        status = _parse_enum(AdministrativeStatus, data.get("status") or "Pending", "status")
        physician_status = _parse_enum(
            PhysicianStatus, data.get("physicianStatus") or "Pending", "physician status"
        )
        start_date = None
        if data.get("startDate"):
            try:
                start_date = to_utc(data["startDate"])
            except ValueError:
                raise InvalidSubscriptionInput("startDate must be an ISO-8601 date.")

        subscription = new_subscription(
            patient_name=patient_name,
            drug_name=drug_name,
            duration=duration,
            start_date=start_date,
            status=status,
            physician_status=physician_status,
            new_rx_call=bool(data.get("newRxCall", False)),
            now=now,
        )

        try:
            subscription_id = self.store.create(subscription.to_record())
        except StoreError as e:
            logger.error("Creating subscription failed: %s", e)
            raise PersistenceError(CREATE_FAILED) from e

        logger.info("Created subscription %s (%d months)", subscription_id, duration)
        return subscription.with_id(subscription_id)

    def update_subscription(
        self,
        subscription_id: str,
        data: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Subscription:
        """
        Edit the administrative fields of a subscription.

        Duration, start date, fulfillments and the log are not editable here.
        """
        current = self._load_for_write(subscription_id, expected_version, UPDATE_FAILED)

        if "duration" in data and data["duration"] is not None:
            if parse_duration(data["duration"]) != current.duration:
                raise InvalidSubscriptionInput("Duration cannot be changed after creation.")

        changes: Dict[str, Any] = {}
        patient_name = _parse_text(data, "patientName", "Patient name")
        if patient_name is not None:
            changes["patient_name"] = patient_name
        drug_name = _parse_text(data, "drugName", "Drug name")
        if drug_name is not None:
            changes["drug_name"] = drug_name
        if data.get("status") is not None:
            changes["status"] = _parse_enum(AdministrativeStatus, data["status"], "status")
        if data.get("physicianStatus") is not None:
            changes["physician_status"] = _parse_enum(
                PhysicianStatus, data["physicianStatus"], "physician status"
            )
        if "newRxCall" in data:
            changes["new_rx_call"] = bool(data["newRxCall"])

        updated = replace(current, version=current.version + 1, **changes)
        record = updated.to_record()
        self._write(subscription_id, {
            "patientName": record["patientName"],
            "drugName": record["drugName"],
            "status": record["status"],
            "physicianStatus": record["physicianStatus"],
            "newRxCall": record["newRxCall"],
            "version": record["version"],
        }, UPDATE_FAILED)

        logger.info("Updated subscription %s", subscription_id)
        return updated

    def delete_subscription(self, subscription_id: str) -> None:
        try:
            self.store.delete(subscription_id)
        except DocumentNotFound:
            raise SubscriptionNotFound()
        except StoreError as e:
            logger.error("Deleting subscription %s failed: %s", subscription_id, e)
            raise PersistenceError(DELETE_FAILED) from e
        logger.info("Deleted subscription %s", subscription_id)

    # -------------------------------------------------------------------------
    # Communication log
    # -------------------------------------------------------------------------

    def add_log_entry(
        self,
        subscription_id: str,
        message: str,
        actor: Actor = Actor.PHARMACY_STAFF,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Subscription:
        if not isinstance(message, str) or not message.strip():
            raise InvalidSubscriptionInput("Log message cannot be empty.")

        current = self._load_for_write(subscription_id, expected_version, LOG_FAILED)
        updated = communication_log.append(current, message.strip(), actor, now)
        updated = replace(updated, version=current.version + 1)

        record = updated.to_record()
        self._write(subscription_id, {
            "communicationLog": record["communicationLog"],
            "version": record["version"],
        }, LOG_FAILED)
        return updated

    # -------------------------------------------------------------------------
    # Fulfillments
    # -------------------------------------------------------------------------

    def transition_fulfillment(
        self,
        subscription_id: str,
        key: FulfillmentKey,
        new_status: Any,
        tracking: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """Move a fulfillment to any status and log it."""
        status = _parse_enum(FulfillmentStatus, new_status, "fulfillment status")
        if status == FulfillmentStatus.SHIPPED:
            return self.mark_shipped(subscription_id, key, tracking, expected_version, now)

        current = self._load_for_write(subscription_id, expected_version, FULFILLMENT_FAILED)
        updated, _ = apply_transition(current, self._resolve_key(current, key), status, tracking, now)
        return self._save_fulfillments(subscription_id, current, updated)

    def record_event(
        self,
        subscription_id: str,
        key: FulfillmentKey,
        event: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """Apply a simulated integration event to a fulfillment."""
        current = self._load_for_write(subscription_id, expected_version, FULFILLMENT_FAILED)
        updated, _ = apply_event(current, self._resolve_key(current, key), event, now)
        return self._save_fulfillments(subscription_id, current, updated)

    def mark_shipped(
        self,
        subscription_id: str,
        key: FulfillmentKey,
        tracking: Optional[str],
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """Ship a fulfillment. A non-empty tracking number is required."""
        if not isinstance(tracking, str) or not tracking.strip():
            raise TrackingRequired()

        current = self._load_for_write(subscription_id, expected_version, FULFILLMENT_FAILED)
        updated, _ = apply_transition(
            current, self._resolve_key(current, key), FulfillmentStatus.SHIPPED, tracking.strip(), now
        )
        return self._save_fulfillments(subscription_id, current, updated)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load_for_write(
        self,
        subscription_id: str,
        expected_version: Optional[int],
        failure_message: str,
    ) -> Subscription:
        current = self.get_subscription(subscription_id, failure_message)
        if expected_version is not None and expected_version != current.version:
            logger.info(
                "Rejected stale write to %s (expected version %s, stored %s)",
                subscription_id, expected_version, current.version,
            )
            raise ConflictError()
        return current

    def _write(self, subscription_id: str, fields: Dict[str, Any], failure_message: str) -> None:
        try:
            self.store.patch(subscription_id, fields)
        except DocumentNotFound:
            raise SubscriptionNotFound()
        except StoreError as e:
            logger.error("Writing subscription %s failed: %s", subscription_id, e)
            raise PersistenceError(failure_message) from e

    def _save_fulfillments(self, subscription_id: str, current: Subscription, updated: Subscription) -> Subscription:
        updated = replace(updated, version=current.version + 1)
        record = updated.to_record()
        # Fulfillments and the log entry go out in one patch
        self._write(subscription_id, {
            "fulfillments": record["fulfillments"],
            "communicationLog": record["communicationLog"],
            "version": record["version"],
        }, FULFILLMENT_FAILED)
        logger.info("Subscription %s: %s", subscription_id, updated.communication_log[-1].message)
        return updated

    @staticmethod
    def _resolve_key(subscription: Subscription, key: FulfillmentKey) -> FulfillmentKey:
        """Accept a fulfillment id, or an ISO date string for the fulfillment date."""
        if not isinstance(key, str):
            return key
        if any(f.fulfillment_id == key for f in subscription.fulfillments):
            return key
        try:
            return to_utc(key)
        except ValueError:
            raise FulfillmentNotFound(f"Fulfillment not found: {key}")


# Singleton instance
_subscription_service: Optional[SubscriptionService] = None


def get_subscription_service() -> SubscriptionService:
    """Get the subscription service singleton."""
    global _subscription_service
    if _subscription_service is None:
        _subscription_service = SubscriptionService()
    return _subscription_service
