"""
Subscription domain model.

A subscription pre-generates one fulfillment per month of its duration.
Fulfillments move through Scheduled -> Intake Sent -> Awaiting RX ->
RX Received -> Shipped, and every change is recorded in the
subscription's communication log.

Values here are immutable; services return new instances instead of
mutating. The record codec maps to the camelCase document shape the
stores persist.
"""

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class AdministrativeStatus(str, Enum):
    """Status an operator can store on a subscription."""
    PENDING = "Pending"
    APPROVED = "Approved"
    ACTIVE = "Active"
    FULFILLED = "Fulfilled"
    ON_HOLD = "On Hold"


class OverallStatus(str, Enum):
    """Aggregate status shown for a subscription.

    Everything except ON_HOLD is computed from fulfillments.
    """
    PENDING = "Pending"
    APPROVED = "Approved"
    ACTION_REQUIRED = "Action Required"
    ACTIVE = "Active"
    FULFILLED = "Fulfilled"
    ON_HOLD = "On Hold"


class PhysicianStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"


class FulfillmentStatus(str, Enum):
    """Delivery lifecycle of a single monthly fulfillment."""
    SCHEDULED = "Scheduled"
    INTAKE_SENT = "Intake Sent"
    AWAITING_RX = "Awaiting RX"
    RX_RECEIVED = "RX Received"
    SHIPPED = "Shipped"


class Actor(str, Enum):
    """Who authored a communication log entry."""
    SYSTEM = "System"
    PHARMACY_STAFF = "Pharmacy Staff"


ALLOWED_DURATIONS = (1, 3, 6)


# =============================================================================
# Date helpers
# =============================================================================

Timestamp = Union[datetime, date, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Timestamp) -> datetime:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Accepts native datetimes (Firestore returns these), plain dates and
    ISO-8601 strings (JSON stores). Naive values are taken as UTC.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)

    if not isinstance(value, datetime):
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return to_utc(value).isoformat()


def add_months(start: datetime, months: int) -> datetime:
    """
    Step a timestamp forward by whole calendar months.

    The day of month is clamped to the last day of the target month, so
    Jan 31 + 1 month is Feb 29 in a leap year.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return start.replace(year=year, month=month, day=min(start.day, last_day))


def format_date(value: Optional[Timestamp]) -> str:
    """Render a date as M/D/YYYY, or N/A when there is none."""
    if not value:
        return "N/A"
    moment = to_utc(value)
    return f"{moment.month}/{moment.day}/{moment.year}"


# =============================================================================
# Value objects
# =============================================================================

@dataclass(frozen=True)
class LogEntry:
    """One line of a subscription's communication log."""

    date: datetime
    message: str
    actor: Actor

    def to_record(self) -> Dict[str, Any]:
        return {
            "date": to_iso(self.date),
            "message": self.message,
            "actor": self.actor.value,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            date=to_utc(data["date"]),
            message=data.get("message", ""),
            actor=Actor(data.get("actor", Actor.SYSTEM.value)),
        )


@dataclass(frozen=True)
class Fulfillment:
    """One month's delivery within a subscription."""

    fulfillment_id: str
    fulfillment_date: datetime
    status: FulfillmentStatus = FulfillmentStatus.SCHEDULED
    tracking: Optional[str] = None
    rx_id: Optional[str] = None

    @property
    def is_shipped(self) -> bool:
        return self.status == FulfillmentStatus.SHIPPED

    def to_record(self) -> Dict[str, Any]:
        return {
            "fulfillmentId": self.fulfillment_id,
            "fulfillmentDate": to_iso(self.fulfillment_date),
            "status": self.status.value,
            "tracking": self.tracking,
            "rxId": self.rx_id,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any], index: int) -> "Fulfillment":
        # Older documents carry no id; derive a stable one from position
        fulfillment_id = data.get("fulfillmentId") or f"legacy-{index}"
        return cls(
            fulfillment_id=fulfillment_id,
            fulfillment_date=to_utc(data["fulfillmentDate"]),
            status=FulfillmentStatus(data.get("status", FulfillmentStatus.SCHEDULED.value)),
            tracking=data.get("tracking"),
            rx_id=data.get("rxId"),
        )


@dataclass(frozen=True)
class Subscription:
    """
    A patient's recurring prescription enrollment.

    `fulfillments` has exactly `duration` entries for the life of the
    subscription. `communication_log` is in insertion order and only grows.
    `status` is the stored administrative value; the displayed status is
    derived (see services.status_derivation).
    """

    id: Optional[str]
    patient_name: str
    drug_name: str
    duration: int
    start_date: datetime
    status: AdministrativeStatus = AdministrativeStatus.PENDING
    physician_status: PhysicianStatus = PhysicianStatus.PENDING
    new_rx_call: bool = False
    fulfillments: Tuple[Fulfillment, ...] = ()
    communication_log: Tuple[LogEntry, ...] = ()
    version: int = 0

    def with_id(self, subscription_id: str) -> "Subscription":
        return replace(self, id=subscription_id)

    def to_record(self) -> Dict[str, Any]:
        """Encode to the document shape (without the id, which is the key)."""
        return {
            "patientName": self.patient_name,
            "drugName": self.drug_name,
            "newRxCall": self.new_rx_call,
            "duration": self.duration,
            "status": self.status.value,
            "physicianStatus": self.physician_status.value,
            "startDate": to_iso(self.start_date),
            "fulfillments": [f.to_record() for f in self.fulfillments],
            "communicationLog": [entry.to_record() for entry in self.communication_log],
            "version": self.version,
        }

    @classmethod
    def from_record(cls, subscription_id: str, data: Dict[str, Any]) -> "Subscription":
        fulfillments = tuple(
            Fulfillment.from_record(item, index)
            for index, item in enumerate(data.get("fulfillments") or [])
        )
        log = tuple(LogEntry.from_record(item) for item in data.get("communicationLog") or [])
        start = data.get("startDate")
        if start is None and fulfillments:
            start = fulfillments[0].fulfillment_date

        return cls(
            id=subscription_id,
            patient_name=data.get("patientName", ""),
            drug_name=data.get("drugName", ""),
            new_rx_call=bool(data.get("newRxCall", False)),
            duration=int(data.get("duration") or len(fulfillments)),
            status=_decode_admin_status(subscription_id, data.get("status")),
            physician_status=PhysicianStatus(data.get("physicianStatus") or PhysicianStatus.PENDING.value),
            start_date=to_utc(start) if start is not None else utcnow(),
            fulfillments=fulfillments,
            communication_log=log,
            version=int(data.get("version") or 0),
        )


def _decode_admin_status(subscription_id: str, value: Optional[str]) -> AdministrativeStatus:
    if not value:
        return AdministrativeStatus.PENDING
    try:
        return AdministrativeStatus(value)
    except ValueError:
        # A derived label was written back by an older client
        logger.warning(
            "Subscription %s has non-administrative status %r; reading it as Active",
            subscription_id, value,
        )
        return AdministrativeStatus.ACTIVE
