"""
Status derivation for subscriptions.

The displayed status of a subscription is computed from its fulfillments
every time a snapshot is processed. The only stored value that survives
derivation is the sticky On Hold override:

1. stored On Hold            -> On Hold
2. every fulfillment Shipped -> Fulfilled
3. any fulfillment RX Received -> Action Required
4. otherwise                 -> Active

Stored Pending/Approved are therefore replaced as soon as derivation runs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Type, Union

from rxflow.models.subscription import (
    AdministrativeStatus,
    FulfillmentStatus,
    OverallStatus,
    Subscription,
)


@dataclass(frozen=True)
class Derived:
    """Status computed from fulfillment states."""
    status: OverallStatus


@dataclass(frozen=True)
class ManualOverride:
    """Status forced by an operator; suppresses derivation."""
    status: OverallStatus = OverallStatus.ON_HOLD


StatusResolution = Union[Derived, ManualOverride]


def resolve_status(subscription: Subscription) -> StatusResolution:
    """Apply the precedence rules and say which one decided."""
    if subscription.status == AdministrativeStatus.ON_HOLD:
        return ManualOverride()

    statuses = [f.status for f in subscription.fulfillments]
    if all(s == FulfillmentStatus.SHIPPED for s in statuses):
        return Derived(OverallStatus.FULFILLED)
    if any(s == FulfillmentStatus.RX_RECEIVED for s in statuses):
        return Derived(OverallStatus.ACTION_REQUIRED)
    return Derived(OverallStatus.ACTIVE)


def derive_status(subscription: Subscription) -> OverallStatus:
    return resolve_status(subscription).status


# =============================================================================
# Presentation metadata
# =============================================================================

@dataclass(frozen=True)
class Badge:
    label: str
    color: str
    icon: Optional[str] = None

    def to_dict(self) -> dict:
        return {"label": self.label, "color": self.color, "icon": self.icon}


STATUS_BADGES: Dict[OverallStatus, Badge] = {
    OverallStatus.PENDING: Badge("Pending", "bg-yellow-100 text-yellow-800"),
    OverallStatus.APPROVED: Badge("Approved", "bg-blue-100 text-blue-800"),
    OverallStatus.ACTION_REQUIRED: Badge("Action Required", "bg-red-100 text-red-800", "alert-circle"),
    OverallStatus.ACTIVE: Badge("Active", "bg-green-100 text-green-800"),
    OverallStatus.FULFILLED: Badge("Fulfilled", "bg-gray-100 text-gray-800"),
    OverallStatus.ON_HOLD: Badge("On Hold", "bg-gray-100 text-gray-800", "pause-circle"),
}

FULFILLMENT_BADGES: Dict[FulfillmentStatus, Badge] = {
    FulfillmentStatus.SCHEDULED: Badge("Scheduled", "text-gray-400", "clock"),
    FulfillmentStatus.INTAKE_SENT: Badge("Intake Sent", "text-blue-500", "mail"),
    FulfillmentStatus.AWAITING_RX: Badge("Awaiting RX", "text-orange-500", "paperclip"),
    FulfillmentStatus.RX_RECEIVED: Badge("RX Received - Ready to Ship", "text-purple-600", "check-circle"),
    FulfillmentStatus.SHIPPED: Badge("Shipped", "text-green-600", "truck"),
}


def _require_total(mapping: Dict, enum_cls: Type[Enum]) -> None:
    missing = [member.value for member in enum_cls if member not in mapping]
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} has no badge for: {', '.join(missing)}")


_require_total(STATUS_BADGES, OverallStatus)
_require_total(FULFILLMENT_BADGES, FulfillmentStatus)


def status_badge(status: OverallStatus) -> Badge:
    return STATUS_BADGES[OverallStatus(status)]


def fulfillment_badge(status: FulfillmentStatus) -> Badge:
    return FULFILLMENT_BADGES[FulfillmentStatus(status)]
