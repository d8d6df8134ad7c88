"""
FulfillmentStateMachine: status changes on a single fulfillment.

States: Scheduled -> Intake Sent -> Awaiting RX -> RX Received -> Shipped.
Transitions are unguarded; any state may move to any named state,
including back to an earlier one. Every transition appends exactly one
communication log entry, even when the status does not change.

Fulfillments are addressed by fulfillment_id. A datetime key matching
the fulfillment date is also accepted.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional, Tuple, Union

from rxflow.errors import AmbiguousFulfillment, FulfillmentNotFound, InvalidSubscriptionInput
from rxflow.models.subscription import (
    Actor,
    Fulfillment,
    FulfillmentStatus,
    LogEntry,
    Subscription,
    format_date,
    to_utc,
)
from rxflow.services.communication_log import append_entry, new_entry

FulfillmentKey = Union[str, datetime]

# Simulated integration events and the status each one moves to
SIMULATED_EVENTS = {
    "intake_sent": FulfillmentStatus.INTAKE_SENT,
    "patient_responded": FulfillmentStatus.AWAITING_RX,
    "rx_received": FulfillmentStatus.RX_RECEIVED,
}


def find_fulfillment(subscription: Subscription, key: FulfillmentKey) -> Tuple[int, Fulfillment]:
    """
    Locate a fulfillment by id or by date.

    Raises:
        FulfillmentNotFound: nothing matches
        AmbiguousFulfillment: a date key matches more than one fulfillment
    """
    if isinstance(key, datetime):
        target = to_utc(key)
        matches = [
            (index, f) for index, f in enumerate(subscription.fulfillments)
            if f.fulfillment_date == target
        ]
        if len(matches) > 1:
            raise AmbiguousFulfillment()
        if matches:
            return matches[0]
        raise FulfillmentNotFound(f"No fulfillment scheduled for {format_date(target)}.")

    for index, f in enumerate(subscription.fulfillments):
        if f.fulfillment_id == key:
            return index, f
    raise FulfillmentNotFound(f"Fulfillment not found: {key}")


def transition_message(fulfillment: Fulfillment, new_status: FulfillmentStatus, tracking: Optional[str]) -> str:
    when = format_date(fulfillment.fulfillment_date)
    if new_status == FulfillmentStatus.SHIPPED:
        return f"Marked fulfillment for {when} as Shipped. Tracking: {tracking}"
    return f"Updated fulfillment for {when} to status: {new_status.value}."


def transition_actor(new_status: FulfillmentStatus) -> Actor:
    return Actor.PHARMACY_STAFF if new_status == FulfillmentStatus.SHIPPED else Actor.SYSTEM


def apply_transition(
    subscription: Subscription,
    key: FulfillmentKey,
    new_status: FulfillmentStatus,
    tracking: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Subscription, LogEntry]:
    """
    Move one fulfillment to `new_status` and log it.

    `tracking` replaces the stored tracking number only when given.
    Returns the updated subscription (log entry already appended) and the
    entry itself.
    """
    new_status = FulfillmentStatus(new_status)
    index, fulfillment = find_fulfillment(subscription, key)

    updated = replace(
        fulfillment,
        status=new_status,
        tracking=tracking if tracking is not None else fulfillment.tracking,
    )
    fulfillments = subscription.fulfillments[:index] + (updated,) + subscription.fulfillments[index + 1:]

    entry = new_entry(
        transition_message(fulfillment, new_status, tracking),
        transition_actor(new_status),
        now,
    )
    result = append_entry(replace(subscription, fulfillments=fulfillments), entry)
    return result, entry


def apply_event(
    subscription: Subscription,
    key: FulfillmentKey,
    event: str,
    now: Optional[datetime] = None,
) -> Tuple[Subscription, LogEntry]:
    """Apply a simulated integration event (intake_sent, patient_responded, rx_received)."""
    try:
        new_status = SIMULATED_EVENTS[event]
    except KeyError:
        raise InvalidSubscriptionInput(
            f"Unknown event '{event}'. Expected one of: {', '.join(SIMULATED_EVENTS)}."
        )
    return apply_transition(subscription, key, new_status, now=now)
