"""
SortingService: dashboard priority order.

1. derived Action Required first;
2. then by next actionable date ascending;
3. subscriptions with nothing left to ship go last within their group.

The sort is stable, so ties keep their input order.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from rxflow.models.subscription import OverallStatus, Subscription, to_utc
from rxflow.services.status_derivation import derive_status


def next_actionable_date(subscription: Subscription) -> Optional[datetime]:
    """Date of the first fulfillment (stored order) that has not shipped."""
    for fulfillment in subscription.fulfillments:
        if not fulfillment.is_shipped:
            return fulfillment.fulfillment_date
    return None


def is_past_due(subscription: Subscription, now: datetime) -> bool:
    next_date = next_actionable_date(subscription)
    return next_date is not None and next_date < to_utc(now)


_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(subscription: Subscription):
    next_date = next_actionable_date(subscription)
    return (
        derive_status(subscription) != OverallStatus.ACTION_REQUIRED,
        next_date is None,
        next_date or _EARLIEST,
    )


def sort_subscriptions(subscriptions: Iterable[Subscription]) -> List[Subscription]:
    return sorted(subscriptions, key=_sort_key)
