"""
Pytest configuration for all tests.
Sets up Python path to find the backend rxflow package and provides
shared subscription fixtures.
"""

import sys
import os
from dataclasses import replace
from datetime import datetime, timezone

import pytest

# Add backend directory to Python path
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from rxflow.models.subscription import AdministrativeStatus, FulfillmentStatus  # noqa: E402
from rxflow.services.subscription_service import new_subscription  # noqa: E402


JAN_1_2024 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_subscription():
    """
    Factory for subscriptions built in memory.

    `statuses` overrides fulfillment statuses in order; `status` sets the
    stored administrative status.
    """
    def _make(duration=3, start=JAN_1_2024, statuses=None, status=AdministrativeStatus.PENDING,
              subscription_id="sub-1", patient_name="Patient-1000"):
        subscription = new_subscription(
            patient_name=patient_name,
            drug_name="Lisinopril 10mg",
            duration=duration,
            start_date=start,
            status=status,
            now=start,
        ).with_id(subscription_id)
        if statuses is not None:
            fulfillments = tuple(
                replace(f, status=FulfillmentStatus(s))
                for f, s in zip(subscription.fulfillments, statuses)
            )
            subscription = replace(subscription, fulfillments=fulfillments)
        return subscription

    return _make

