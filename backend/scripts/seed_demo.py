#!/usr/bin/env python3
"""
DEMO SEED SCRIPT
================

Creates a predictable set of subscriptions in the configured store:
- one 3-month subscription waiting to ship its first fulfillment
- one 6-month subscription mid-way through intake
- one fully shipped 1-month subscription
- one subscription on hold

RE-RUN ANYTIME: python scripts/seed_demo.py [--clear]

With --clear, every existing subscription is deleted first.
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rxflow.config import config
from rxflow.db.store import get_document_store
from rxflow.services.subscription_service import SubscriptionService

logger = logging.getLogger("rxflow.seed")

# =============================================================================
# CONFIGURATION
# =============================================================================

DEMO_SUBSCRIPTIONS = [
    {
        "patientName": "Patient-1042",
        "drugName": "Lisinopril 10mg",
        "duration": 3,
        "newRxCall": True,
    },
    {
        "patientName": "Patient-2290",
        "drugName": "Metformin 500mg",
        "duration": 6,
        "status": "Approved",
        "physicianStatus": "Approved",
    },
    {
        "patientName": "Patient-3175",
        "drugName": "Atorvastatin 20mg",
        "duration": 1,
        "physicianStatus": "Approved",
    },
    {
        "patientName": "Patient-4801",
        "drugName": "Levothyroxine 50mcg",
        "duration": 3,
        "status": "On Hold",
    },
]


def seed(clear: bool = False) -> None:
    store = get_document_store()
    service = SubscriptionService(store)

    if clear:
        for subscription_id, _ in store.list():
            store.delete(subscription_id)
        logger.info("Cleared existing subscriptions")

    start = datetime.now(timezone.utc)
    created = [service.create_subscription(dict(data, startDate=start.isoformat())) for data in DEMO_SUBSCRIPTIONS]
    waiting, in_intake, completed, _ = created

    # Walk the 6-month subscription's second fulfillment into intake
    second = in_intake.fulfillments[1].fulfillment_id
    service.record_event(in_intake.id, second, "intake_sent")
    service.record_event(in_intake.id, second, "patient_responded")

    # Ship the single fulfillment of the 1-month subscription
    service.mark_shipped(completed.id, completed.fulfillments[0].fulfillment_id, "1Z999AA10123456784")

    service.add_log_entry(waiting.id, "Called patient to confirm shipping address.")

    logger.info("Seeded %d subscriptions into %s store", len(created), config.STORE_BACKEND)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL.upper(), format="%(levelname)s [%(name)s] %(message)s")

    parser = argparse.ArgumentParser(description="Seed demo subscriptions")
    parser.add_argument("--clear", action="store_true", help="delete existing subscriptions first")
    args = parser.parse_args()

    if config.STORE_BACKEND == "sql":
        from rxflow.db.postgres import init_db
        init_db()

    seed(clear=args.clear)
