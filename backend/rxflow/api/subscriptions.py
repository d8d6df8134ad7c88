"""
Subscription API.

Endpoints:
- GET    /api/v1/subscriptions                    - Sorted dashboard rows
- POST   /api/v1/subscriptions                    - Create a subscription
- GET    /api/v1/subscriptions/<id>               - One subscription
- PUT    /api/v1/subscriptions/<id>               - Edit administrative fields
- DELETE /api/v1/subscriptions/<id>               - Delete permanently
- GET    /api/v1/subscriptions/<id>/log           - Log, newest first
- POST   /api/v1/subscriptions/<id>/log           - Add a staff note
- POST   /api/v1/subscriptions/<id>/fulfillments/<key>/transition - Set status
- POST   /api/v1/subscriptions/<id>/fulfillments/<key>/events     - Simulated event
- POST   /api/v1/subscriptions/<id>/fulfillments/<key>/ship       - Mark shipped

<key> is a fulfillment id or the fulfillment date in ISO-8601.
Any mutation accepts "expectedVersion" in the body (or an If-Match
header) to reject writes against a stale copy.
"""

import logging

from flask import Blueprint, request, jsonify

from rxflow.errors import RxFlowError
from rxflow.models.subscription import utcnow
from rxflow.routes.auth import current_user_id
from rxflow.services.communication_log import entries_for_display
from rxflow.services.dashboard import get_dashboard_feed, serialize_subscription
from rxflow.services.subscription_service import get_subscription_service, parse_expected_version

logger = logging.getLogger(__name__)

bp = Blueprint("subscriptions", __name__, url_prefix="/api/v1/subscriptions")


def _expected_version(data: dict):
    value = data.get("expectedVersion")
    if value is None and request.headers.get("If-Match"):
        value = request.headers["If-Match"].strip('"')
    return parse_expected_version(value)


def _subscription_response(subscription, status_code: int = 200):
    return jsonify({
        "ok": True,
        "subscription": serialize_subscription(subscription, now=utcnow()),
    }), status_code


@bp.errorhandler(RxFlowError)
def handle_error(error: RxFlowError):
    if error.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.path, error.message)
    return jsonify(error.to_dict()), error.status_code


# =============================================================================
# Collection
# =============================================================================

@bp.route("", methods=["GET"])
def list_subscriptions():
    """Dashboard rows: Action Required first, then by next action date."""
    feed = get_dashboard_feed()
    if feed.error and not feed.loaded:
        return jsonify({"error": feed.error}), 503

    now = utcnow()
    return jsonify({
        "ok": True,
        "subscriptions": [
            serialize_subscription(row.subscription, now=now, resolution=row.resolution)
            for row in feed.rows
        ],
        "error": feed.error,
    })


@bp.route("", methods=["POST"])
def create_subscription():
    data = request.json or {}
    subscription = get_subscription_service().create_subscription(data)
    logger.info("Subscription %s created by %s", subscription.id, current_user_id() or "anonymous")
    return _subscription_response(subscription, 201)


# =============================================================================
# Single subscription
# =============================================================================

@bp.route("/<subscription_id>", methods=["GET"])
def get_subscription(subscription_id: str):
    return _subscription_response(get_subscription_service().get_subscription(subscription_id))


@bp.route("/<subscription_id>", methods=["PUT"])
def update_subscription(subscription_id: str):
    data = request.json or {}
    subscription = get_subscription_service().update_subscription(
        subscription_id, data, expected_version=_expected_version(data)
    )
    return _subscription_response(subscription)


@bp.route("/<subscription_id>", methods=["DELETE"])
def delete_subscription(subscription_id: str):
    get_subscription_service().delete_subscription(subscription_id)
    logger.info("Subscription %s deleted by %s", subscription_id, current_user_id() or "anonymous")
    return jsonify({"ok": True})


# =============================================================================
# Communication log
# =============================================================================

@bp.route("/<subscription_id>/log", methods=["GET"])
def get_log(subscription_id: str):
    subscription = get_subscription_service().get_subscription(subscription_id)
    return jsonify({
        "ok": True,
        "entries": [entry.to_record() for entry in entries_for_display(subscription)],
    })


@bp.route("/<subscription_id>/log", methods=["POST"])
def add_log_entry(subscription_id: str):
    data = request.json or {}
    subscription = get_subscription_service().add_log_entry(
        subscription_id,
        data.get("message"),
        expected_version=_expected_version(data),
    )
    return _subscription_response(subscription, 201)


# =============================================================================
# Fulfillments
# =============================================================================

@bp.route("/<subscription_id>/fulfillments/<key>/transition", methods=["POST"])
def transition_fulfillment(subscription_id: str, key: str):
    data = request.json or {}
    subscription = get_subscription_service().transition_fulfillment(
        subscription_id,
        key,
        data.get("status"),
        tracking=data.get("tracking"),
        expected_version=_expected_version(data),
    )
    return _subscription_response(subscription)


@bp.route("/<subscription_id>/fulfillments/<key>/events", methods=["POST"])
def record_event(subscription_id: str, key: str):
    data = request.json or {}
    subscription = get_subscription_service().record_event(
        subscription_id,
        key,
        data.get("event") or "",
        expected_version=_expected_version(data),
    )
    return _subscription_response(subscription)


@bp.route("/<subscription_id>/fulfillments/<key>/ship", methods=["POST"])
def ship_fulfillment(subscription_id: str, key: str):
    data = request.json or {}
    subscription = get_subscription_service().mark_shipped(
        subscription_id,
        key,
        data.get("tracking"),
        expected_version=_expected_version(data),
    )
    return _subscription_response(subscription)
