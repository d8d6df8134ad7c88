"""
Authentication Routes.

Endpoints:
- POST /api/v1/auth/anonymous - Start an anonymous session
- GET /api/v1/auth/me - Identify the current session
"""

from typing import Optional

from flask import Blueprint, request, jsonify

from rxflow.errors import AuthenticationError, RxFlowError
from rxflow.services.auth_service import get_auth_service


bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def bearer_token() -> Optional[str]:
    """Token from the Authorization header, if any."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]  # Remove "Bearer " prefix


def current_user_id() -> Optional[str]:
    return get_auth_service().current_user_id(bearer_token())


@bp.errorhandler(RxFlowError)
def handle_error(error: RxFlowError):
    return jsonify(error.to_dict()), error.status_code


@bp.route("/anonymous", methods=["POST"])
def sign_in_anonymously():
    """Start an anonymous session."""
    session = get_auth_service().sign_in_anonymously()
    return jsonify({"ok": True, **session})


@bp.route("/me", methods=["GET"])
def me():
    """Return the user id behind the bearer token."""
    user_id = current_user_id()
    if user_id is None:
        raise AuthenticationError()
    return jsonify({"ok": True, "user_id": user_id, "anonymous": True})
