"""
Anonymous session authentication.

Every caller is trusted; a session only tags which client performed an
action. Sessions are HS256 JWTs carrying a random user id.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from rxflow.config import config
from rxflow.errors import AuthenticationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_TYPE = "anonymous"


class AuthService:
    """Issues and validates anonymous session tokens."""

    def __init__(self, jwt_secret: Optional[str] = None, expire_minutes: Optional[int] = None):
        self.jwt_secret = jwt_secret or config.JWT_SECRET
        self.jwt_algorithm = JWT_ALGORITHM
        self.expire_minutes = expire_minutes or config.ACCESS_TOKEN_EXPIRE_MINUTES

    # =========================================================================
    # JWT Token Management
    # =========================================================================

    def create_token(self, user_id: str) -> str:
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        payload = {
            "sub": user_id,
            "exp": expire,
            "type": TOKEN_TYPE,
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def decode_token(self, token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    # =========================================================================
    # Sessions
    # =========================================================================

    def sign_in_anonymously(self) -> dict:
        """Start a new anonymous session."""
        user_id = uuid.uuid4().hex
        try:
            token = self.create_token(user_id)
        except jwt.PyJWTError as e:
            logger.error("Anonymous sign-in failed: %s", e)
            raise AuthenticationError() from e

        logger.info("Anonymous session started for %s", user_id)
        return {
            "user_id": user_id,
            "access_token": token,
            "token_type": "bearer",
            "expires_in": self.expire_minutes * 60,
        }

    def current_user_id(self, token: Optional[str]) -> Optional[str]:
        """User id for a session token, or None if missing, invalid or expired."""
        if not token:
            return None
        payload = self.decode_token(token)
        if payload is None or payload.get("type") != TOKEN_TYPE:
            return None
        return payload.get("sub")


# Singleton instance
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get the auth service singleton."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
