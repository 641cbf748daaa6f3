"""In-memory user registry and bearer-token sessions.

Tokens are signed JWTs; signing out records the token's jti so the token
stops resolving to a user even before it expires.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Set

import structlog

from spotsave.core.config import settings
from spotsave.core.exceptions import AuthenticationError, ValidationError
from spotsave.core.security import (
    create_access_token,
    decode_token,
    get_password_hash,
    verify_password,
)

logger = structlog.get_logger(__name__)


@dataclass
class User:
    id: str
    email: str
    hashed_password: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuthService:
    """Registers users and issues, resolves and revokes their tokens"""

    def __init__(self, token_ttl: Optional[timedelta] = None):
        self.token_ttl = token_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._users: Dict[str, User] = {}
        self._ids_by_email: Dict[str, str] = {}
        self._revoked: Set[str] = set()

    def sign_up(self, email: str, password: str) -> User:
        key = email.lower()
        if key in self._ids_by_email:
            raise ValidationError("User with this email already exists")

        user = User(id=str(uuid.uuid4()), email=email, hashed_password=get_password_hash(password))
        self._users[user.id] = user
        self._ids_by_email[key] = user.id
        logger.info("User registered", user_id=user.id)
        return user

    def sign_in(self, email: str, password: str) -> str:
        user_id = self._ids_by_email.get(email.lower())
        user = self._users.get(user_id) if user_id else None
        if user is None or not verify_password(password, user.hashed_password):
            logger.warning("Login attempt failed")
            raise AuthenticationError("Incorrect email or password")

        logger.info("User logged in", user_id=user.id)
        return create_access_token(user.id, expires_delta=self.token_ttl)

    def sign_out(self, token: str) -> Optional[User]:
        """Revoke the token; returns the user it belonged to, if it was valid"""
        user = self.get_current_user(token)
        payload = decode_token(token)
        if payload and payload.get("jti"):
            self._revoked.add(payload["jti"])
        if user is not None:
            logger.info("User logged out", user_id=user.id)
        return user

    def get_current_user(self, token: str) -> Optional[User]:
        payload = decode_token(token)
        if payload is None or payload.get("jti") in self._revoked:
            return None
        return self._users.get(payload.get("sub"))


# Global instance
auth_service = AuthService()
