"""
Password hashing and access tokens for CageMatch.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
import jwt
import structlog

from ..config import AppConfig
from ..errors import AppError

logger = structlog.get_logger(__name__)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store
        logger.warning("Unreadable password hash")
        return False


@dataclass(frozen=True)
class TokenClaims:
    """Caller identity carried by an access token."""
    user_id: str
    role: str
    username: str


class TokenService:
    """Issues and verifies signed, time-limited access tokens."""

    def __init__(self, config: AppConfig):
        self.secret = config.jwt_secret
        self.algorithm = config.jwt_algorithm
        self.expires_in = timedelta(minutes=config.jwt_expires_minutes)

    def issue(self, user_id: str, role: str, username: str) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "id": user_id,
            "role": role,
            "username": username,
            "iat": now,
            "exp": now + self.expires_in,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AppError("Your token has expired. Please log in again.", 403, "EXPIRED_TOKEN")
        except jwt.InvalidTokenError:
            raise AppError("Invalid token. Please log in again.", 403, "INVALID_TOKEN")

        try:
            return TokenClaims(
                user_id=payload["id"],
                role=payload.get("role", ""),
                username=payload.get("username", ""),
            )
        except KeyError:
            raise AppError("Invalid token. Please log in again.", 403, "INVALID_TOKEN")
