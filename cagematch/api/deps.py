"""
Request dependencies for the CageMatch API.
"""

from dataclasses import dataclass
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import AccountManager, TokenService
from ..challenge import ChallengeManager
from ..config import AppConfig
from ..database.models import is_object_id
from ..errors import AppError


@dataclass
class Services:
    """Everything the routes need, built once at startup."""
    config: AppConfig
    tokens: TokenService
    accounts: AccountManager
    challenges: ChallengeManager


_bearer = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


def get_accounts(services: Services = Depends(get_services)) -> AccountManager:
    return services.accounts


def get_challenges(services: Services = Depends(get_services)) -> ChallengeManager:
    return services.challenges


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    services: Services = Depends(get_services),
) -> ObjectId:
    """Resolve the bearer token into the caller's account id."""
    if credentials is None:
        raise AppError("Access denied. No token provided", 401, "NO_TOKEN")

    claims = services.tokens.verify(credentials.credentials)
    if not is_object_id(claims.user_id):
        raise AppError("Invalid token. Please log in again.", 403, "INVALID_TOKEN")
    return ObjectId(claims.user_id)


def parse_object_id(value: str, name: str = "id") -> ObjectId:
    if not is_object_id(value):
        raise AppError(f"Invalid {name} format", 400, "INVALID_ID")
    return ObjectId(value)


def challenge_id_path(challenge_id: str) -> ObjectId:
    return parse_object_id(challenge_id)


def fighter_id_path(fighter_id: str) -> ObjectId:
    return parse_object_id(fighter_id, "fighterId")
