"""
Account manager for CageMatch.
"""

import re
from typing import Optional, Dict, Any, List, Tuple
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
import structlog

from ..config import AppConfig
from ..database import UserOps
from ..database.models import User, Role
from ..errors import AppError, not_found
from ..utils.pagination import page_window, paginate, parse_sort
from .security import TokenService, hash_password, verify_password

logger = structlog.get_logger(__name__)

# Subdocuments merged field by field instead of replaced wholesale
_NESTED_FIELDS = ("location", "socialLinks")


class AccountManager:
    """Signup, sign-in and profile maintenance."""

    def __init__(self, user_ops: UserOps, tokens: TokenService, config: AppConfig):
        self.user_ops = user_ops
        self.tokens = tokens
        self.bcrypt_rounds = config.bcrypt_rounds

    async def signup(self, username: str, email: str, password: str) -> User:
        """Register a new fan account."""
        existing = await self.user_ops.find_conflicting_user(username=username, email=email)
        if existing:
            raise _duplicate_user(existing, username)

        user = User(
            username=username,
            email=email,
            password=hash_password(password, self.bcrypt_rounds),
        )
        try:
            await self.user_ops.create_user(user)
        except DuplicateKeyError:
            # Unique index caught a concurrent signup
            existing = await self.user_ops.find_conflicting_user(username=username, email=email)
            if existing:
                raise _duplicate_user(existing, username)
            raise

        logger.info("User signed up", user_id=str(user.id), username=username)
        return user

    async def signin(self, username: str, password: str) -> Tuple[str, User]:
        """Verify credentials and issue an access token."""
        user = await self.user_ops.get_user_by_username(username)
        if not user or not verify_password(password, user.password):
            logger.info("Failed sign-in", username=username)
            raise AppError("Invalid username or password", 401, "INVALID_CREDENTIALS")

        token = self.tokens.issue(str(user.id), user.role, user.username)
        logger.info("User signed in", user_id=str(user.id))
        return token, user

    async def get_user(self, user_id: ObjectId) -> User:
        user = await self.user_ops.get_user(user_id)
        if not user:
            raise not_found("User not found", "USER_NOT_FOUND")
        return user

    async def get_profile(self, user_id: ObjectId) -> Tuple[User, List[Dict[str, Any]]]:
        """The caller's account plus summaries of the fighters they follow."""
        user = await self.get_user(user_id)
        favorites = await self.user_ops.get_users_by_ids(user.favorite_fighters)
        summaries = [
            favorites[fighter_id].summary()
            for fighter_id in user.favorite_fighters
            if fighter_id in favorites
        ]
        return user, summaries

    async def become_fighter(self, user_id: ObjectId) -> User:
        """Step into the cage: promote a fan to fighter. There is no way back."""
        user = await self.get_user(user_id)
        if user.is_fighter:
            raise AppError("You are already a fighter!", 400, "ALREADY_FIGHTER")

        if not await self.user_ops.promote_to_fighter(user_id):
            # Promoted by a concurrent request between the read and the write
            raise AppError("You are already a fighter!", 400, "ALREADY_FIGHTER")

        logger.info("User became a fighter", user_id=str(user_id))
        return await self.get_user(user_id)

    async def update_profile(self, user_id: ObjectId, updates: Dict[str, Any]) -> User:
        """General profile update (username, email, social links)."""
        username = updates.get("username")
        email = updates.get("email")
        if username or email:
            existing = await self.user_ops.find_conflicting_user(
                username=username, email=email, exclude_id=user_id
            )
            if existing:
                field = "username" if existing.username == username else "email"
                raise AppError(f"This {field} is already taken", 409, "DUPLICATE_FIELD")

        return await self._apply_updates(user_id, updates)

    async def update_fighter_profile(self, user_id: ObjectId, updates: Dict[str, Any]) -> User:
        """Fighter-only attributes: stats, styles, location, links."""
        user = await self.get_user(user_id)
        if not user.is_fighter:
            raise AppError("Only fighters can update fighter details", 403, "NOT_FIGHTER")

        return await self._apply_updates(user_id, updates)

    async def follow_fighter(self, user_id: ObjectId, fighter_id: ObjectId) -> User:
        if user_id == fighter_id:
            raise AppError("You cannot follow yourself", 400, "SELF_FOLLOW")

        fighter = await self.user_ops.get_user(fighter_id)
        if not fighter:
            raise not_found("Fighter not found", "FIGHTER_NOT_FOUND")
        if not fighter.is_fighter:
            raise AppError("You can only follow fighters", 400, "TARGET_NOT_FIGHTER")

        if not await self.user_ops.add_favorite(user_id, fighter_id):
            raise not_found("User not found", "USER_NOT_FOUND")
        return await self.get_user(user_id)

    async def unfollow_fighter(self, user_id: ObjectId, fighter_id: ObjectId) -> User:
        if not await self.user_ops.remove_favorite(user_id, fighter_id):
            raise not_found("User not found", "USER_NOT_FOUND")
        return await self.get_user(user_id)

    async def list_fighters(self, weight: Optional[float] = None, height: Optional[float] = None,
                            styles: Optional[List[str]] = None, city: Optional[str] = None,
                            state: Optional[str] = None, country: Optional[str] = None,
                            page: int = 1, limit: int = 10,
                            sort: str = "-createdAt") -> Tuple[List[User], Dict[str, Any]]:
        """Browse fighters with optional filters."""
        query: Dict[str, Any] = {"role": Role.FIGHTER.value}

        if weight is not None:
            query["weight"] = weight
        if height is not None:
            query["height"] = height
        if styles:
            query["styles"] = {"$in": styles}

        for field, value in (("city", city), ("state", state), ("country", country)):
            if value:
                query[f"location.{field}"] = {"$regex": re.escape(value), "$options": "i"}

        skip, limit = page_window(page, limit)
        fighters = await self.user_ops.find_users(query, parse_sort(sort), skip, limit)
        total = await self.user_ops.count_users(query)

        return fighters, paginate(page, limit, total)

    async def _apply_updates(self, user_id: ObjectId, updates: Dict[str, Any]) -> User:
        fields = _flatten(updates)
        if not fields:
            return await self.get_user(user_id)

        try:
            user = await self.user_ops.update_user(user_id, fields)
        except DuplicateKeyError:
            raise AppError("This username or email is already taken", 409, "DUPLICATE_FIELD")
        if not user:
            raise not_found("User not found", "USER_NOT_FOUND")

        logger.info("Profile updated", user_id=str(user_id), fields=sorted(fields))
        return user


def _duplicate_user(existing: User, username: str) -> AppError:
    field = "username" if existing.username == username else "email"
    return AppError(f"A user with this {field} already exists", 409, "DUPLICATE_USER")


def _flatten(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Turn nested subdocument updates into dotted $set paths."""
    fields: Dict[str, Any] = {}
    for key, value in updates.items():
        if key in _NESTED_FIELDS and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                fields[f"{key}.{sub_key}"] = sub_value
        else:
            fields[key] = value
    return fields
