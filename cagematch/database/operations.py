"""
Database operations for CageMatch.
"""

from typing import Optional, List, Dict, Any, Iterable, Tuple
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection
from bson import ObjectId
from pymongo import ReturnDocument
import structlog

from ..config import DatabaseConfig
from .models import Challenge, User, Role, ACTIVE_STATUSES, utcnow

logger = structlog.get_logger(__name__)

SortSpec = List[Tuple[str, int]]


class BaseOperations:
    """Base operations class."""

    collection_name: str = ""

    def __init__(self, database: AsyncIOMotorDatabase, db_config: DatabaseConfig):
        self.database = database
        self.db_config = db_config

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self.database[getattr(self.db_config, self.collection_name)]


class UserOps(BaseOperations):
    """Account store."""

    collection_name = "users_collection"

    async def create_user(self, user: User) -> User:
        """Insert a new account. Raises DuplicateKeyError on a unique-index hit."""
        await self.collection.insert_one(user.to_document())
        logger.info("User created", user_id=str(user.id), username=user.username)
        return user

    async def get_user(self, user_id: ObjectId) -> Optional[User]:
        """Get user by ID."""
        user_data = await self.collection.find_one({"_id": user_id})
        if user_data:
            return User(**user_data)
        return None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        user_data = await self.collection.find_one({"username": username})
        if user_data:
            return User(**user_data)
        return None

    async def get_users_by_ids(self, user_ids: Iterable[ObjectId]) -> Dict[ObjectId, User]:
        """Fetch several accounts in one round trip, keyed by id."""
        ids = list({uid for uid in user_ids if uid is not None})
        if not ids:
            return {}
        users = {}
        async for user_data in self.collection.find({"_id": {"$in": ids}}):
            user = User(**user_data)
            users[user.id] = user
        return users

    async def find_conflicting_user(self, username: Optional[str] = None,
                                    email: Optional[str] = None,
                                    exclude_id: Optional[ObjectId] = None) -> Optional[User]:
        """Find an account other than `exclude_id` holding either identifier."""
        clauses = []
        if username is not None:
            clauses.append({"username": username})
        if email is not None:
            clauses.append({"email": email})
        if not clauses:
            return None

        query: Dict[str, Any] = {"$or": clauses}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}

        user_data = await self.collection.find_one(query)
        if user_data:
            return User(**user_data)
        return None

    async def update_user(self, user_id: ObjectId, fields: Dict[str, Any]) -> Optional[User]:
        """Set top-level fields and return the updated account."""
        update = dict(fields)
        update["updatedAt"] = utcnow()
        user_data = await self.collection.find_one_and_update(
            {"_id": user_id},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if user_data:
            return User(**user_data)
        return None

    async def promote_to_fighter(self, user_id: ObjectId) -> bool:
        """Flip a fan to fighter in one conditional write. One way only."""
        result = await self.collection.update_one(
            {"_id": user_id, "role": Role.FAN.value},
            {"$set": {"role": Role.FIGHTER.value, "updatedAt": utcnow()}},
        )
        return result.modified_count > 0

    async def add_challenge_ref(self, user_ids: Iterable[ObjectId], challenge_id: ObjectId) -> int:
        """Record a challenge on each account's back-reference list. Idempotent."""
        result = await self.collection.update_many(
            {"_id": {"$in": list(user_ids)}},
            {"$addToSet": {"challenges": challenge_id}},
        )
        return result.modified_count

    async def add_favorite(self, user_id: ObjectId, fighter_id: ObjectId) -> bool:
        result = await self.collection.update_one(
            {"_id": user_id},
            {"$addToSet": {"favoriteFighters": fighter_id}, "$set": {"updatedAt": utcnow()}},
        )
        return result.matched_count > 0

    async def remove_favorite(self, user_id: ObjectId, fighter_id: ObjectId) -> bool:
        result = await self.collection.update_one(
            {"_id": user_id},
            {"$pull": {"favoriteFighters": fighter_id}, "$set": {"updatedAt": utcnow()}},
        )
        return result.matched_count > 0

    async def find_users(self, query: Dict[str, Any], sort: SortSpec,
                         skip: int = 0, limit: int = 10) -> List[User]:
        cursor = self.collection.find(query).sort(sort).skip(skip).limit(limit)
        return [User(**user_data) async for user_data in cursor]

    async def count_users(self, query: Dict[str, Any]) -> int:
        return await self.collection.count_documents(query)


class ChallengeOps(BaseOperations):
    """Challenge store."""

    collection_name = "challenges_collection"

    async def create_challenge(self, challenge: Challenge) -> Challenge:
        """Insert a new challenge. Raises DuplicateKeyError if the pair is already active."""
        await self.collection.insert_one(challenge.to_document())
        logger.info("Challenge stored", challenge_id=str(challenge.id))
        return challenge

    async def get_challenge(self, challenge_id: ObjectId) -> Optional[Challenge]:
        """Get challenge by ID."""
        challenge_data = await self.collection.find_one({"_id": challenge_id})
        if challenge_data:
            return Challenge(**challenge_data)
        return None

    async def find_active_between(self, user1_id: ObjectId, user2_id: ObjectId) -> Optional[Challenge]:
        """Active challenge between two accounts, in either direction."""
        challenge_data = await self.collection.find_one({
            "$or": [
                {"challenger": user1_id, "challenged": user2_id},
                {"challenger": user2_id, "challenged": user1_id},
            ],
            "status": {"$in": list(ACTIVE_STATUSES)},
        })
        if challenge_data:
            return Challenge(**challenge_data)
        return None

    async def save_challenge(self, challenge: Challenge) -> bool:
        """Replace the stored document if nobody saved it since it was loaded.

        On success the model's version is bumped to match the stored one.
        """
        expected_version = challenge.version
        document = challenge.to_document()
        document["version"] = expected_version + 1

        result = await self.collection.replace_one(
            {"_id": challenge.id, "version": expected_version},
            document,
        )
        if result.matched_count == 0:
            logger.warning("Stale challenge save rejected",
                           challenge_id=str(challenge.id), version=expected_version)
            return False

        challenge.version = expected_version + 1
        return True

    async def find_challenges(self, query: Dict[str, Any], sort: SortSpec,
                              skip: int = 0, limit: Optional[int] = None) -> List[Challenge]:
        cursor = self.collection.find(query).sort(sort).skip(skip)
        if limit is not None:
            cursor = cursor.limit(limit)
        return [Challenge(**challenge_data) async for challenge_data in cursor]

    async def count_challenges(self, query: Dict[str, Any]) -> int:
        return await self.collection.count_documents(query)
