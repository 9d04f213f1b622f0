"""
Database models for CageMatch.

Documents are stored with camelCase keys; Python attributes are snake_case.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from bson import ObjectId
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    WithJsonSchema,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Naive UTC now, matching what MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


_HEX_ID = re.compile(r"[0-9a-fA-F]{24}")


def is_object_id(value: Any) -> bool:
    """24 hex characters; ObjectId.is_valid would also take any 12-char string."""
    return isinstance(value, str) and _HEX_ID.fullmatch(value) is not None


def _validate_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if is_object_id(value):
        return ObjectId(value)
    raise ValueError("Invalid ObjectId")


PyObjectId = Annotated[
    ObjectId,
    BeforeValidator(_validate_object_id),
    PlainSerializer(str, return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "pattern": "^[0-9a-fA-F]{24}$"}),
]


class Role(str, Enum):
    """Account role enumeration."""
    FAN = "fan"
    FIGHTER = "fighter"


class ChallengeStatus(str, Enum):
    """Challenge status enumeration."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_STATUSES = (ChallengeStatus.PENDING.value, ChallengeStatus.ACCEPTED.value)


class WeightClass(str, Enum):
    """Weight classes a bout can be proposed at."""
    FLYWEIGHT = "Flyweight"
    BANTAMWEIGHT = "Bantamweight"
    FEATHERWEIGHT = "Featherweight"
    LIGHTWEIGHT = "Lightweight"
    WELTERWEIGHT = "Welterweight"
    MIDDLEWEIGHT = "Middleweight"
    LIGHT_HEAVYWEIGHT = "Light Heavyweight"
    HEAVYWEIGHT = "Heavyweight"
    CATCHWEIGHT = "Catchweight"
    OPEN_WEIGHT = "Open Weight"


class FightingStyle(str, Enum):
    """Fighting style vocabulary."""
    BJJ = "BJJ"
    WRESTLING = "Wrestling"
    JUDO = "Judo"
    JIU_JITSU = "Jiu-Jitsu"
    BOXING = "Boxing"
    KICKBOXING = "Kickboxing"
    MUAY_THAI = "Muay Thai"
    TAEKWONDO = "Taekwondo"
    KARATE = "Karate"
    KRAV_MAGA = "Krav Maga"
    OTHER = "Other"


class DocumentModel(BaseModel):
    """Base for everything persisted in MongoDB."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_default=True,
    )


class FightRecord(DocumentModel):
    wins: int = Field(default=0, ge=0)
    losses: int = Field(default=0, ge=0)
    draws: int = Field(default=0, ge=0)


class Location(DocumentModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class SocialLinks(DocumentModel):
    twitter: Optional[str] = None
    instagram: Optional[str] = None
    youtube: Optional[str] = None


class User(DocumentModel):
    """Account model. Fans and fighters share one collection."""

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    username: str = Field(..., description="Unique login name")
    email: str = Field(..., description="Unique email address")
    password: str = Field(..., description="bcrypt hash, never returned")
    role: Role = Field(default=Role.FAN)

    favorite_fighters: List[PyObjectId] = Field(default_factory=list)
    challenges: List[PyObjectId] = Field(default_factory=list)

    # Fighter attributes
    profile_picture: Optional[str] = None
    age: Optional[int] = Field(None, ge=18)
    weight: Optional[float] = None
    height: Optional[float] = None
    record: FightRecord = Field(default_factory=FightRecord)
    location: Location = Field(default_factory=Location)
    styles: List[FightingStyle] = Field(default_factory=list)
    custom_style: Optional[str] = None
    social_links: SocialLinks = Field(default_factory=SocialLinks)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field(alias="isFighter")
    @property
    def is_fighter(self) -> bool:
        return self.role == Role.FIGHTER.value

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"is_fighter"})

    def to_public(self, include_email: bool = True) -> Dict[str, Any]:
        """JSON-ready view without the credential."""
        exclude = {"password"} if include_email else {"password", "email"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)

    def summary(self) -> Dict[str, Any]:
        """Participant summary embedded in challenge views."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            include={"id", "username", "profile_picture", "record", "location"},
        )


class FightDetails(DocumentModel):
    """Negotiated bout terms."""
    proposed_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=200)
    rules: Optional[str] = Field(None, max_length=1000)
    weight_class: Optional[WeightClass] = None
    stakes: Optional[str] = Field(None, max_length=500)


class ChallengeMessage(DocumentModel):
    """One entry of a challenge's message log."""
    sender: Optional[PyObjectId] = None
    message: str = Field(..., min_length=1, max_length=1000)
    timestamp: datetime = Field(default_factory=utcnow)
    is_system_message: bool = False


class ResponseDetails(DocumentModel):
    responded_at: datetime = Field(default_factory=utcnow)
    response_message: str = Field(default="", max_length=500)


class Challenge(DocumentModel):
    """Challenge model."""

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    challenger: PyObjectId = Field(..., description="Account that proposed the bout")
    challenged: PyObjectId = Field(..., description="Account the bout was proposed to")

    status: ChallengeStatus = Field(default=ChallengeStatus.PENDING)
    fight_details: FightDetails = Field(default_factory=FightDetails)
    messages: List[ChallengeMessage] = Field(default_factory=list)
    response_details: Optional[ResponseDetails] = None
    related_fight: Optional[PyObjectId] = None

    # Set while active; backs the unique "one active challenge per pair" index
    pair_key: Optional[str] = None
    # Optimistic concurrency token, bumped on every save
    version: int = 0

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def participants(self) -> List[ObjectId]:
        return [self.challenger, self.challenged]

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_participant(self, user_id: ObjectId) -> bool:
        return user_id in (self.challenger, self.challenged)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        if doc["pairKey"] is None:
            # sparse unique index ignores missing keys, not nulls
            del doc["pairKey"]
        return doc


def pair_key(user1_id: ObjectId, user2_id: ObjectId) -> str:
    """Order-independent key for a pair of accounts."""
    first, second = sorted((str(user1_id), str(user2_id)))
    return f"{first}:{second}"


class FightDetailsUpdate(DocumentModel):
    """Partial fight details supplied by a participant.

    Validated when the terms are set; stored details are never re-checked.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    proposed_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=200)
    rules: Optional[str] = Field(None, max_length=1000)
    weight_class: Optional[WeightClass] = None
    stakes: Optional[str] = Field(None, max_length=500)

    @field_validator("proposed_date")
    @classmethod
    def _must_be_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return value
        value = to_naive_utc(value)
        if value <= utcnow():
            raise ValueError("Proposed date must be in the future")
        return value

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, keyed as stored."""
        return self.model_dump(by_alias=True, exclude_unset=True)
