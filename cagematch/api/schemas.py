"""
Request validation models for the CageMatch API.

Unknown fields are dropped; strings are trimmed before length checks.
"""

import re
from typing import Annotated, List, Literal, Optional, Union

from email_validator import validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..database.models import FightDetailsUpdate, FightingStyle, PyObjectId

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")

USERNAME_PATTERN = r"^[A-Za-z0-9]+$"


def _check_email(value: str) -> str:
    # Syntax only; the address is stored exactly as submitted
    validate_email(value, check_deliverability=False)
    return value


Email = Annotated[str, AfterValidator(_check_email)]


def _reject_null(value):
    if value is None:
        raise ValueError("must not be null")
    return value


class RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        str_strip_whitespace=True,
    )


# ----------------------------------------------------------------------
# Accounts
# ----------------------------------------------------------------------

class SignupRequest(RequestModel):
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: Email
    password: str = Field(min_length=6, max_length=128)

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        if not _PASSWORD_RULE.match(value):
            raise ValueError(
                "Password should contain at least one uppercase letter, one lowercase letter, "
                "one digit, and one special character (@$!%*?&)"
            )
        return value


class SigninRequest(RequestModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


OptionalLink = Optional[Union[HttpUrl, Literal[""]]]


class SocialLinksInput(RequestModel):
    twitter: OptionalLink = None
    instagram: OptionalLink = None
    youtube: OptionalLink = None


class LocationInput(RequestModel):
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)


class UpdateProfileRequest(RequestModel):
    username: Optional[str] = Field(None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: Optional[Email] = None
    social_links: Optional[SocialLinksInput] = None

    _not_null = field_validator("username", "email", "social_links", mode="before")(_reject_null)


class FighterProfileRequest(RequestModel):
    weight: Optional[float] = Field(None, ge=100, le=400)
    height: Optional[float] = Field(None, ge=48, le=84)
    age: Optional[int] = Field(None, ge=18, le=65)
    styles: Optional[List[FightingStyle]] = None
    custom_style: Optional[str] = Field(None, min_length=2, max_length=50)
    location: Optional[LocationInput] = None
    profile_picture: Optional[HttpUrl] = None
    social_links: Optional[SocialLinksInput] = None

    _not_null = field_validator("styles", "location", "social_links", mode="before")(_reject_null)

    @model_validator(mode="after")
    def _custom_style_with_other(self):
        if self.styles and FightingStyle.OTHER in self.styles and not self.custom_style:
            raise ValueError('Custom style is required when "Other" is selected')
        return self


def update_fields(model: RequestModel) -> dict:
    """Fields the caller sent, JSON-encoded and keyed as stored."""
    return model.model_dump(mode="json", by_alias=True, exclude_unset=True)


# ----------------------------------------------------------------------
# Challenges
# ----------------------------------------------------------------------

class CreateChallengeRequest(RequestModel):
    challenged_id: PyObjectId
    fight_details: Optional[FightDetailsUpdate] = None
    message: str = Field(min_length=1, max_length=1000)


class RespondRequest(RequestModel):
    response_message: Optional[str] = Field(None, max_length=500)


class CancelRequest(RequestModel):
    reason: Optional[str] = Field(None, max_length=500)


class UpdateDetailsRequest(RequestModel):
    fight_details: FightDetailsUpdate

    @model_validator(mode="after")
    def _not_empty(self):
        if not self.fight_details.model_fields_set:
            raise ValueError("At least one fight detail must be provided")
        return self


class MessageRequest(RequestModel):
    message: str = Field(min_length=1, max_length=1000)


class CompleteRequest(RequestModel):
    fight_id: Optional[PyObjectId] = None
