"""
Pydantic v2 request/response schemas.

Architecture (same split throughout):
  - *Fields classes: shared field definitions, no validators.
  - *Create / *Update classes: inherit *Fields and add validators so bad
    input is rejected with a clear message.
  - *Response classes: ``from_attributes`` views of ORM rows, no validators,
    so anything already stored always serializes.
"""

from datetime import date as date_type, datetime, time as time_type
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.donation import PAYMENT_STATUSES
from models.event import RSVP_STATUSES
from models.post import POST_TYPES
from models.user import VALID_STATUSES


def _check_choice(value: Optional[str], allowed: frozenset, label: str) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().lower()
    if value not in allowed:
        raise ValueError(
            f"Invalid {label} '{value}'. Allowed: {', '.join(sorted(allowed))}"
        )
    return value


# ── Auth / users ──────────────────────────────────────────────────────


class AuthMethodsResponse(BaseModel):
    oidc: bool = True
    microsoft: bool


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    auth_provider: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    status: str
    is_admin: bool
    graduation_year: Optional[int] = None
    degree: Optional[str] = None
    current_position: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    """Self-service profile edit. Status and admin flag are not accepted here."""

    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    profile_image_url: Optional[str] = Field(None, max_length=1000)
    graduation_year: Optional[int] = Field(None, ge=1900, le=2100)
    degree: Optional[str] = Field(None, max_length=255)
    current_position: Optional[str] = Field(None, max_length=255)
    company: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = Field(None, max_length=5000)
    phone: Optional[str] = Field(None, max_length=50)
    linkedin_url: Optional[str] = Field(None, max_length=500)


class ExitRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class ExitResponse(BaseModel):
    exited: bool
    status: str


class StatusUpdateRequest(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, VALID_STATUSES, "status")


# ── Posts ─────────────────────────────────────────────────────────────


class PostCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    type: str = "notification"

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _check_choice(v, POST_TYPES, "post type")


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: str
    content: str
    type: str
    created_at: datetime
    author: Optional[UserResponse] = None
    likes: int = 0
    comments: int = 0


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    author_id: str
    content: str
    created_at: datetime
    author: Optional[UserResponse] = None


# ── Events ────────────────────────────────────────────────────────────


class EventFields(BaseModel):
    title: str
    description: str
    venue: str
    date: date_type
    time: time_type
    speakers: Optional[str] = None
    donation_goal: Optional[float] = None
    image_url: Optional[str] = None


class EventCreate(EventFields):
    title: str = Field(..., min_length=1, max_length=255)
    venue: str = Field(..., min_length=1, max_length=255)
    donation_goal: Optional[float] = Field(None, ge=0)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    venue: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    speakers: Optional[str] = None
    donation_goal: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None

    # Omitted fields are left alone; explicit null is only allowed for
    # columns that can be empty.
    @field_validator("title", "description", "venue", "date", "time")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be cleared")
        return v


class EventResponse(EventFields):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organizer_id: str
    created_at: datetime
    attendees: int = 0
    total_donations: float = 0.0


class FeatureRequest(BaseModel):
    display_order: int = 0


class FeaturedEventResponse(BaseModel):
    id: int
    event_id: int
    display_order: int
    event: EventResponse


class RsvpRequest(BaseModel):
    status: str = "attending"

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, RSVP_STATUSES, "RSVP status")


class RsvpResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    user_id: str
    status: str
    created_at: datetime
    user: Optional[UserResponse] = None


# ── Donations / pledges / banking ─────────────────────────────────────


class DonationCreate(BaseModel):
    event_id: Optional[int] = None
    amount: float = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=255)
    status: str = "pending"

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, PAYMENT_STATUSES, "donation status")


class DonationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    donor_id: str
    event_id: Optional[int] = None
    amount: float
    reference: Optional[str] = None
    status: str
    created_at: datetime


class PledgeCreate(BaseModel):
    amount: float = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=255)


class PledgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    pledger_id: str
    event_id: int
    amount: float
    reference: Optional[str] = None
    status: str
    created_at: datetime
    pledger: Optional[UserResponse] = None


class BankingDetailsUpdate(BaseModel):
    bank_name: str = Field(..., min_length=1, max_length=255)
    account_name: str = Field(..., min_length=1, max_length=255)
    account_number: str = Field(..., min_length=4, max_length=64)
    branch_code: Optional[str] = Field(None, max_length=32)
    reference_prefix: Optional[str] = Field(None, max_length=64)

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, v: str) -> str:
        digits = v.replace(" ", "").replace("-", "")
        if not digits.isdigit():
            raise ValueError("Account number may contain only digits, spaces and dashes")
        return digits


class BankingDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bank_name: str
    account_name: str
    account_number: str
    branch_code: Optional[str] = None
    reference_prefix: Optional[str] = None
    created_at: datetime


# ── Polls ─────────────────────────────────────────────────────────────


class PollCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    options: List[str] = Field(..., min_length=2, max_length=20)

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: List[str]) -> List[str]:
        cleaned = [o.strip() for o in v if o and o.strip()]
        if len(cleaned) < 2:
            raise ValueError("A poll needs at least two non-empty options")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Poll options must be unique")
        return cleaned


class PollOptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    option_text: str
    vote_count: int


class PollResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_by_id: str
    title: str
    description: Optional[str] = None
    is_active: bool
    expires_at: Optional[datetime] = None
    created_at: datetime
    options: List[PollOptionResponse] = []


class VoteRequest(BaseModel):
    option_id: int


class VoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    poll_id: int
    option_id: int
    user_id: str


# ── Stats ─────────────────────────────────────────────────────────────


class StatsResponse(BaseModel):
    total_alumni: int
    total_donations: float
    events_this_year: int
    pending_users: int
