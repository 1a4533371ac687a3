"""User model for membership and authorization."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from database import Base

# Admission states. Exactly one holds at a time.
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
VALID_STATUSES = frozenset({STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED})


class User(Base):
    """
    Community member, created on first login through either identity provider.

    The primary key is the provider-scoped subject id of the login Principal.

    Moderation state:
        status    : pending (default) | approved | rejected
        is_admin  : privilege flag, independent of status

    Both are written only by :class:`services.membership.MembershipLifecycle`;
    the login upsert touches display fields alone.
    """

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    auth_provider = Column(String(20), nullable=False, default="oidc")  # oidc | oauth2

    email = Column(String(255), nullable=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    profile_image_url = Column(String(1000), nullable=True)

    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)
    is_admin = Column(Boolean, nullable=False, default=False)

    # Alumni profile
    graduation_year = Column(Integer, nullable=True)
    degree = Column(String(255), nullable=True)
    current_position = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    linkedin_url = Column(String(500), nullable=True)

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email or "A member"

    def __repr__(self):
        return f"<User {self.id} status={self.status} admin={self.is_admin}>"
