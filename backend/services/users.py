"""User lookup and the login-time upsert."""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.principal import OAuth2Principal, OIDCPrincipal
from models.user import STATUS_PENDING, User

logger = logging.getLogger(__name__)

# Principal attribute -> User column. Only these are written on login.
_DISPLAY_FIELDS = {
    "email": "email",
    "given_name": "first_name",
    "family_name": "last_name",
    "avatar_url": "profile_image_url",
}


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


def _apply_display_fields(user: User, principal) -> None:
    for attr, column in _DISPLAY_FIELDS.items():
        value = getattr(principal, attr)
        # Providers omit claims intermittently; never blank a known value
        if value is not None and getattr(user, column) != value:
            setattr(user, column, value)


async def upsert_user_from_principal(
    db: AsyncSession,
    principal: Union[OIDCPrincipal, OAuth2Principal],
    commit: bool = True,
) -> User:
    """
    Create or refresh the User row for a successful login.

    A new row starts as ``pending`` / non-admin. For an existing row only
    display fields change; ``status`` and ``is_admin`` are left alone, so a
    rejected member stays rejected after logging in again.
    """
    user = await get_user(db, principal.subject_id)
    if user is None:
        user = User(
            id=principal.subject_id,
            auth_provider=principal.provider,
            status=STATUS_PENDING,
            is_admin=False,
        )
        _apply_display_fields(user, principal)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent first login inserted the row first
            await db.rollback()
            user = await get_user(db, principal.subject_id)
            if user is None:
                raise
            _apply_display_fields(user, principal)
        else:
            logger.info(
                f"New member registered: {principal.subject_id} via {principal.provider}"
            )
    else:
        _apply_display_fields(user, principal)
        user.updated_at = datetime.now(timezone.utc)

    if commit:
        await db.commit()
        await db.refresh(user)
    return user
