"""
Membership Lifecycle: the only code that writes ``User.status`` and
``User.is_admin``.

Status transitions are unconditional (last write wins) so any state can be
reached from any other by an administrator. The one member-initiated
transition, :meth:`MembershipLifecycle.exit`, only ever moves to
``rejected``.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import CommunityExit, Post, User
from models.user import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    VALID_STATUSES,
)
from utils.audit import audit

logger = logging.getLogger(__name__)


class UserNotFound(Exception):
    """Raised when a lifecycle operation names an unknown user id."""

    status_code = 404

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.message = f"User '{user_id}' not found"
        super().__init__(self.message)


EXIT_ANNOUNCEMENT = (
    "{name} has left the alumni community. "
    "We wish them well in their future endeavors."
)


class MembershipLifecycle:
    """Admission and privilege mutations for one request's DB session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, user_id: str) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFound(user_id)
        return user

    # ── Admin-only ─────────────────────────────────────────────────────

    async def set_status(self, user_id: str, status: str, action: str = "SET_STATUS") -> User:
        """Set ``status`` unconditionally; idempotent."""
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid status '{status}'")
        user = await self._get(user_id)
        old_status = user.status
        user.status = status
        await self.db.commit()
        await self.db.refresh(user)
        audit.log_membership_change(action, user_id, old_status, status)
        logger.info(f"Membership {action.lower()}: {user_id} {old_status} -> {status}")
        return user

    async def approve(self, user_id: str) -> User:
        return await self.set_status(user_id, STATUS_APPROVED, action="APPROVE")

    async def reject(self, user_id: str) -> User:
        return await self.set_status(user_id, STATUS_REJECTED, action="REJECT")

    async def _set_admin(self, user_id: str, is_admin: bool, action: str) -> User:
        user = await self._get(user_id)
        old_flag = bool(user.is_admin)
        user.is_admin = is_admin
        await self.db.commit()
        await self.db.refresh(user)
        audit.log_membership_change(action, user_id, old_flag, is_admin)
        return user

    async def promote(self, user_id: str) -> User:
        return await self._set_admin(user_id, True, "PROMOTE")

    async def demote(self, user_id: str) -> User:
        return await self._set_admin(user_id, False, "DEMOTE")

    async def list_pending(self) -> List[User]:
        result = await self.db.execute(
            select(User)
            .where(User.status == STATUS_PENDING)
            .order_by(User.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_users(self, status: Optional[str] = None) -> List[User]:
        query = select(User).order_by(User.created_at.desc())
        if status:
            query = query.where(User.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ── Self-only ──────────────────────────────────────────────────────

    async def exit(self, user_id: str, reason: Optional[str] = None) -> bool:
        """
        Member leaves the community.

        Writes the exit audit row, one announcement post and the
        ``rejected`` status in a single transaction, status last. For a user
        who is already rejected nothing is written.

        Returns:
            ``True`` if the exit was recorded, ``False`` if it was a no-op.
        """
        user = await self._get(user_id)
        if user.status == STATUS_REJECTED:
            audit.log_community_exit(user_id, bool(reason), status="noop")
            return False

        name = user.display_name
        reason = reason.strip() if reason and reason.strip() else None
        try:
            self.db.add(CommunityExit(user_id=user_id, user_name=name, reason=reason))
            self.db.add(
                Post(
                    author_id=user_id,
                    content=EXIT_ANNOUNCEMENT.format(name=name),
                    type="announcement",
                )
            )
            await self.db.flush()
            user.status = STATUS_REJECTED
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            audit.log_community_exit(user_id, bool(reason), status="failure")
            raise

        audit.log_community_exit(user_id, bool(reason), status="success")
        logger.info(f"Member {user_id} left the community")
        return True
