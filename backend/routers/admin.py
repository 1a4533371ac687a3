"""
Administrator endpoints for membership moderation and banking details.

All routes require ``is_admin``; the admin's own membership status is not
checked.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import require_admin
from database import get_db
from models import BankingDetails, User
from models.user import VALID_STATUSES
from schemas import (
    BankingDetailsResponse,
    BankingDetailsUpdate,
    StatusUpdateRequest,
    UserResponse,
)
from services.membership import MembershipLifecycle
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    status: Optional[str] = Query(None, description="Filter by membership status"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if status is not None and status not in VALID_STATUSES:
        # Unknown filter values match nothing rather than erroring
        return []
    return await MembershipLifecycle(db).list_users(status)


@router.get("/users/pending", response_model=List[UserResponse])
async def list_pending_users(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await MembershipLifecycle(db).list_pending()


@router.post("/users/{user_id}/approve", response_model=UserResponse)
async def approve_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await MembershipLifecycle(db).approve(user_id)


@router.post("/users/{user_id}/reject", response_model=UserResponse)
async def reject_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await MembershipLifecycle(db).reject(user_id)


@router.post("/users/{user_id}/promote", response_model=UserResponse)
async def promote_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await MembershipLifecycle(db).promote(user_id)


@router.post("/users/{user_id}/demote", response_model=UserResponse)
async def demote_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Revoke admin rights. An admin may demote themselves."""
    return await MembershipLifecycle(db).demote(user_id)


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    user_id: str,
    payload: StatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await MembershipLifecycle(db).set_status(user_id, payload.status)


@router.put("/banking-details", response_model=BankingDetailsResponse)
async def replace_banking_details(
    payload: BankingDetailsUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Replace the active banking details; the previous row is kept inactive."""
    await db.execute(
        update(BankingDetails)
        .where(BankingDetails.is_active.is_(True))
        .values(is_active=False)
    )
    details = BankingDetails(**payload.model_dump(), is_active=True, updated_by=admin.id)
    db.add(details)
    await db.commit()
    await db.refresh(details)

    audit.log(
        action="UPDATE",
        actor="user",
        resource="BankingDetails",
        resource_id=str(details.id),
        status="success",
        details={"bank_name": details.bank_name},
    )
    return details
