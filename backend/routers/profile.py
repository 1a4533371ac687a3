from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import get_current_user
from database import get_db
from models import User
from schemas import ExitRequest, ExitResponse, ProfileUpdate, UserResponse
from services.membership import MembershipLifecycle

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("", response_model=UserResponse)
async def get_profile(user: User = Depends(get_current_user)):
    return user


@router.put("", response_model=UserResponse)
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Update the caller's own display and alumni fields.

    Membership status and the admin flag are not editable here; unknown
    fields are rejected with 422.
    """
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/exit", response_model=ExitResponse)
async def exit_community(
    payload: Optional[ExitRequest] = Body(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave the community. Calling it again after leaving is a no-op."""
    exited = await MembershipLifecycle(db).exit(
        user.id, payload.reason if payload else None
    )
    await db.refresh(user)
    return ExitResponse(exited=exited, status=user.status)
