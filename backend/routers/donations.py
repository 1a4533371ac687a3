import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import require_approved_member
from database import get_db
from models import BankingDetails, Donation, Event, User
from schemas import BankingDetailsResponse, DonationCreate, DonationResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["donations"])


@router.post("/donations", response_model=DonationResponse, status_code=201)
async def create_donation(
    payload: DonationCreate,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """Record a donation, optionally towards an event."""
    if payload.event_id is not None:
        result = await db.execute(select(Event.id).where(Event.id == payload.event_id))
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="Event not found")

    donation = Donation(donor_id=user.id, **payload.model_dump())
    db.add(donation)
    await db.commit()
    await db.refresh(donation)
    logger.info(f"Donation {donation.id} of {donation.amount:.2f} by {user.id}")
    return donation


@router.get("/banking-details", response_model=BankingDetailsResponse)
async def get_banking_details(
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(BankingDetails)
        .where(BankingDetails.is_active.is_(True))
        .order_by(BankingDetails.id.desc())
        .limit(1)
    )
    details = result.scalar_one_or_none()
    if not details:
        raise HTTPException(status_code=404, detail="Banking details not configured")
    return details
