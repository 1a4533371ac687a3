from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import require_approved_member
from database import get_db
from models import Donation, Event, User
from models.user import STATUS_APPROVED, STATUS_PENDING
from schemas import StatsResponse

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_stats(
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Dashboard totals.

    - total_alumni: approved members
    - total_donations: sum of all recorded donations
    - events_this_year: events created in the current calendar year (UTC)
    - pending_users: members awaiting approval
    """
    total_alumni = await db.scalar(
        select(func.count(User.id)).where(User.status == STATUS_APPROVED)
    )
    pending_users = await db.scalar(
        select(func.count(User.id)).where(User.status == STATUS_PENDING)
    )
    total_donations = await db.scalar(
        select(func.coalesce(func.sum(Donation.amount), 0))
    )

    year_start = datetime(datetime.now(timezone.utc).year, 1, 1)
    events_this_year = await db.scalar(
        select(func.count(Event.id)).where(
            Event.created_at >= year_start,
            Event.created_at < year_start.replace(year=year_start.year + 1),
        )
    )

    return StatsResponse(
        total_alumni=total_alumni or 0,
        total_donations=float(total_donations or 0),
        events_this_year=events_this_year or 0,
        pending_users=pending_users or 0,
    )
