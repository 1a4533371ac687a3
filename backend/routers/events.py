"""
Event endpoints: listings, RSVPs, featured carousel and pledges.

Reads are open to approved members; creating, editing, deleting and
featuring events, and viewing pledges, are admin-only.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import require_admin, require_approved_member
from database import get_db
from models import Donation, Event, FeaturedEvent, Pledge, Post, Rsvp, User
from routers.posts import users_by_id
from schemas import (
    DonationResponse,
    EventCreate,
    EventResponse,
    EventUpdate,
    FeatureRequest,
    FeaturedEventResponse,
    PledgeCreate,
    PledgeResponse,
    RsvpRequest,
    RsvpResponse,
    UserResponse,
)
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/events", tags=["events"])

PLEDGE_NOTIFICATION = (
    'New pledge received! {name} pledged R{amount:,.2f} for "{title}". '
    "Reference: {reference}"
)


async def _get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


async def _event_totals(db: AsyncSession, event_ids: List[int]) -> Dict[int, tuple]:
    """Attending-RSVP count and donation sum per event id."""
    if not event_ids:
        return {}
    rsvp_rows = await db.execute(
        select(Rsvp.event_id, func.count(Rsvp.id))
        .where(Rsvp.event_id.in_(event_ids), Rsvp.status == "attending")
        .group_by(Rsvp.event_id)
    )
    attendees = {row[0]: row[1] for row in rsvp_rows.all()}
    donation_rows = await db.execute(
        select(Donation.event_id, func.coalesce(func.sum(Donation.amount), 0))
        .where(Donation.event_id.in_(event_ids))
        .group_by(Donation.event_id)
    )
    donations = {row[0]: float(row[1]) for row in donation_rows.all()}
    return {
        eid: (attendees.get(eid, 0), donations.get(eid, 0.0)) for eid in event_ids
    }


def _event_response(event: Event, totals: Dict[int, tuple]) -> EventResponse:
    response = EventResponse.model_validate(event)
    response.attendees, response.total_donations = totals.get(event.id, (0, 0.0))
    return response


# ── Reads ─────────────────────────────────────────────────────────────


@router.get("", response_model=List[EventResponse])
async def list_events(
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """All events, soonest first."""
    result = await db.execute(select(Event).order_by(Event.date, Event.time))
    events = result.scalars().all()
    totals = await _event_totals(db, [e.id for e in events])
    return [_event_response(e, totals) for e in events]


@router.get("/featured", response_model=List[FeaturedEventResponse])
async def list_featured_events(
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(FeaturedEvent, Event)
        .join(Event, FeaturedEvent.event_id == Event.id)
        .order_by(FeaturedEvent.display_order, FeaturedEvent.id)
    )
    rows = result.all()
    totals = await _event_totals(db, [event.id for _, event in rows])
    return [
        FeaturedEventResponse(
            id=featured.id,
            event_id=featured.event_id,
            display_order=featured.display_order,
            event=_event_response(event, totals),
        )
        for featured, event in rows
    ]


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    event = await _get_event(db, event_id)
    return _event_response(event, await _event_totals(db, [event.id]))


@router.get("/{event_id}/attendees", response_model=List[RsvpResponse])
async def list_attendees(
    event_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    await _get_event(db, event_id)
    result = await db.execute(
        select(Rsvp)
        .where(Rsvp.event_id == event_id, Rsvp.status == "attending")
        .order_by(Rsvp.created_at)
    )
    rsvps = result.scalars().all()
    users = await users_by_id(db, (r.user_id for r in rsvps))
    items = []
    for rsvp in rsvps:
        item = RsvpResponse.model_validate(rsvp)
        if rsvp.user_id in users:
            item.user = UserResponse.model_validate(users[rsvp.user_id])
        items.append(item)
    return items


@router.get("/{event_id}/donations", response_model=List[DonationResponse])
async def list_event_donations(
    event_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    await _get_event(db, event_id)
    result = await db.execute(
        select(Donation)
        .where(Donation.event_id == event_id)
        .order_by(Donation.created_at.desc())
    )
    return result.scalars().all()


# ── Admin management ──────────────────────────────────────────────────


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    payload: EventCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = Event(**payload.model_dump(), organizer_id=admin.id)
    db.add(event)
    await db.commit()
    await db.refresh(event)

    audit.log(
        action="CREATE",
        actor="user",
        resource="Event",
        resource_id=str(event.id),
        status="success",
        details={"title": event.title},
    )
    return _event_response(event, {})


@router.put("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    payload: EventUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await _get_event(db, event_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(event, field, value)
    await db.commit()
    await db.refresh(event)
    return _event_response(event, await _event_totals(db, [event.id]))


@router.delete("/{event_id}", status_code=204)
async def delete_event(
    event_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete an event with its RSVPs and carousel entry.

    Events that already hold pledges are refused with 409; donations made
    towards the event are kept and detached from it.
    """
    event = await _get_event(db, event_id)
    pledge_count = await db.scalar(
        select(func.count(Pledge.id)).where(Pledge.event_id == event_id)
    )
    if pledge_count:
        raise HTTPException(status_code=409, detail="Event has pledges and cannot be deleted")

    await db.execute(delete(FeaturedEvent).where(FeaturedEvent.event_id == event_id))
    await db.execute(delete(Rsvp).where(Rsvp.event_id == event_id))
    donations = await db.execute(select(Donation).where(Donation.event_id == event_id))
    for donation in donations.scalars().all():
        donation.event_id = None
    await db.delete(event)
    await db.commit()

    audit.log(
        action="DELETE",
        actor="user",
        resource="Event",
        resource_id=str(event_id),
        status="success",
    )


@router.post("/{event_id}/feature", response_model=FeaturedEventResponse, status_code=201)
async def feature_event(
    event_id: int,
    payload: Optional[FeatureRequest] = Body(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await _get_event(db, event_id)
    featured = FeaturedEvent(
        event_id=event_id,
        display_order=payload.display_order if payload else 0,
    )
    db.add(featured)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Event is already featured")
    await db.refresh(featured)
    await db.refresh(event)
    return FeaturedEventResponse(
        id=featured.id,
        event_id=featured.event_id,
        display_order=featured.display_order,
        event=_event_response(event, await _event_totals(db, [event.id])),
    )


@router.delete("/{event_id}/feature", status_code=204)
async def unfeature_event(
    event_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await db.execute(delete(FeaturedEvent).where(FeaturedEvent.event_id == event_id))
    await db.commit()


# ── RSVP ──────────────────────────────────────────────────────────────


@router.get("/{event_id}/rsvp", response_model=Optional[RsvpResponse])
async def get_my_rsvp(
    event_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """The caller's RSVP for this event, or null."""
    result = await db.execute(
        select(Rsvp).where(Rsvp.event_id == event_id, Rsvp.user_id == user.id)
    )
    return result.scalar_one_or_none()


@router.post("/{event_id}/rsvp", response_model=RsvpResponse)
async def rsvp(
    event_id: int,
    payload: RsvpRequest,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """Create or update the caller's RSVP."""
    await _get_event(db, event_id)
    result = await db.execute(
        select(Rsvp).where(Rsvp.event_id == event_id, Rsvp.user_id == user.id)
    )
    existing = result.scalar_one_or_none()
    if existing:
        existing.status = payload.status
        record = existing
    else:
        record = Rsvp(event_id=event_id, user_id=user.id, status=payload.status)
        db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


# ── Pledges ───────────────────────────────────────────────────────────


@router.post("/{event_id}/pledges", response_model=PledgeResponse, status_code=201)
async def create_pledge(
    event_id: int,
    payload: PledgeCreate,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Pledge money towards an event. A notification post announcing the
    pledge is written in the same transaction.
    """
    event = await _get_event(db, event_id)
    pledge = Pledge(
        pledger_id=user.id,
        event_id=event_id,
        amount=payload.amount,
        reference=payload.reference,
    )
    db.add(pledge)
    db.add(
        Post(
            author_id=user.id,
            type="notification",
            content=PLEDGE_NOTIFICATION.format(
                name=user.display_name,
                amount=payload.amount,
                title=event.title,
                reference=payload.reference or "N/A",
            ),
        )
    )
    await db.commit()
    await db.refresh(pledge)
    logger.info(f"Pledge {pledge.id} of {payload.amount:.2f} for event {event_id}")

    response = PledgeResponse.model_validate(pledge)
    response.pledger = UserResponse.model_validate(user)
    return response


@router.get("/{event_id}/pledges", response_model=List[PledgeResponse])
async def list_pledges(
    event_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await _get_event(db, event_id)
    result = await db.execute(
        select(Pledge).where(Pledge.event_id == event_id).order_by(Pledge.created_at.desc())
    )
    pledges = result.scalars().all()
    users = await users_by_id(db, (p.pledger_id for p in pledges))
    items = []
    for pledge in pledges:
        item = PledgeResponse.model_validate(pledge)
        if pledge.pledger_id in users:
            item.pledger = UserResponse.model_validate(users[pledge.pledger_id])
        items.append(item)
    return items
