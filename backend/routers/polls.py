"""
Poll endpoints.

A member has at most one vote per poll. Voting again moves the vote to
the new option and adjusts both option counters.
"""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import require_admin, require_approved_member
from database import get_db
from models import Poll, PollOption, PollVote, User
from schemas import PollCreate, PollResponse, VoteRequest, VoteResponse

router = APIRouter(prefix="/api/polls", tags=["polls"])


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _is_open(poll: Poll) -> bool:
    if not poll.is_active:
        return False
    if poll.expires_at is None:
        return True
    return _naive_utc(datetime.now(timezone.utc)) <= poll.expires_at


async def _get_poll(db: AsyncSession, poll_id: int) -> Poll:
    result = await db.execute(select(Poll).where(Poll.id == poll_id))
    poll = result.scalar_one_or_none()
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    return poll


@router.get("", response_model=List[PollResponse])
async def list_polls(
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """Active polls, newest first."""
    result = await db.execute(
        select(Poll).where(Poll.is_active.is_(True)).order_by(Poll.created_at.desc(), Poll.id.desc())
    )
    return result.scalars().all()


@router.post("", response_model=PollResponse, status_code=201)
async def create_poll(
    payload: PollCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    poll = Poll(
        created_by_id=admin.id,
        title=payload.title,
        description=payload.description,
        expires_at=_naive_utc(payload.expires_at),
        options=[PollOption(option_text=text, vote_count=0) for text in payload.options],
    )
    db.add(poll)
    await db.commit()
    return await _get_poll(db, poll.id)


@router.get("/{poll_id}", response_model=PollResponse)
async def get_poll(
    poll_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    return await _get_poll(db, poll_id)


@router.post("/{poll_id}/vote", response_model=VoteResponse)
async def vote(
    poll_id: int,
    payload: VoteRequest,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    poll = await _get_poll(db, poll_id)
    if not _is_open(poll):
        raise HTTPException(status_code=400, detail="Poll is closed")
    if payload.option_id not in {o.id for o in poll.options}:
        raise HTTPException(status_code=400, detail="Option does not belong to this poll")

    result = await db.execute(
        select(PollVote).where(PollVote.poll_id == poll_id, PollVote.user_id == user.id)
    )
    existing = result.scalar_one_or_none()
    if existing and existing.option_id == payload.option_id:
        return existing

    if existing:
        await db.execute(
            update(PollOption)
            .where(PollOption.id == existing.option_id)
            .values(vote_count=PollOption.vote_count - 1)
        )
        existing.option_id = payload.option_id
        record = existing
    else:
        record = PollVote(poll_id=poll_id, option_id=payload.option_id, user_id=user.id)
        db.add(record)
    await db.execute(
        update(PollOption)
        .where(PollOption.id == payload.option_id)
        .values(vote_count=PollOption.vote_count + 1)
    )
    await db.commit()
    await db.refresh(record)
    return record


@router.get("/{poll_id}/vote", response_model=Optional[VoteResponse])
async def get_my_vote(
    poll_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """The caller's vote on this poll, or null."""
    result = await db.execute(
        select(PollVote).where(PollVote.poll_id == poll_id, PollVote.user_id == user.id)
    )
    return result.scalar_one_or_none()
