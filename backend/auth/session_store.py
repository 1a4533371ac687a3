"""
SQL-backed session store.

One ``sessions`` row per login: opaque ``sid``, JSON payload, absolute
``expire``. Expired rows read as absent whether or not they were purged.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import SessionRecord

from .principal import (
    OAuth2Principal,
    OIDCPrincipal,
    principal_from_dict,
    principal_to_dict,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    # Naive UTC, matching what SQLite hands back for DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class StoredSession:
    sid: str
    principal: Union[OIDCPrincipal, OAuth2Principal]
    created_at: Optional[str]
    expire: datetime


class SessionStore:
    """Session persistence on top of an ``AsyncSession``."""

    def __init__(self, db: AsyncSession, ttl_seconds: int):
        self.db = db
        self.ttl_seconds = ttl_seconds

    async def create(
        self, principal: Union[OIDCPrincipal, OAuth2Principal]
    ) -> StoredSession:
        """Stage a new session row; the caller commits."""
        now = _utcnow()
        record = SessionRecord(
            sid=secrets.token_urlsafe(32),
            sess={
                "principal": principal_to_dict(principal),
                "created_at": now.isoformat() + "Z",
            },
            expire=now + timedelta(seconds=self.ttl_seconds),
        )
        self.db.add(record)
        return StoredSession(
            sid=record.sid,
            principal=principal,
            created_at=record.sess["created_at"],
            expire=record.expire,
        )

    async def load(self, sid: str, include_expired: bool = False) -> Optional[StoredSession]:
        result = await self.db.execute(
            select(SessionRecord).where(SessionRecord.sid == sid)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        if not include_expired and record.expire <= _utcnow():
            return None

        payload = record.sess or {}
        try:
            principal = principal_from_dict(payload.get("principal") or {})
        except ValueError:
            logger.warning(f"Discarding unreadable session payload sid={sid[:8]}")
            return None

        return StoredSession(
            sid=record.sid,
            principal=principal,
            created_at=payload.get("created_at"),
            expire=record.expire,
        )

    async def save_principal(
        self, stored: StoredSession, principal: Union[OIDCPrincipal, OAuth2Principal]
    ) -> None:
        """Rewrite the embedded principal; ``expire`` is left as it was."""
        await self.db.execute(
            update(SessionRecord)
            .where(SessionRecord.sid == stored.sid)
            .values(
                sess={
                    "principal": principal_to_dict(principal),
                    "created_at": stored.created_at,
                }
            )
        )
        await self.db.commit()

    async def delete(self, sid: str) -> None:
        await self.db.execute(delete(SessionRecord).where(SessionRecord.sid == sid))
        await self.db.commit()

    async def purge_expired(self) -> int:
        """Delete rows past their absolute expiry. Returns the count removed."""
        result = await self.db.execute(
            delete(SessionRecord).where(SessionRecord.expire <= _utcnow())
        )
        await self.db.commit()
        return result.rowcount or 0
