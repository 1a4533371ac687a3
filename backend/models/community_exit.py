"""Audit trail for members leaving the community."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from database import Base


class CommunityExit(Base):
    __tablename__ = "community_exits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id"), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self):
        return f"<CommunityExit user={self.user_id} at={self.created_at}>"
