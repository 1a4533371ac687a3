"""Server-side login session rows."""

from sqlalchemy import JSON, Column, DateTime, Index, String

from database import Base


class SessionRecord(Base):
    """
    One row per active login session.

    ``sess`` holds the serialized Principal snapshot plus bookkeeping;
    ``expire`` is the absolute expiry fixed at creation (naive UTC).
    Rows past ``expire`` are invalid even before they are purged.
    """

    __tablename__ = "sessions"

    sid = Column(String(128), primary_key=True)
    sess = Column(JSON, nullable=False)
    expire = Column(DateTime, nullable=False)

    __table_args__ = (Index("idx_session_expire", "expire"),)

    def __repr__(self):
        return f"<SessionRecord {self.sid[:8]} expire={self.expire}>"
