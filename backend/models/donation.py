from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from database import Base

PAYMENT_STATUSES = frozenset({"pending", "confirmed", "failed"})


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, index=True)
    donor_id = Column(String(255), ForeignKey("users.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True, index=True)
    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    reference = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )


class Pledge(Base):
    """Promise to donate towards an event, settled offline by bank transfer."""

    __tablename__ = "pledges"

    id = Column(Integer, primary_key=True, index=True)
    pledger_id = Column(String(255), ForeignKey("users.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    reference = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )


class BankingDetails(Base):
    """
    Account donors transfer money into. Only the row flagged
    ``is_active`` is shown; an update deactivates the previous row.
    """

    __tablename__ = "banking_details"

    id = Column(Integer, primary_key=True, index=True)
    bank_name = Column(String(255), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_number = Column(String(64), nullable=False)
    branch_code = Column(String(32), nullable=True)
    reference_prefix = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    updated_by = Column(String(255), ForeignKey("users.id"), nullable=True)
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
