"""Database models for anonymous analytics.

CRITICAL PRIVACY RULE:
These tables hold ONLY aggregated counts and consent audit entries.
No IP addresses, user agents, user ids or raw events are stored.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class EventAggregate(Base):
    """Daily event count per category and page path."""

    __tablename__ = "event_aggregates"
    __table_args__ = (
        UniqueConstraint("event_date", "category", "path", name="uq_event_aggregates_day"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    consent_level: Mapped[str] = mapped_column(String(20), nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=1)

    def __repr__(self) -> str:
        return f"<EventAggregate(event_date={self.event_date}, category={self.category}, count={self.count})>"


class ConsentAudit(Base):
    """One row per consent record version."""

    __tablename__ = "consent_audit"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    consent_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    method: Mapped[str] = mapped_column(String(30), nullable=False)
    version: Mapped[str] = mapped_column(String(20), nullable=False)
    recorded_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    withdrawn: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ConsentAudit(consent_id={self.consent_id}, level={self.level})>"
