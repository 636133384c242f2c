from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.orghub.models import Base
from app.orghub.modules.content.models import Event


class Income(Base):
    __tablename__ = "income"
    __table_args__ = (
        Index("idx_income_org", "organization_id"),
        Index("idx_income_event", "event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="RESTRICT"), nullable=False)

    receipt_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    receipt_pic: Mapped[str | None] = mapped_column(String(512), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2, asdecimal=True), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    paid_status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")  # Pending, Paid
    approve_status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")  # Pending, Approved, Declined
    approve_person_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    entry_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    entry_time: Mapped[time] = mapped_column("time", Time, nullable=False)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped[Event] = relationship(lazy="selectin")


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        Index("idx_expenses_org", "organization_id"),
        Index("idx_expenses_event", "event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="RESTRICT"), nullable=False)

    bill_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    bill_pic: Mapped[str | None] = mapped_column(String(512), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2, asdecimal=True), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    approve_status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")  # Pending, Approved, Declined
    approve_person_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    entry_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    entry_time: Mapped[time] = mapped_column("time", Time, nullable=False)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped[Event] = relationship(lazy="selectin")
