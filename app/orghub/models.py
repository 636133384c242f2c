from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Organization(Base):
    """
    Tenant boundary. Every scoped row carries an organization_id pointing here.
    The system organization (is_system=True) only hosts the Super Admin role/users.
    """

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    theme_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    place: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    roles: Mapped[list["Role"]] = relationship(back_populates="organization", lazy="selectin")


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (Index("idx_roles_org", "organization_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Ordered list of permission keys, e.g. ["members.write", "elections.write"] or ["*"]
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    organization: Mapped[Organization] = relationship(back_populates="roles", lazy="selectin")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_org", "organization_id"),
        Index("idx_users_role", "role_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False)
    role_id: Mapped[int | None] = mapped_column(ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    organization: Mapped[Organization] = relationship(lazy="selectin")
    role: Mapped[Role | None] = relationship(lazy="selectin")


class OtpCode(Base):
    """One pending one-time code per phone number; replaced on every request."""

    __tablename__ = "otp_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)  # hmac-sha256 hex
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module-specific tables can refer to it by id if needed.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_org_created", "organization_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "auth.login"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Election"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.orghub.modules.chats.models import Chat, ChatParticipant, Message  # noqa: E402,F401
from app.orghub.modules.content.models import Announcement, Event, Notification  # noqa: E402,F401
from app.orghub.modules.elections.models import Ballot, Candidate, Election, Vote  # noqa: E402,F401
from app.orghub.modules.finances.models import Expense, Income  # noqa: E402,F401
