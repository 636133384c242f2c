"""initial schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 09:12:40.511203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _fk(target: str, ondelete: str):
    return sa.ForeignKey(target, ondelete=ondelete)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.String(length=512), nullable=True),
        sa.Column("theme_color", sa.String(length=16), nullable=True),
        sa.Column("place", sa.String(length=255), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_roles_org", "roles", ["organization_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "RESTRICT"), nullable=False),
        sa.Column("role_id", sa.Integer(), _fk("roles.id", "SET NULL"), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("photo_url", sa.String(length=512), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_users_org", "users", ["organization_id"])
    op.create_index("idx_users_role", "users", ["role_id"])

    op.create_table(
        "otp_codes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("code_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
        sa.Column("actor_phone_number", sa.String(length=32), nullable=True),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "SET NULL"), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=True),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.String(length=512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(length=64), nullable=True),
    )
    op.create_index("idx_audit_org_created", "audit_events", ["organization_id", "created_at"])

    op.create_table(
        "announcements",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "RESTRICT"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("author_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
        sa.Column("author_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_announcements_org", "announcements", ["organization_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "RESTRICT"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("organizer_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
        sa.Column("organizer_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_events_org", "events", ["organization_id"])
    op.create_index("idx_events_start", "events", ["start_date"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "RESTRICT"), nullable=False),
        sa.Column("user_id", sa.Integer(), _fk("users.id", "CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_notifications_user", "notifications", ["user_id", "is_read"])

    op.create_table(
        "elections",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "RESTRICT"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("allow_multiple", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_votes", sa.Integer(), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("created_by_user_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
        sa.Column("created_by_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_elections_org", "elections", ["organization_id"])
    op.create_index("idx_elections_status", "elections", ["status"])

    op.create_table(
        "candidates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("election_id", sa.Integer(), _fk("elections.id", "RESTRICT"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.String(length=512), nullable=True),
        sa.Column("position", sa.String(length=128), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.UniqueConstraint("election_id", "display_order", name="uq_candidates_election_order"),
    )
    op.create_index("idx_candidates_election", "candidates", ["election_id"])

    op.create_table(
        "ballots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("election_id", sa.Integer(), _fk("elections.id", "RESTRICT"), nullable=False),
        sa.Column("voter_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
        sa.Column("cast_at", sa.DateTime(timezone=False), nullable=False),
        sa.UniqueConstraint("election_id", "voter_id", name="uq_ballots_election_voter"),
    )

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("election_id", sa.Integer(), _fk("elections.id", "RESTRICT"), nullable=False),
        sa.Column("candidate_id", sa.Integer(), _fk("candidates.id", "RESTRICT"), nullable=False),
        sa.Column("ballot_id", sa.Integer(), _fk("ballots.id", "CASCADE"), nullable=False),
        sa.Column("voter_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
        sa.Column("voter_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.UniqueConstraint("election_id", "voter_id", "candidate_id", name="uq_votes_election_voter_candidate"),
    )
    op.create_index("idx_votes_candidate", "votes", ["candidate_id"])

    for table, number_col, pic_col, with_paid in (
        ("income", "receipt_number", "receipt_pic", True),
        ("expenses", "bill_number", "bill_pic", False),
    ):
        cols = [
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.Integer(), _fk("organizations.id", "RESTRICT"), nullable=False),
            sa.Column("event_id", sa.Integer(), _fk("events.id", "RESTRICT"), nullable=False),
            sa.Column(number_col, sa.String(length=128), nullable=True),
            sa.Column(pic_col, sa.String(length=512), nullable=True),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
        ]
        if with_paid:
            cols.append(sa.Column("paid_status", sa.String(length=16), nullable=False, server_default="Pending"))
        cols += [
            sa.Column("approve_status", sa.String(length=16), nullable=False, server_default="Pending"),
            sa.Column("approve_person_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("time", sa.Time(), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), _fk("users.id", "SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
        ]
        op.create_table(table, *cols)
        op.create_index(f"idx_{table}_org", table, ["organization_id"])
        op.create_index(f"idx_{table}_event", table, ["event_id"])


def downgrade() -> None:
    """Downgrade schema."""
    for table in ("expenses", "income"):
        op.drop_index(f"idx_{table}_event", table_name=table)
        op.drop_index(f"idx_{table}_org", table_name=table)
        op.drop_table(table)

    op.drop_index("idx_votes_candidate", table_name="votes")
    op.drop_table("votes")
    op.drop_table("ballots")
    op.drop_index("idx_candidates_election", table_name="candidates")
    op.drop_table("candidates")
    op.drop_index("idx_elections_status", table_name="elections")
    op.drop_index("idx_elections_org", table_name="elections")
    op.drop_table("elections")

    op.drop_index("idx_notifications_user", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_events_start", table_name="events")
    op.drop_index("idx_events_org", table_name="events")
    op.drop_table("events")
    op.drop_index("idx_announcements_org", table_name="announcements")
    op.drop_table("announcements")

    op.drop_index("idx_audit_org_created", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("otp_codes")
    op.drop_index("idx_users_role", table_name="users")
    op.drop_index("idx_users_org", table_name="users")
    op.drop_table("users")
    op.drop_index("idx_roles_org", table_name="roles")
    op.drop_table("roles")
    op.drop_table("organizations")
