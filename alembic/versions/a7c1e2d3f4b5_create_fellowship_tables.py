"""Create fellowship tables

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-18

Creates the complete schema:

1. institutions, users (users.institution_id -> ON DELETE SET NULL)
2. cohorts with the one-active-cohort-per-institution partial unique index
3. cohort_memberships (the single fellow <-> cohort edge)
4. applications, unique per (fellow, institution)
5. sessions, content
6. conversations, conversation_participants, messages
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "a7c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None

ENUM_TYPES = (
    "user_role",
    "institution_status",
    "cohort_status",
    "application_status",
    "session_status",
    "content_type",
    "conversation_type",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Uuid(as_uuid=False), **kwargs)


def upgrade() -> None:
    op.create_table(
        "institutions",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("logo_url", sa.String(500), nullable=True),
        sa.Column(
            "status",
            sa.Enum("pending", "approved", "rejected", name="institution_status"),
            nullable=False,
        ),
        _uuid("admin_user_id", nullable=True),
        sa.Column("admin_email", sa.String(255), nullable=False),
        sa.Column("google_account_email", sa.String(255), nullable=True),
        sa.Column("google_refresh_token", sa.Text(), nullable=True),
        sa.Column("drive_root_folder_id", sa.String(200), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_institutions_name", "institutions", ["name"])
    op.create_index("ix_institutions_status", "institutions", ["status"])
    op.create_index("ix_institutions_admin_user_id", "institutions", ["admin_user_id"])

    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "role",
            sa.Enum("admin", "fellow", "root_admin", name="user_role"),
            nullable=True,
        ),
        _uuid(
            "institution_id",
            sa.ForeignKey("institutions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("google_refresh_token", sa.Text(), nullable=True),
        sa.Column("is_placeholder", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_institution_id", "users", ["institution_id"])

    op.create_table(
        "cohorts",
        _uuid("id", primary_key=True),
        _uuid(
            "institution_id",
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("upcoming", "active", "completed", name="cohort_status"),
            nullable=False,
        ),
        sa.Column("drive_folder_id", sa.String(200), nullable=True),
        sa.Column("drive_folder_link", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_date > start_date", name="ck_cohorts_date_range"),
    )
    op.create_index("ix_cohorts_institution_id", "cohorts", ["institution_id"])
    op.create_index("ix_cohorts_institution_status", "cohorts", ["institution_id", "status"])
    op.create_index(
        "uq_cohorts_one_active_per_institution",
        "cohorts",
        ["institution_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "cohort_memberships",
        _uuid("id", primary_key=True),
        _uuid("cohort_id", sa.ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("cohort_id", "user_id", name="uq_cohort_memberships_pair"),
    )
    op.create_index("ix_cohort_memberships_cohort_id", "cohort_memberships", ["cohort_id"])
    op.create_index("ix_cohort_memberships_user_id", "cohort_memberships", ["user_id"])

    op.create_table(
        "applications",
        _uuid("id", primary_key=True),
        _uuid("fellow_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _uuid(
            "institution_id",
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("pending", "approved", "rejected", name="application_status"),
            nullable=False,
        ),
        sa.Column("application_data", sa.JSON(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("reviewed_by", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        _uuid("cohort_id", sa.ForeignKey("cohorts.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "fellow_id", "institution_id", name="uq_applications_fellow_institution"
        ),
    )
    op.create_index("ix_applications_fellow_id", "applications", ["fellow_id"])
    op.create_index(
        "ix_applications_institution_status", "applications", ["institution_id", "status"]
    )

    op.create_table(
        "sessions",
        _uuid("id", primary_key=True),
        _uuid(
            "institution_id",
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid("cohort_id", sa.ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        sa.Column("calendar_event_id", sa.String(200), nullable=True),
        sa.Column("attendees", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("scheduled", "cancelled", name="session_status"),
            nullable=False,
        ),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("cancelled_by", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _uuid("created_by", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="ck_sessions_time_range"),
    )
    op.create_index("ix_sessions_institution_id", "sessions", ["institution_id"])
    op.create_index("ix_sessions_cohort_id", "sessions", ["cohort_id"])

    op.create_table(
        "content",
        _uuid("id", primary_key=True),
        _uuid("cohort_id", sa.ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False),
        _uuid(
            "institution_id",
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "type",
            sa.Enum("document", "video", "presentation", "other", name="content_type"),
            nullable=False,
        ),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(150), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("drive_file_id", sa.String(200), nullable=False),
        sa.Column("share_link", sa.String(500), nullable=True),
        _uuid("uploaded_by", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_content_cohort_id", "content", ["cohort_id"])
    op.create_index("ix_content_institution_id", "content", ["institution_id"])

    op.create_table(
        "conversations",
        _uuid("id", primary_key=True),
        sa.Column(
            "type",
            sa.Enum("group", "direct", name="conversation_type"),
            nullable=False,
        ),
        _uuid("cohort_id", sa.ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=True),
        sa.Column("dedupe_key", sa.Text(), nullable=False, unique=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_conversations_cohort_id", "conversations", ["cohort_id"])

    op.create_table(
        "conversation_participants",
        _uuid("id", primary_key=True),
        _uuid(
            "conversation_id",
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("last_read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "conversation_id", "user_id", name="uq_conversation_participants_pair"
        ),
    )
    op.create_index(
        "ix_conversation_participants_conversation_id",
        "conversation_participants",
        ["conversation_id"],
    )
    op.create_index(
        "ix_conversation_participants_user_id", "conversation_participants", ["user_id"]
    )

    op.create_table(
        "messages",
        _uuid("id", primary_key=True),
        _uuid(
            "conversation_id",
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid("sender_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.String(5000), nullable=False),
        sa.Column("read_by", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_messages_conversation_created", "messages", ["conversation_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("messages")
    op.drop_table("conversation_participants")
    op.drop_table("conversations")
    op.drop_table("content")
    op.drop_table("sessions")
    op.drop_table("applications")
    op.drop_table("cohort_memberships")
    op.drop_index("uq_cohorts_one_active_per_institution", table_name="cohorts")
    op.drop_table("cohorts")
    op.drop_table("users")
    op.drop_table("institutions")

    for enum_name in ENUM_TYPES:
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
