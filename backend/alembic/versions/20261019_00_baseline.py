"""Baseline schema: users, records, versions, access requests, notifications, endorsements.

Revision ID: 20261019_00
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "20261019_00"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("specialization", sa.String(255), nullable=True),
        sa.Column("condition_tags", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("record_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("tags", sa.Text(), nullable=True),
        sa.Column("current_version_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_version_id", sa.String(36), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_records_owner_id", "records", ["owner_id"])
    op.create_index("ix_records_record_type", "records", ["record_type"])
    op.create_index("ix_records_owner_type", "records", ["owner_id", "record_type"])

    op.create_table(
        "record_versions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "record_id",
            sa.String(36),
            sa.ForeignKey("records.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("file_ref", sa.String(512), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("content_type", sa.String(100), nullable=True),
        sa.Column("commit_message", sa.Text(), nullable=False),
        sa.Column("committed_by_user_id", sa.String(128), nullable=False),
        sa.Column("committed_by_role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("record_id", "version_number", name="uq_record_versions_record_number"),
    )
    op.create_index("ix_record_versions_record_id", "record_versions", ["record_id"])
    op.create_index(
        "ix_record_versions_committed_by_user_id", "record_versions", ["committed_by_user_id"]
    )
    op.create_index(
        "ix_record_versions_committer_created",
        "record_versions",
        ["committed_by_user_id", "created_at"],
    )

    op.create_table(
        "access_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("doctor_id", sa.String(128), nullable=False),
        sa.Column("patient_id", sa.String(128), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("access_level", sa.String(20), nullable=False),
        sa.Column("requested_record_types", sa.String(255), nullable=False),
        sa.Column("expiry_days", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_access_requests_doctor_id", "access_requests", ["doctor_id"])
    op.create_index("ix_access_requests_patient_id", "access_requests", ["patient_id"])
    op.create_index(
        "ix_access_requests_pair_status",
        "access_requests",
        ["patient_id", "doctor_id", "status"],
    )
    op.create_index(
        "ix_access_requests_status_expires", "access_requests", ["status", "expires_at"]
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("recipient_id", sa.String(128), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_notifications_recipient_read", "notifications", ["recipient_id", "is_read"]
    )
    op.create_index(
        "ix_notifications_recipient_created", "notifications", ["recipient_id", "created_at"]
    )

    op.create_table(
        "endorsements",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("doctor_id", sa.String(128), nullable=False),
        sa.Column("endorsed_by_id", sa.String(128), nullable=False),
        sa.Column("skill", sa.String(80), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_endorsements_doctor_id", "endorsements", ["doctor_id"])
    op.create_index(
        "ix_endorsements_endorser_created", "endorsements", ["endorsed_by_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("endorsements")
    op.drop_table("notifications")
    op.drop_table("access_requests")
    op.drop_table("record_versions")
    op.drop_table("records")
    op.drop_table("users")
