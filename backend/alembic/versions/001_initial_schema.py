"""Initial schema - tenants, series, instances, participation ledger, audit log.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "tenant_members",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="ADMIN"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tenant_members_tenant_id", "tenant_members", ["tenant_id"])

    op.create_table(
        "event_series",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("recurrence", sa.Text, nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Europe/Helsinki"),
        sa.Column("chat_id", sa.String(64), nullable=True),
        sa.Column("topic_id", sa.String(64), nullable=True),
        sa.Column("capacity_limit", sa.Integer, nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="120"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_event_series_tenant_id", "event_series", ["tenant_id"])
    op.create_index("ix_event_series_is_active", "event_series", ["is_active"])

    op.create_table(
        "event_instances",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("series_id", UUID(as_uuid=True), sa.ForeignKey("event_series.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("announcement_chat_id", sa.String(64), nullable=True),
        sa.Column("announcement_message_id", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("series_id", "start_time", name="uq_event_instances_series_start"),
    )

    op.create_table(
        "participation_records",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("instance_id", UUID(as_uuid=True), sa.ForeignKey("event_instances.id"), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_participation_records_instance_id", "participation_records", ["instance_id"])

    op.create_table(
        "audit_records",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("detail", sa.JSON, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_records_tenant_id", "audit_records", ["tenant_id"])
    op.create_index("ix_audit_records_occurred_at", "audit_records", ["occurred_at"])


def downgrade() -> None:
    op.drop_table("audit_records")
    op.drop_table("participation_records")
    op.drop_table("event_instances")
    op.drop_table("event_series")
    op.drop_table("tenant_members")
    op.drop_table("tenants")
