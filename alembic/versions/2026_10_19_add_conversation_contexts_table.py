"""add conversation_contexts table

Revision ID: a1f4c2d9e7b3
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "a1f4c2d9e7b3"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create conversation_contexts with the open-context lookup index."""
    op.create_table(
        "conversation_contexts",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reference_id", sa.String(length=32), nullable=False),
        sa.Column("context_type", sa.String(length=32), nullable=False),
        sa.Column(
            "context_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "status",
            sa.String(length=32),
            nullable=False,
            server_default="active",
        ),
        sa.Column("summary", sa.String(length=256), nullable=True),
        sa.Column(
            "template_fingerprint",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "expires_at > created_at", name="ck_conversation_contexts_expiry"
        ),
    )
    op.create_index(
        "ix_conversation_contexts_reference_id",
        "conversation_contexts",
        ["reference_id"],
        unique=True,
    )
    op.create_index(
        "ix_conversation_contexts_user_id",
        "conversation_contexts",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_conversation_contexts_user_status_expires",
        "conversation_contexts",
        ["user_id", "status", "expires_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_conversation_contexts_user_status_expires",
        table_name="conversation_contexts",
    )
    op.drop_index(
        "ix_conversation_contexts_user_id", table_name="conversation_contexts"
    )
    op.drop_index(
        "ix_conversation_contexts_reference_id", table_name="conversation_contexts"
    )
    op.drop_table("conversation_contexts")
