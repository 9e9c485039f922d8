"""create otp tables

Revision ID: a1c4e7f20b93
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy.dialects import postgresql
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c4e7f20b93"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "messaging_identities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("chat_handle", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_messaging_identities_chat_handle",
        "messaging_identities",
        ["chat_handle"],
        unique=True,
    )
    op.create_index(
        "ix_messaging_identities_username",
        "messaging_identities",
        ["username"],
    )
    op.create_index(
        "ix_messaging_identities_phone_number",
        "messaging_identities",
        ["phone_number"],
    )

    op.create_table(
        "verification_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("session_token", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(), nullable=False, server_default=""),
        sa.Column("code", sa.String(length=6), nullable=False),
        sa.Column("channel", sa.String(), nullable=False, server_default="telegram"),
        sa.Column("purpose", sa.String(), nullable=False, server_default="registration"),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("messaging_identity_id", sa.String(), nullable=True),
        sa.Column("messaging_username", sa.String(), nullable=True),
        sa.Column("messaging_display_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_verification_sessions_session_token",
        "verification_sessions",
        ["session_token"],
        unique=True,
    )
    op.create_index(
        "ix_verification_sessions_email_is_used",
        "verification_sessions",
        ["email", "is_used"],
    )
    op.create_index(
        "ix_verification_sessions_phone_created",
        "verification_sessions",
        ["phone_number", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_verification_sessions_phone_created", table_name="verification_sessions")
    op.drop_index("ix_verification_sessions_email_is_used", table_name="verification_sessions")
    op.drop_index("ix_verification_sessions_session_token", table_name="verification_sessions")
    op.drop_table("verification_sessions")
    op.drop_index("ix_messaging_identities_phone_number", table_name="messaging_identities")
    op.drop_index("ix_messaging_identities_username", table_name="messaging_identities")
    op.drop_index("ix_messaging_identities_chat_handle", table_name="messaging_identities")
    op.drop_table("messaging_identities")
