"""create artifact_store table

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "artifact_store",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column(
            "payload",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("grant_id", sa.String(), nullable=True),
        sa.Column("uid", sa.String(), nullable=True),
        sa.Column("user_code", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_artifact_store_grant_id", "artifact_store", ["grant_id"])
    op.create_index("ix_artifact_store_uid", "artifact_store", ["uid"])
    op.create_index("ix_artifact_store_user_code", "artifact_store", ["user_code"])
    op.create_index("ix_artifact_store_expires_at", "artifact_store", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_artifact_store_expires_at", table_name="artifact_store")
    op.drop_index("ix_artifact_store_user_code", table_name="artifact_store")
    op.drop_index("ix_artifact_store_uid", table_name="artifact_store")
    op.drop_index("ix_artifact_store_grant_id", table_name="artifact_store")
    op.drop_table("artifact_store")
