"""Store the thumbnail variant URL of each photo."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_02"
down_revision = "20261019_01"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("photo", sa.Column("thumbnail_url", sa.String(length=2048), nullable=True))


def downgrade() -> None:
    op.drop_column("photo", "thumbnail_url")
