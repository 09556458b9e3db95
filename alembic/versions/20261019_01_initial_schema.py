"""Initial database schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255)),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )

    op.create_table(
        "album",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("app_user.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("event_name", sa.String(length=255)),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="DRAFT"),
        sa.Column(
            "creation_type", sa.String(length=16), nullable=False, server_default="BATCH"
        ),
        sa.Column("photo_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_album_user_id", "album", ["user_id"])

    op.create_table(
        "photo",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "album_id",
            sa.String(length=64),
            sa.ForeignKey("album.id"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("app_user.id"),
            nullable=False,
        ),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column(
            "uploaded_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_photo_album_id", "photo", ["album_id"])

    op.create_table(
        "notification_event",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_notification_event_session_id", "notification_event", ["session_id", "id"]
    )


def downgrade() -> None:
    op.drop_index("ix_notification_event_session_id", table_name="notification_event")
    op.drop_table("notification_event")
    op.drop_index("ix_photo_album_id", table_name="photo")
    op.drop_table("photo")
    op.drop_index("ix_album_user_id", table_name="album")
    op.drop_table("album")
    op.drop_table("app_user")
