"""Initial schema for the selfie kiosk: stored_files (photo storage), sheet_rows (sheets).

Revision ID: 0001_init
Revises:
Create Date: 2025-12-01 10:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ---------------------------------------------
    # stored_files (cartelle logiche pending/approved)
    # ---------------------------------------------
    op.create_table(
        "stored_files",
        sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("parent_id", sa.String(length=128), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("content", sa.LargeBinary(), nullable=False),
        sa.Column("trashed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index(
        "ix_stored_files_parent_trashed_created",
        "stored_files",
        ["parent_id", "trashed", "created_at"],
        unique=False,
    )

    # ---------------------------------------------
    # sheet_rows (log eventi, impostazioni, template)
    # ---------------------------------------------
    op.create_table(
        "sheet_rows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("sheet_id", sa.String(length=128), nullable=False),
        sa.Column("tab", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("values", sa.JSON(), nullable=False),
        sa.UniqueConstraint("sheet_id", "tab", "row_number", name="uq_sheet_rows_position"),
    )
    op.create_index("ix_sheet_rows_sheet_id", "sheet_rows", ["sheet_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_sheet_rows_sheet_id", table_name="sheet_rows")
    op.drop_table("sheet_rows")
    op.drop_index("ix_stored_files_parent_trashed_created", table_name="stored_files")
    op.drop_table("stored_files")
