"""Add pending_delete field to assets table

Revision ID: 20250102_000000
Revises: 20250101_000000
Create Date: 2025-01-02 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20250102_000000"
down_revision: Union[str, None] = "20250101_000000"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Marks records whose delete was interrupted after the blob was removed
    op.add_column("assets", sa.Column("pending_delete", sa.Boolean(), nullable=False, server_default="false"))


def downgrade() -> None:
    op.drop_column("assets", "pending_delete")
