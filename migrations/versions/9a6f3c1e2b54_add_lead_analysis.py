"""Add the AI analysis document to leads."""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "9a6f3c1e2b54"
down_revision = "4b9e21c0d7a3"
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)


def upgrade() -> None:
    op.add_column(
        "leads",
        sa.Column("analysis", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    )
    logger.info("leads.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_column("leads", "analysis")
