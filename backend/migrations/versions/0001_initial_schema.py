"""initial schema

Revision ID: 0001
Revises:
Create Date: 2025-03-01 12:00:00

"""
from alembic import op

from app.models.database_models import Base

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
