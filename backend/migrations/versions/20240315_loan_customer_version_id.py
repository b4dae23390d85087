"""Optimistic locking version columns on loans and customers

Revision ID: 20240315_version_id
Revises: 20240301_initial
Create Date: 2024-03-15
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20240315_version_id"
down_revision = "20240301_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("historico", schema=None) as batch_op:
        batch_op.add_column(sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"))

    with op.batch_alter_table("clientes", schema=None) as batch_op:
        batch_op.add_column(sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"))


def downgrade():
    with op.batch_alter_table("clientes", schema=None) as batch_op:
        batch_op.drop_column("version_id")

    with op.batch_alter_table("historico", schema=None) as batch_op:
        batch_op.drop_column("version_id")
