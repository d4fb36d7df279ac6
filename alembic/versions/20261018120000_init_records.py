from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018120000_init_records"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.UniqueConstraint("kind", "record_id", name="uq_records_kind_record_id"),
    )
    op.create_index("ix_records_kind", "records", ["kind"])

def downgrade() -> None:
    op.drop_index("ix_records_kind", table_name="records")
    op.drop_table("records")
