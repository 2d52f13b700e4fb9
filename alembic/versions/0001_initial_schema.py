"""Initial WatchGate schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create base tables and enums."""
    bind = op.get_bind()

    watchmanstatus = postgresql.ENUM("active", "inactive", name="watchmanstatus", create_type=False)
    orderstatus = postgresql.ENUM(
        "pending", "completed", "verified", name="orderstatus", create_type=False
    )
    leasestatus = postgresql.ENUM(
        "assigned", "confirmed", "expired", name="leasestatus", create_type=False
    )

    watchmanstatus.create(bind, checkfirst=True)
    orderstatus.create(bind, checkfirst=True)
    leasestatus.create(bind, checkfirst=True)

    op.create_table(
        "watchmen",
        sa.Column("watchman_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("name_lower", sa.String(length=255), nullable=False),
        sa.Column("contact", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "status",
            watchmanstatus,
            nullable=False,
            server_default="active",
        ),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("name_lower", name="uq_watchmen_name_lower"),
    )
    op.create_index("idx_watchmen_status", "watchmen", ["status", "watchman_id"])

    op.create_table(
        "orders",
        sa.Column("order_ref", sa.String(length=255), primary_key=True),
        sa.Column("customer", sa.String(length=255), nullable=False, server_default="Customer"),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "status",
            orderstatus,
            nullable=False,
            server_default="pending",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(length=255), nullable=True),
    )
    op.create_index("idx_orders_created", "orders", ["created_at"])

    op.create_table(
        "leases",
        sa.Column("lease_id", sa.Uuid(), primary_key=True),
        sa.Column("order_ref", sa.String(length=255), nullable=False),
        sa.Column("watchman_id", sa.Integer(), nullable=False),
        sa.Column("watchman_name", sa.String(length=255), nullable=False),
        sa.Column(
            "status",
            leasestatus,
            nullable=False,
            server_default="assigned",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by", sa.String(length=255), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_seconds", sa.Integer(), nullable=True),
        sa.Column(
            "reassigned_from",
            sa.Uuid(),
            sa.ForeignKey("leases.lease_id"),
            nullable=True,
        ),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
    )
    op.create_index(
        "uq_leases_order_assigned",
        "leases",
        ["order_ref"],
        unique=True,
        postgresql_where=sa.text("status = 'assigned'"),
    )
    op.create_index("uq_leases_reassigned_from", "leases", ["reassigned_from"], unique=True)
    op.create_index("idx_leases_status_created", "leases", ["status", "created_at"])
    op.create_index("idx_leases_watchman", "leases", ["watchman_id", "status", "created_at"])
    op.create_index("idx_leases_order", "leases", ["order_ref", "created_at"])

    op.create_table(
        "watchman_stats",
        sa.Column("watchman_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("total_assigned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_confirmed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_expired", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Drop base tables and enums."""
    bind = op.get_bind()

    op.drop_table("watchman_stats")
    op.drop_index("idx_leases_order", table_name="leases")
    op.drop_index("idx_leases_watchman", table_name="leases")
    op.drop_index("idx_leases_status_created", table_name="leases")
    op.drop_index("uq_leases_reassigned_from", table_name="leases")
    op.drop_index("uq_leases_order_assigned", table_name="leases")
    op.drop_table("leases")
    op.drop_index("idx_orders_created", table_name="orders")
    op.drop_table("orders")
    op.drop_index("idx_watchmen_status", table_name="watchmen")
    op.drop_table("watchmen")

    postgresql.ENUM(name="leasestatus").drop(bind, checkfirst=True)
    postgresql.ENUM(name="orderstatus").drop(bind, checkfirst=True)
    postgresql.ENUM(name="watchmanstatus").drop(bind, checkfirst=True)
