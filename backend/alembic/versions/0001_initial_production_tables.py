"""Initial production-tracking tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "manufacturing_orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_number", sa.String(50), nullable=False),
        # Target
        sa.Column("panel_type", sa.Integer(), nullable=False),
        sa.Column("target_quantity", sa.Integer(), nullable=False),
        # Counters
        sa.Column("completed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("low_inventory_alerted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), server_default="pending"),
        # Schedule
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.CheckConstraint("target_quantity > 0", name="ck_order_target_positive"),
        sa.CheckConstraint("completed_count <= target_quantity", name="ck_order_completed_le_target"),
        sa.CheckConstraint("start_date <= end_date", name="ck_order_date_range"),
    )
    op.create_index("ix_manufacturing_orders_order_number", "manufacturing_orders", ["order_number"], unique=True)
    op.create_index("ix_manufacturing_orders_status", "manufacturing_orders", ["status"])

    op.create_table(
        "order_alerts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("manufacturing_orders.id"), nullable=False),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), server_default="warning"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("threshold_value", sa.Integer()),
        sa.Column("current_value", sa.Integer()),
        sa.Column("status", sa.String(20), server_default="open"),
        sa.Column("acknowledged_by", sa.String(100)),
        sa.Column("acknowledged_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_order_alerts_order_id", "order_alerts", ["order_id"])
    op.create_index("ix_order_alerts_status", "order_alerts", ["status"])

    op.create_table(
        "pallets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("pallet_number", sa.String(80), nullable=False),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("manufacturing_orders.id"), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("assigned_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), server_default="in_progress"),
        sa.Column("closed_manually", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("closed_by", sa.String(100)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime()),
        sa.CheckConstraint("assigned_count <= capacity", name="ck_pallet_within_capacity"),
    )
    op.create_index("ix_pallets_pallet_number", "pallets", ["pallet_number"], unique=True)
    op.create_index("ix_pallets_order_id", "pallets", ["order_id"])
    op.create_index("ix_pallets_status", "pallets", ["status"])

    op.create_table(
        "panels",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("barcode", sa.String(20), nullable=False),
        # Decoded identifier
        sa.Column("company_tag", sa.String(3), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("frame_type", sa.String(10), nullable=False),
        sa.Column("backsheet_type", sa.String(15), nullable=False),
        sa.Column("panel_type", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        # Workflow
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("current_station", sa.Integer()),
        sa.Column("station_1_completed_at", sa.DateTime()),
        sa.Column("station_2_completed_at", sa.DateTime()),
        sa.Column("station_3_completed_at", sa.DateTime()),
        sa.Column("station_4_completed_at", sa.DateTime()),
        # Electrical
        sa.Column("wattage", sa.Float()),
        sa.Column("vmp", sa.Float()),
        sa.Column("imp", sa.Float()),
        # Failure documentation
        sa.Column("quality_notes", sa.Text()),
        sa.Column("rework_reason", sa.Text()),
        sa.Column("rework_count", sa.Integer(), nullable=False, server_default="0"),
        # Aggregates
        sa.Column("order_id", sa.String(36), sa.ForeignKey("manufacturing_orders.id"), nullable=False),
        sa.Column("pallet_id", sa.String(36), sa.ForeignKey("pallets.id")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_index("ix_panels_barcode", "panels", ["barcode"], unique=True)
    op.create_index("ix_panels_panel_type", "panels", ["panel_type"])
    op.create_index("ix_panels_status", "panels", ["status"])
    op.create_index("ix_panels_order_id", "panels", ["order_id"])
    op.create_index("ix_panels_pallet_id", "panels", ["pallet_id"])

    op.create_table(
        "panel_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("panel_id", sa.String(36), sa.ForeignKey("panels.id"), nullable=False),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("from_status", sa.String(20)),
        sa.Column("to_status", sa.String(20)),
        sa.Column("station", sa.Integer()),
        sa.Column("details", sa.JSON()),
        sa.Column("recorded_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_panel_history_panel_id", "panel_history", ["panel_id"])
    op.create_index("ix_panel_history_event_type", "panel_history", ["event_type"])
    op.create_index("ix_panel_history_recorded_at", "panel_history", ["recorded_at"])

    op.create_table(
        "inspections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("panel_id", sa.String(36), sa.ForeignKey("panels.id"), nullable=False),
        sa.Column("station_number", sa.Integer(), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inspector_id", sa.String(100), nullable=False),
        sa.Column("result", sa.String(20), nullable=False),
        sa.Column("failed_criteria", sa.JSON()),
        sa.Column("notes", sa.Text()),
        sa.Column("wattage", sa.Float()),
        sa.Column("vmp", sa.Float()),
        sa.Column("imp", sa.Float()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "panel_id", "station_number", "attempt",
            name="uq_inspection_panel_station_attempt",
        ),
    )
    op.create_index("ix_inspections_panel_id", "inspections", ["panel_id"])
    op.create_index("ix_inspections_result", "inspections", ["result"])
    op.create_index("ix_inspections_created_at", "inspections", ["created_at"])

    op.create_table(
        "pallet_assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("pallet_id", sa.String(36), sa.ForeignKey("pallets.id"), nullable=False),
        sa.Column("panel_id", sa.String(36), sa.ForeignKey("panels.id"), nullable=False, unique=True),
        sa.Column("position_x", sa.Integer(), nullable=False),
        sa.Column("position_y", sa.Integer(), nullable=False),
        sa.Column("panel_barcode", sa.String(20), nullable=False),
        sa.Column("wattage", sa.Float()),
        sa.Column("vmp", sa.Float()),
        sa.Column("imp", sa.Float()),
        sa.Column("assigned_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("pallet_id", "position_x", "position_y", name="uq_pallet_position"),
    )
    op.create_index("ix_pallet_assignments_pallet_id", "pallet_assignments", ["pallet_id"])


def downgrade() -> None:
    op.drop_table("pallet_assignments")
    op.drop_table("inspections")
    op.drop_table("panel_history")
    op.drop_table("panels")
    op.drop_table("pallets")
    op.drop_table("order_alerts")
    op.drop_table("manufacturing_orders")
