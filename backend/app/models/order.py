"""ManufacturingOrder: a target quantity of one panel type to produce.

Counters are mutated only by the order tracker under the order's row lock.
The order reaches ``completed`` exactly once, when completed_count first
equals target_quantity; no other path leads there.

Lifecycle:  pending → in_progress → completed
            (on_hold ⇄ in_progress, cancelled from any open state)
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, ForeignKey,
    Integer, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


TERMINAL_ORDER_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


class ManufacturingOrder(Base):
    __tablename__ = "manufacturing_orders"
    __table_args__ = (
        CheckConstraint("target_quantity > 0", name="ck_order_target_positive"),
        CheckConstraint(
            "completed_count <= target_quantity", name="ck_order_completed_le_target"
        ),
        CheckConstraint("start_date <= end_date", name="ck_order_date_range"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Target ───────────────────────────────────────────────
    panel_type: Mapped[int] = mapped_column(Integer, nullable=False)
    target_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Progress counters ────────────────────────────────────
    completed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    low_inventory_alerted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # pending | in_progress | completed | cancelled | on_hold
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, index=True
    )

    # ── Schedule (immutable after creation) ──────────────────
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    @property
    def remaining(self) -> int:
        return self.target_quantity - self.completed_count

    @property
    def progress_percent(self) -> float:
        return round(100.0 * self.completed_count / self.target_quantity, 2)

    @property
    def failure_rate(self) -> float:
        """Failed panels as a percentage of panels that left the line."""
        processed = self.completed_count + self.failed_count
        if not processed:
            return 0.0
        return round(100.0 * self.failed_count / processed, 2)


class OrderAlert(Base):
    """One-shot notification raised against an order (e.g. low inventory)."""

    __tablename__ = "order_alerts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("manufacturing_orders.id"), nullable=False, index=True
    )

    # low_inventory | high_failure_rate
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # info | warning | critical
    severity: Mapped[str] = mapped_column(String(20), default="warning")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    threshold_value: Mapped[int | None] = mapped_column(Integer)
    current_value: Mapped[int | None] = mapped_column(Integer)

    # open | acknowledged
    status: Mapped[str] = mapped_column(String(20), default="open", index=True)
    acknowledged_by: Mapped[str | None] = mapped_column(String(100))
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
