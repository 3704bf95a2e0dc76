"""Pallet: a capacity-bounded shipping group of completed panels.

Panels are placed on a bounded grid in row-major order.  A pallet is
opened when its first panel arrives and closes either automatically at
capacity or by an explicit operator close below capacity.

Lifecycle:  in_progress → completed
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, Float, ForeignKey,
    Integer, String, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class PalletStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Pallet(Base):
    __tablename__ = "pallets"
    __table_args__ = (
        CheckConstraint("assigned_count <= capacity", name="ck_pallet_within_capacity"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    pallet_number: Mapped[str] = mapped_column(
        String(80), unique=True, nullable=False, index=True
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("manufacturing_orders.id"), nullable=False, index=True
    )

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # in_progress | completed
    status: Mapped[str] = mapped_column(
        String(20), default=PalletStatus.IN_PROGRESS.value, index=True
    )
    closed_manually: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    closed_by: Mapped[str | None] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    @property
    def is_full(self) -> bool:
        return self.assigned_count >= self.capacity


class PalletAssignment(Base):
    """Placement of one panel at one grid position on one pallet."""

    __tablename__ = "pallet_assignments"
    __table_args__ = (
        UniqueConstraint(
            "pallet_id", "position_x", "position_y", name="uq_pallet_position"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    pallet_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pallets.id"), nullable=False, index=True
    )
    panel_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("panels.id"), unique=True, nullable=False
    )
    position_x: Mapped[int] = mapped_column(Integer, nullable=False)
    position_y: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Snapshots for the manifest ───────────────────────────
    panel_barcode: Mapped[str] = mapped_column(String(20), nullable=False)
    wattage: Mapped[float | None] = mapped_column(Float)
    vmp: Mapped[float | None] = mapped_column(Float)
    imp: Mapped[float | None] = mapped_column(Float)

    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
