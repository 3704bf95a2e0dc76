"""Panel: one manufactured unit moving through the four stations.

The line is never stored: it is derived from panel_type on every read so the
identifier codec stays the single source of truth for routing.

Lifecycle:  pending → in_progress → completed | failed | rework
            rework → in_progress (re-entry at the failed station)
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime, Float, ForeignKey, Integer, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow
from app.utils.barcode import line_for


class PanelStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    REWORK = "rework"


TERMINAL_PANEL_STATUSES = {PanelStatus.COMPLETED, PanelStatus.FAILED}


class Panel(Base):
    __tablename__ = "panels"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    barcode: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )

    # ── Decoded identifier fields ────────────────────────────
    company_tag: Mapped[str] = mapped_column(String(3), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    frame_type: Mapped[str] = mapped_column(String(10), nullable=False)
    backsheet_type: Mapped[str] = mapped_column(String(15), nullable=False)
    panel_type: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Workflow state ───────────────────────────────────────
    # pending | in_progress | completed | failed | rework
    status: Mapped[str] = mapped_column(
        String(20), default=PanelStatus.PENDING.value, index=True
    )
    current_station: Mapped[int | None] = mapped_column(Integer)
    station_1_completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    station_2_completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    station_3_completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    station_4_completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Electrical readings (required for completion) ────────
    wattage: Mapped[float | None] = mapped_column(Float)
    vmp: Mapped[float | None] = mapped_column(Float)
    imp: Mapped[float | None] = mapped_column(Float)

    # ── Failure documentation ────────────────────────────────
    quality_notes: Mapped[str | None] = mapped_column(Text)
    rework_reason: Mapped[str | None] = mapped_column(Text)
    rework_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Aggregates ───────────────────────────────────────────
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("manufacturing_orders.id"), nullable=False, index=True
    )
    pallet_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("pallets.id"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    @property
    def line(self) -> str:
        return line_for(self.panel_type)

    def station_completed_at(self, station: int) -> datetime | None:
        return getattr(self, f"station_{station}_completed_at")

    def set_station_completed_at(self, station: int, value: datetime) -> None:
        setattr(self, f"station_{station}_completed_at", value)

    @property
    def has_electrical_readings(self) -> bool:
        return None not in (self.wattage, self.vmp, self.imp)


class PanelHistory(Base):
    """Append-only transition log; the panel's traceability record."""

    __tablename__ = "panel_history"

    # Integer key keeps insertion order for events recorded in the same instant
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    panel_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("panels.id"), nullable=False, index=True
    )

    # created | admitted | station_passed | completed | failed | rework
    event_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    from_status: Mapped[str | None] = mapped_column(String(20))
    to_status: Mapped[str | None] = mapped_column(String(20))
    station: Mapped[int | None] = mapped_column(Integer)
    # Payload depends on event_type:
    #   created:        {"barcode": "...", "line": "A"}
    #   station_passed: {"inspector_id": "...", "attempt": 0}
    #   failed/rework:  {"notes": "...", "failed_criteria": [...]}
    details: Mapped[dict | None] = mapped_column(JSON)

    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
