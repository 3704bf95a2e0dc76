"""Inspection: one station result for one panel, append-only.

Uniqueness is (panel, station, attempt).  ``attempt`` is the panel's
rework_count at the time of recording, so the only way to inspect the same
station twice is through the rework path.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class InspectionResult(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    COSMETIC_DEFECT = "cosmetic_defect"
    REWORK = "rework"


# Results that must carry non-empty notes
DOCUMENTED_RESULTS = {
    InspectionResult.FAIL,
    InspectionResult.COSMETIC_DEFECT,
    InspectionResult.REWORK,
}


class Inspection(Base):
    __tablename__ = "inspections"
    __table_args__ = (
        UniqueConstraint(
            "panel_id", "station_number", "attempt",
            name="uq_inspection_panel_station_attempt",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    panel_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("panels.id"), nullable=False, index=True
    )
    station_number: Mapped[int] = mapped_column(Integer, nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    inspector_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # pass | fail | cosmetic_defect | rework
    result: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    failed_criteria: Mapped[list | None] = mapped_column(JSON)
    notes: Mapped[str | None] = mapped_column(Text)

    # Readings supplied with this inspection, if any
    wattage: Mapped[float | None] = mapped_column(Float)
    vmp: Mapped[float | None] = mapped_column(Float)
    imp: Mapped[float | None] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
