"""Pydantic schemas for identifiers, panels and their history."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.inspection import InspectionOut


# ── Identifier ───────────────────────────────────────────────

class IdentifierOut(BaseModel):
    code: str
    company_tag: str
    year: int
    frame_type: str
    backsheet_type: str
    panel_type: int
    sequence: int
    line: str


# ── Requests ─────────────────────────────────────────────────

class PanelCreate(BaseModel):
    """Payload for POST /api/panels."""
    code: str
    order_id: str


class PanelScan(BaseModel):
    """Payload for POST /api/panels/scan."""
    code: str
    station: int
    order_id: str | None = None


class ElectricalReadings(BaseModel):
    """Payload for PUT /api/panels/{panel_id}/readings.

    Ranges are checked by the lifecycle service so out-of-range values
    come back as VALUE_OUT_OF_RANGE rather than a generic validation error.
    """
    wattage: float
    vmp: float
    imp: float


# ── Responses ────────────────────────────────────────────────

class PanelSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    barcode: str
    panel_type: int
    line: str
    status: str
    current_station: int | None = None
    order_id: str
    pallet_id: str | None = None
    created_at: datetime


class PanelOut(PanelSummary):
    company_tag: str
    year: int
    frame_type: str
    backsheet_type: str
    sequence: int
    station_1_completed_at: datetime | None = None
    station_2_completed_at: datetime | None = None
    station_3_completed_at: datetime | None = None
    station_4_completed_at: datetime | None = None
    wattage: float | None = None
    vmp: float | None = None
    imp: float | None = None
    quality_notes: str | None = None
    rework_reason: str | None = None
    rework_count: int = 0
    completed_at: datetime | None = None


class PanelHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    from_status: str | None = None
    to_status: str | None = None
    station: int | None = None
    details: dict | None = None
    recorded_at: datetime


class PanelHistoryOut(BaseModel):
    panel: PanelOut
    history: list[PanelHistoryEntry] = Field(default_factory=list)
    inspections: list[InspectionOut] = Field(default_factory=list)

