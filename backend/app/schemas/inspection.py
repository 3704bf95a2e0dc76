"""Pydantic schemas for station inspections."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class InspectionCreate(BaseModel):
    """Payload for POST /api/inspections.

    ``result`` is one of pass | fail | cosmetic_defect | rework.  Notes are
    required for everything except pass.  Electrical readings may accompany
    a station 4 inspection instead of being recorded beforehand.
    """
    panel_id: str
    station: int
    inspector_id: str
    result: str
    failed_criteria: list[str] = Field(default_factory=list)
    notes: str | None = None
    rework_reason: str | None = None
    wattage: float | None = None
    vmp: float | None = None
    imp: float | None = None


class InspectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    panel_id: str
    station_number: int
    attempt: int
    inspector_id: str
    result: str
    failed_criteria: list[str] | None = None
    notes: str | None = None
    wattage: float | None = None
    vmp: float | None = None
    imp: float | None = None
    created_at: datetime


class InspectionRecorded(BaseModel):
    """Inspection plus the panel state it produced."""
    inspection: InspectionOut
    panel_status: str
    current_station: int | None = None
