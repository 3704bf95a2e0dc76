"""Pydantic schemas for pallets, assignments and manifests."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PalletAssignRequest(BaseModel):
    """Payload for POST /api/pallets/assign.

    Leave ``pallet_id`` empty to use the order's open pallet (or open a new
    one with ``capacity``, default 25).
    """
    panel_id: str
    pallet_id: str | None = None
    capacity: int | None = None


class PalletCloseRequest(BaseModel):
    """Payload for POST /api/pallets/{pallet_id}/close."""
    closed_by: str
    confirm: bool = False


class PalletAssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pallet_id: str
    panel_id: str
    position_x: int
    position_y: int
    panel_barcode: str
    wattage: float | None = None
    assigned_at: datetime


class PalletOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pallet_number: str
    order_id: str
    capacity: int
    assigned_count: int
    status: str
    closed_manually: bool
    closed_by: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ManifestPanel(BaseModel):
    barcode: str
    position_x: int
    position_y: int
    wattage: float | None = None
    vmp: float | None = None
    imp: float | None = None
    completed_at: datetime | None = None
    assigned_at: datetime


class WattageStats(BaseModel):
    total: float
    average: float
    minimum: float
    maximum: float


class PalletManifest(BaseModel):
    pallet_id: str
    pallet_number: str
    order_id: str
    status: str
    capacity: int
    count: int
    closed_manually: bool
    closed_by: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    wattage: WattageStats | None = None
    panels: list[ManifestPanel]
