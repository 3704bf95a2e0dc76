"""Pydantic schemas for manufacturing orders and their alerts."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


class OrderCreate(BaseModel):
    """Payload for POST /api/orders."""
    order_number: str
    panel_type: int
    target_quantity: int
    start_date: date
    end_date: date
    customer_name: str | None = None
    notes: str | None = None


class OrderStatusUpdate(BaseModel):
    """Payload for PATCH /api/orders/{order_id}/status (hold, resume, cancel)."""
    status: str


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_number: str
    panel_type: int
    target_quantity: int
    completed_count: int
    failed_count: int
    status: str
    start_date: date
    end_date: date
    low_inventory_alerted: bool
    customer_name: str | None = None
    notes: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class OrderProgress(BaseModel):
    order_id: str
    order_number: str
    status: str
    panel_type: int
    line: str
    target_quantity: int
    completed_count: int
    failed_count: int
    remaining: int
    progress_percent: float
    failure_rate: float
    panels_by_status: dict[str, int]
    at_station: dict[int, int]
    low_inventory_alerted: bool
    start_date: date
    end_date: date
    started_at: datetime | None = None
    completed_at: datetime | None = None


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    alert_type: str
    severity: str
    title: str
    message: str
    threshold_value: int | None = None
    current_value: int | None = None
    status: str
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    created_at: datetime


class AlertAcknowledge(BaseModel):
    acknowledged_by: str
