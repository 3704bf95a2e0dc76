"""Aggregate model imports for Alembic auto-detection."""

from app.models.order import ManufacturingOrder, OrderAlert, OrderStatus  # noqa: F401
from app.models.panel import Panel, PanelHistory, PanelStatus  # noqa: F401
from app.models.inspection import Inspection, InspectionResult  # noqa: F401
from app.models.pallet import Pallet, PalletAssignment, PalletStatus  # noqa: F401
