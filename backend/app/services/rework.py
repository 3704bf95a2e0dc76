"""Rework router: send a panel back to the station where it failed.

A Rework result never restarts the panel at station 1.  The panel keeps
its failed station as ``current_station``; the earlier stations' Pass
inspections stay on record, so the progression guard admits it straight
back to that station on the next scan or inspection.  Stations after the
failed one were never passed and are inspected normally afterwards.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import bounded
from app.models.panel import Panel, PanelStatus
from app.services.events import PanelReworked
from app.services.lifecycle import send_to_rework

logger = logging.getLogger("paneltrace.rework")


def route_to_rework(
    panel: Panel,
    station: int,
    reason: str,
    failed_criteria: list[str] | None = None,
) -> PanelReworked:
    """Flag the panel for rework and return the event to publish after flush."""
    from_status = panel.status
    send_to_rework(panel, station, reason)
    logger.warning(
        "Panel %s sent to rework at station %d (attempt %d): %s",
        panel.barcode, station, panel.rework_count, reason,
    )
    return PanelReworked(
        panel_id=panel.id,
        order_id=panel.order_id,
        from_status=from_status,
        to_status=PanelStatus.REWORK.value,
        station=station,
        reason=reason,
        rework_count=panel.rework_count,
        failed_criteria=tuple(failed_criteria or ()),
    )


async def list_rework_queue(
    db: AsyncSession,
    order_id: str | None = None,
    station: int | None = None,
) -> list[Panel]:
    """Panels waiting to re-enter, oldest first."""
    stmt = select(Panel).where(Panel.status == PanelStatus.REWORK.value)
    if order_id:
        stmt = stmt.where(Panel.order_id == order_id)
    if station:
        stmt = stmt.where(Panel.current_station == station)
    result = await bounded(db.execute(stmt.order_by(Panel.updated_at)))
    return list(result.scalars().all())
