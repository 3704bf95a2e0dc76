"""Panel creation, scanning and the traceability record.

  create_panel      decode the code, check the order accepts it, insert
  scan_panel        look up (or create) by code and admit to a station
  record_electrical_readings
                    store range-checked readings before the final inspection
  panel_history     ordered transitions plus inspections for one code

The history recorder at the bottom subscribes to every PanelEvent and
appends to panel_history inside the same transaction.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import bounded, utcnow
from app.middleware.exceptions import (
    DuplicateIdentifier,
    MalformedInputError,
    PanelTerminal,
    ResourceNotFoundError,
)
from app.models.panel import Panel, PanelHistory, PanelStatus, TERMINAL_PANEL_STATUSES
from app.services import lifecycle
from app.services.events import PanelAdmitted, PanelCreated, PanelEvent, publish, subscribe
from app.services.inspections import list_inspections, passed_stations
from app.services.orders import accept_panel
from app.services.stations import get_station
from app.utils.barcode import decode_identifier
from app.utils.locks import lock_panel

logger = logging.getLogger("paneltrace.panels")


async def _find_by_barcode(db: AsyncSession, barcode: str) -> Panel | None:
    result = await bounded(db.execute(select(Panel).where(Panel.barcode == barcode)))
    return result.scalar_one_or_none()


async def create_panel(db: AsyncSession, code: str, order_id: str) -> Panel:
    """Register a new panel against an order.

    Raises:
        MalformedIdentifier     code fails the grammar
        DuplicateIdentifier     code already registered
        OrderClosed / OrderNotAccepting / PanelTypeMismatch
    """
    identifier = decode_identifier(code)
    barcode = identifier.code

    if await _find_by_barcode(db, barcode) is not None:
        raise DuplicateIdentifier(f"Panel {barcode} already exists")

    order = await accept_panel(db, order_id, identifier.panel_type)

    panel = Panel(
        barcode=barcode,
        company_tag=identifier.company_tag,
        year=identifier.year,
        frame_type=identifier.frame_type,
        backsheet_type=identifier.backsheet_type,
        panel_type=identifier.panel_type,
        sequence=identifier.sequence,
        status=PanelStatus.PENDING.value,
        rework_count=0,
        order_id=order.id,
    )
    db.add(panel)
    try:
        await bounded(db.flush(), "create panel")
    except IntegrityError as exc:
        raise DuplicateIdentifier(f"Panel {barcode} already exists") from exc

    await publish(db, PanelCreated(
        panel_id=panel.id,
        order_id=order.id,
        to_status=panel.status,
        barcode=barcode,
        line=identifier.line,
    ))
    logger.info(
        "Panel %s created for order %s (line %s)",
        barcode, order.order_number, identifier.line,
    )
    return panel


async def scan_panel(
    db: AsyncSession,
    code: str,
    station_number: int,
    order_id: str | None = None,
) -> Panel:
    """Admit a panel to a station, creating it on first scan when an order is given.

    pending → in_progress at station 1; rework → in_progress at the failed
    station; an in-progress panel may only be scanned at its next station.
    """
    station = get_station(station_number)
    identifier = decode_identifier(code)

    panel = await _find_by_barcode(db, identifier.code)
    if panel is None:
        if order_id is None:
            raise ResourceNotFoundError("Panel", identifier.code)
        panel = await create_panel(db, identifier.code, order_id)

    panel = await lock_panel(db, panel.id)
    passed = await passed_stations(db, panel.id)
    previous = lifecycle.admit(panel, station.number, passed)
    lifecycle.check_invariants(panel)
    await bounded(db.flush(), "admit panel")

    if previous is not None:
        await publish(db, PanelAdmitted(
            panel_id=panel.id,
            order_id=panel.order_id,
            station=station.number,
            from_status=previous,
            to_status=panel.status,
        ))
        logger.info(
            "Panel %s admitted to station %d (%s → %s)",
            panel.barcode, station.number, previous, panel.status,
        )
    return panel


async def record_electrical_readings(
    db: AsyncSession,
    panel_id: str,
    wattage: float,
    vmp: float,
    imp: float,
) -> Panel:
    """Store all three readings ahead of the final inspection."""
    readings = lifecycle.validate_readings(wattage, vmp, imp, require_all=True)
    panel = await lock_panel(db, panel_id)
    status = PanelStatus(panel.status)
    if status in TERMINAL_PANEL_STATUSES:
        raise PanelTerminal(
            f"Panel {panel.barcode} is {status.value}; readings can no longer change"
        )
    lifecycle.apply_readings(panel, readings)
    await bounded(db.flush(), "record readings")
    logger.info(
        "Readings recorded for panel %s: %.1f W, %.2f V, %.2f A",
        panel.barcode, readings["wattage"], readings["vmp"], readings["imp"],
    )
    return panel


# ── Queries ──────────────────────────────────────────────────

async def get_panel(db: AsyncSession, panel_id: str) -> Panel:
    panel = await bounded(db.get(Panel, panel_id))
    if panel is None:
        raise ResourceNotFoundError("Panel", panel_id)
    return panel


async def get_panel_by_code(db: AsyncSession, code: str) -> Panel:
    identifier = decode_identifier(code)
    panel = await _find_by_barcode(db, identifier.code)
    if panel is None:
        raise ResourceNotFoundError("Panel", identifier.code)
    return panel


async def list_panels(
    db: AsyncSession,
    order_id: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Panel]:
    stmt = select(Panel)
    if order_id:
        stmt = stmt.where(Panel.order_id == order_id)
    if status:
        try:
            stmt = stmt.where(Panel.status == PanelStatus(status).value)
        except ValueError:
            raise MalformedInputError(
                f"Unknown panel status {status!r}", details={"field": "status"}
            )
    stmt = stmt.order_by(Panel.created_at).limit(limit).offset(offset)
    result = await bounded(db.execute(stmt))
    return list(result.scalars().all())


async def panel_history(db: AsyncSession, code: str) -> dict:
    """Status, ordered transition log and inspections for one panel."""
    panel = await get_panel_by_code(db, code)
    result = await bounded(db.execute(
        select(PanelHistory)
        .where(PanelHistory.panel_id == panel.id)
        .order_by(PanelHistory.id)
    ))
    return {
        "panel": panel,
        "history": list(result.scalars().all()),
        "inspections": await list_inspections(db, panel.id),
    }


# ── History recorder ─────────────────────────────────────────

@subscribe(PanelEvent)
async def record_history(db: AsyncSession, event: PanelEvent) -> None:
    db.add(PanelHistory(
        panel_id=event.panel_id,
        event_type=event.event_type,
        from_status=event.from_status,
        to_status=event.to_status,
        station=event.station,
        details=event.details() or None,
        recorded_at=utcnow(),
    ))
    await bounded(db.flush(), "record history")
