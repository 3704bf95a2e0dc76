"""Pallet manager.

Groups completed panels into shipping pallets:

  - only Completed panels, each on at most one pallet
  - without an explicit pallet, use the order's open pallet or open a new
    one (default capacity 25, standard 26, custom 1–100)
  - positions are allocated row-major on a bounded grid, unique per pallet
  - the pallet closes itself when assigned_count reaches capacity
  - closing below capacity needs an explicit, confirmed operator action,
    and a closed pallet never reopens
  - when the order reaches its target, its open pallets are closed as
    partial pallets by ``system``

Lock order follows the rest of the engine: panel, then order, then pallet.
"""

import io
import json
import logging

import segno
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import bounded, utcnow
from app.middleware.exceptions import (
    AlreadyAssigned,
    AlreadyClosed,
    MalformedInputError,
    ManualCloseNotConfirmed,
    NotCompleted,
    PalletClosed,
    PalletFull,
    PalletOrderMismatch,
    PreconditionViolation,
    ResourceNotFoundError,
)
from app.models.order import ManufacturingOrder, OrderStatus
from app.models.pallet import Pallet, PalletAssignment, PalletStatus
from app.models.panel import Panel, PanelStatus
from app.services.events import PanelCompleted, subscribe
from app.utils.locks import lock_order, lock_pallet, lock_panel
from app.utils.numbering import generate_code

logger = logging.getLogger("paneltrace.pallets")


def validate_capacity(capacity: int | None) -> int:
    if capacity is None:
        return settings.default_pallet_capacity
    if not 1 <= capacity <= settings.max_pallet_capacity:
        raise MalformedInputError(
            f"Pallet capacity must be between 1 and {settings.max_pallet_capacity}",
            details={"field": "capacity"},
        )
    return capacity


def next_free_position(taken: set[tuple[int, int]], grid: int) -> tuple[int, int]:
    """First free (x, y) in row-major order."""
    for y in range(grid):
        for x in range(grid):
            if (x, y) not in taken:
                return x, y
    raise PreconditionViolation("Pallet grid has no free positions", "pallet_capacity")


async def _taken_positions(db: AsyncSession, pallet_id: str) -> set[tuple[int, int]]:
    result = await bounded(db.execute(
        select(PalletAssignment.position_x, PalletAssignment.position_y)
        .where(PalletAssignment.pallet_id == pallet_id)
    ))
    return {(x, y) for x, y in result.all()}


async def _open_pallet(
    db: AsyncSession, order: ManufacturingOrder, capacity: int
) -> Pallet:
    pallet = Pallet(
        pallet_number=await generate_code(db, "pallet", order.order_number),
        order_id=order.id,
        capacity=capacity,
        assigned_count=0,
        status=PalletStatus.IN_PROGRESS.value,
        closed_manually=False,
    )
    db.add(pallet)
    await bounded(db.flush(), "open pallet")
    kind = "standard" if capacity in settings.standard_pallet_capacities else "custom"
    logger.info(
        "Pallet %s opened for order %s (%s capacity %d)",
        pallet.pallet_number, order.order_number, kind, capacity,
    )
    return pallet


async def _current_open_pallet(db: AsyncSession, order_id: str) -> Pallet | None:
    result = await bounded(db.execute(
        select(Pallet.id)
        .where(
            Pallet.order_id == order_id,
            Pallet.status == PalletStatus.IN_PROGRESS.value,
        )
        .order_by(Pallet.created_at, Pallet.pallet_number)
        .limit(1)
    ))
    pallet_id = result.scalar_one_or_none()
    if pallet_id is None:
        return None
    return await lock_pallet(db, pallet_id)


def _close(pallet: Pallet, closed_by: str | None = None, manual: bool = False) -> None:
    pallet.status = PalletStatus.COMPLETED.value
    pallet.completed_at = utcnow()
    pallet.closed_manually = manual
    pallet.closed_by = closed_by


async def assign_to_pallet(
    db: AsyncSession,
    panel_id: str,
    pallet_id: str | None = None,
    capacity: int | None = None,
) -> PalletAssignment:
    """Place a completed panel on a pallet.

    ``capacity`` only applies when a new pallet has to be opened.
    """
    capacity = validate_capacity(capacity)

    panel = await lock_panel(db, panel_id)
    if panel.status != PanelStatus.COMPLETED.value:
        raise NotCompleted(
            f"Panel {panel.barcode} is {panel.status}; only completed panels can be palletized"
        )
    if panel.pallet_id is not None:
        raise AlreadyAssigned(f"Panel {panel.barcode} is already on a pallet")

    if pallet_id is not None:
        pallet = await lock_pallet(db, pallet_id)
        if pallet.order_id != panel.order_id:
            raise PalletOrderMismatch(
                f"Pallet {pallet.pallet_number} belongs to a different order"
            )
    else:
        order = await lock_order(db, panel.order_id)
        pallet = await _current_open_pallet(db, order.id)
        if pallet is None or pallet.status != PalletStatus.IN_PROGRESS.value or pallet.is_full:
            pallet = await _open_pallet(db, order, capacity)

    if pallet.status != PalletStatus.IN_PROGRESS.value:
        raise PalletClosed(f"Pallet {pallet.pallet_number} is closed")
    if pallet.is_full:
        raise PalletFull(
            f"Pallet {pallet.pallet_number} is full ({pallet.assigned_count}/{pallet.capacity})"
        )

    x, y = next_free_position(
        await _taken_positions(db, pallet.id), settings.pallet_grid_size
    )
    assignment = PalletAssignment(
        pallet_id=pallet.id,
        panel_id=panel.id,
        position_x=x,
        position_y=y,
        panel_barcode=panel.barcode,
        wattage=panel.wattage,
        vmp=panel.vmp,
        imp=panel.imp,
        assigned_at=utcnow(),
    )
    db.add(assignment)
    panel.pallet_id = pallet.id
    pallet.assigned_count += 1

    if pallet.is_full:
        _close(pallet)
        logger.info(
            "Pallet %s closed at capacity (%d panels)",
            pallet.pallet_number, pallet.assigned_count,
        )

    try:
        await bounded(db.flush(), "assign panel to pallet")
    except IntegrityError as exc:
        if "position" in str(exc.orig).lower():
            raise PreconditionViolation(
                f"Grid position ({x}, {y}) on pallet {pallet.pallet_number} is taken",
                "unique_grid_position",
            ) from exc
        raise AlreadyAssigned(f"Panel {panel.barcode} is already on a pallet") from exc
    return assignment


async def close_pallet_manually(
    db: AsyncSession, pallet_id: str, closed_by: str, confirm: bool = False
) -> Pallet:
    """Close a pallet below capacity; requires explicit confirmation."""
    pallet = await lock_pallet(db, pallet_id)
    if pallet.status == PalletStatus.COMPLETED.value:
        raise AlreadyClosed(f"Pallet {pallet.pallet_number} is already closed")
    if confirm is not True:
        raise ManualCloseNotConfirmed(
            f"Closing pallet {pallet.pallet_number} below capacity must be confirmed"
        )
    _close(pallet, closed_by=closed_by, manual=True)
    await bounded(db.flush(), "close pallet")
    logger.info(
        "Pallet %s closed manually by %s at %d/%d",
        pallet.pallet_number, closed_by, pallet.assigned_count, pallet.capacity,
    )
    return pallet


# ── Queries ──────────────────────────────────────────────────

async def get_pallet(db: AsyncSession, pallet_id: str) -> Pallet:
    pallet = await bounded(db.get(Pallet, pallet_id))
    if pallet is None:
        raise ResourceNotFoundError("Pallet", pallet_id)
    return pallet


async def list_pallets(
    db: AsyncSession, order_id: str | None = None, status: str | None = None
) -> list[Pallet]:
    stmt = select(Pallet)
    if order_id:
        stmt = stmt.where(Pallet.order_id == order_id)
    if status:
        stmt = stmt.where(Pallet.status == status)
    result = await bounded(db.execute(stmt.order_by(Pallet.created_at)))
    return list(result.scalars().all())


async def pallet_manifest(db: AsyncSession, pallet_id: str) -> dict:
    """Serials, readings, timestamps and wattage statistics for a pallet."""
    pallet = await get_pallet(db, pallet_id)
    result = await bounded(db.execute(
        select(PalletAssignment, Panel.completed_at)
        .join(Panel, Panel.id == PalletAssignment.panel_id)
        .where(PalletAssignment.pallet_id == pallet.id)
        .order_by(PalletAssignment.position_y, PalletAssignment.position_x)
    ))

    panels = []
    wattages = []
    for assignment, completed_at in result.all():
        panels.append({
            "barcode": assignment.panel_barcode,
            "position_x": assignment.position_x,
            "position_y": assignment.position_y,
            "wattage": assignment.wattage,
            "vmp": assignment.vmp,
            "imp": assignment.imp,
            "completed_at": completed_at,
            "assigned_at": assignment.assigned_at,
        })
        if assignment.wattage is not None:
            wattages.append(assignment.wattage)

    stats = None
    if wattages:
        stats = {
            "total": round(sum(wattages), 2),
            "average": round(sum(wattages) / len(wattages), 2),
            "minimum": min(wattages),
            "maximum": max(wattages),
        }

    return {
        "pallet_id": pallet.id,
        "pallet_number": pallet.pallet_number,
        "order_id": pallet.order_id,
        "status": pallet.status,
        "capacity": pallet.capacity,
        "count": len(panels),
        "closed_manually": pallet.closed_manually,
        "closed_by": pallet.closed_by,
        "created_at": pallet.created_at,
        "completed_at": pallet.completed_at,
        "wattage": stats,
        "panels": panels,
    }


async def pallet_label_svg(db: AsyncSession, pallet_id: str) -> bytes:
    """QR label for the pallet as SVG bytes."""
    pallet = await get_pallet(db, pallet_id)
    qr_data = json.dumps({
        "type": "pallet",
        "pallet_id": pallet.id,
        "number": pallet.pallet_number,
        "panels": pallet.assigned_count,
        "capacity": pallet.capacity,
    }, separators=(",", ":"))

    qr = segno.make(qr_data)
    buf = io.BytesIO()
    qr.save(buf, kind="svg", scale=4)
    return buf.getvalue()


# ── Subscriber ───────────────────────────────────────────────

async def finalize_open_pallets(db: AsyncSession, order: ManufacturingOrder) -> list[Pallet]:
    """Close every pallet still open on a finished order as a partial pallet.

    The caller holds the order lock.
    """
    result = await bounded(db.execute(
        select(Pallet.id)
        .where(
            Pallet.order_id == order.id,
            Pallet.status == PalletStatus.IN_PROGRESS.value,
        )
        .order_by(Pallet.created_at, Pallet.pallet_number)
    ))
    closed = []
    for pallet_id in result.scalars().all():
        pallet = await lock_pallet(db, pallet_id)
        if pallet.status != PalletStatus.IN_PROGRESS.value:
            continue
        _close(pallet, closed_by="system", manual=True)
        closed.append(pallet)
        logger.info(
            "Pallet %s closed with order %s at %d/%d",
            pallet.pallet_number, order.order_number,
            pallet.assigned_count, pallet.capacity,
        )
    if closed:
        await bounded(db.flush(), "finalize pallets")
    return closed


@subscribe(PanelCompleted)
async def on_panel_completed(db: AsyncSession, event: PanelCompleted) -> None:
    if settings.auto_palletize:
        await assign_to_pallet(db, event.panel_id)

    order = await lock_order(db, event.order_id)
    if order.status == OrderStatus.COMPLETED.value:
        await finalize_open_pallets(db, order)
