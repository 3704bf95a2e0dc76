"""Manufacturing order tracker.

Owns the order aggregate.  Panels never write order counters themselves:
the tracker subscribes to PanelCompleted / PanelFailed and applies each
increment under the order's row lock, so concurrent completions can
neither lose an update nor close the order twice.

  completed +1  → low-inventory alert (once), auto-close at target
  failed +1     → high-failure-rate alert (once), order stays open
"""

import logging
import re
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import bounded, utcnow
from app.middleware.exceptions import (
    MalformedInputError,
    OrderClosed,
    OrderCompletionForbidden,
    OrderNotAccepting,
    PanelTypeMismatch,
    PreconditionViolation,
    ResourceNotFoundError,
)
from app.models.order import (
    ManufacturingOrder,
    OrderAlert,
    OrderStatus,
    TERMINAL_ORDER_STATUSES,
)
from app.models.panel import Panel, PanelStatus
from app.services.events import PanelCompleted, PanelFailed, subscribe
from app.services.stations import STATION_NUMBERS
from app.utils.barcode import PANEL_TYPES, line_for
from app.utils.locks import lock_order

logger = logging.getLogger("paneltrace.orders")

ORDER_NUMBER_RE = re.compile(r"^[A-Z0-9-]{3,}$")
MIN_TARGET = 1
MAX_TARGET = 10_000
LOW_INVENTORY = "low_inventory"
HIGH_FAILURE_RATE = "high_failure_rate"


# ── Creation ─────────────────────────────────────────────────

def _validate_dates(start_date: date, end_date: date, today: date) -> None:
    if start_date > end_date:
        raise MalformedInputError(
            "Start date must be on or before end date",
            error_code="INVALID_DATE_RANGE",
            details={"field": "start_date"},
        )
    earliest = today - timedelta(days=settings.order_start_window_days)
    if start_date < earliest:
        raise MalformedInputError(
            f"Start date cannot be before {earliest.isoformat()}",
            error_code="INVALID_DATE_RANGE",
            details={"field": "start_date"},
        )
    latest = today + timedelta(days=settings.order_end_window_days)
    if end_date > latest:
        raise MalformedInputError(
            f"End date cannot be after {latest.isoformat()}",
            error_code="INVALID_DATE_RANGE",
            details={"field": "end_date"},
        )


async def create_order(
    db: AsyncSession,
    order_number: str,
    panel_type: int,
    target_quantity: int,
    start_date: date,
    end_date: date,
    customer_name: str | None = None,
    notes: str | None = None,
    today: date | None = None,
) -> ManufacturingOrder:
    """Create an order; the date range is immutable afterwards."""
    order_number = (order_number or "").strip().upper()
    if not ORDER_NUMBER_RE.match(order_number):
        raise MalformedInputError(
            "Order number must be at least 3 characters of A-Z, 0-9 or '-'",
            details={"field": "order_number"},
        )
    if panel_type not in PANEL_TYPES:
        raise MalformedInputError(
            f"Panel type must be one of {', '.join(str(t) for t in PANEL_TYPES)}",
            details={"field": "panel_type"},
        )
    if not MIN_TARGET <= target_quantity <= MAX_TARGET:
        raise MalformedInputError(
            f"Target quantity must be between {MIN_TARGET} and {MAX_TARGET}",
            details={"field": "target_quantity"},
        )
    _validate_dates(start_date, end_date, today or date.today())

    order = ManufacturingOrder(
        order_number=order_number,
        panel_type=panel_type,
        target_quantity=target_quantity,
        completed_count=0,
        failed_count=0,
        low_inventory_alerted=False,
        status=OrderStatus.PENDING.value,
        start_date=start_date,
        end_date=end_date,
        customer_name=customer_name,
        notes=notes,
    )
    db.add(order)
    try:
        await bounded(db.flush(), "create order")
    except IntegrityError as exc:
        raise PreconditionViolation(
            f"Order number {order_number} already exists", "unique_order_number"
        ) from exc

    logger.info(
        "Order %s created: %d × type %d (line %s)",
        order_number, target_quantity, panel_type, line_for(panel_type),
    )
    return order


# ── Queries ──────────────────────────────────────────────────

async def get_order(db: AsyncSession, order_id: str) -> ManufacturingOrder:
    order = await bounded(db.get(ManufacturingOrder, order_id))
    if order is None:
        raise ResourceNotFoundError("Manufacturing order", order_id)
    return order


async def list_orders(
    db: AsyncSession, status: str | None = None
) -> list[ManufacturingOrder]:
    stmt = select(ManufacturingOrder)
    if status:
        stmt = stmt.where(ManufacturingOrder.status == status)
    result = await bounded(db.execute(stmt.order_by(ManufacturingOrder.created_at.desc())))
    return list(result.scalars().all())


async def order_progress(db: AsyncSession, order_id: str) -> dict:
    """Read-only projection of an order's counters and panel breakdown."""
    order = await get_order(db, order_id)
    rows = await bounded(db.execute(
        select(Panel.status, func.count(Panel.id))
        .where(Panel.order_id == order.id)
        .group_by(Panel.status)
    ))
    by_status = {status.value: 0 for status in PanelStatus}
    for status, count in rows.all():
        by_status[status] = count

    rows = await bounded(db.execute(
        select(Panel.current_station, func.count(Panel.id))
        .where(
            Panel.order_id == order.id,
            Panel.status == PanelStatus.IN_PROGRESS.value,
        )
        .group_by(Panel.current_station)
    ))
    at_station = {number: 0 for number in STATION_NUMBERS}
    for station, count in rows.all():
        if station in at_station:
            at_station[station] = count

    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "panel_type": order.panel_type,
        "line": line_for(order.panel_type),
        "target_quantity": order.target_quantity,
        "completed_count": order.completed_count,
        "failed_count": order.failed_count,
        "remaining": order.remaining,
        "progress_percent": order.progress_percent,
        "failure_rate": order.failure_rate,
        "panels_by_status": by_status,
        "at_station": at_station,
        "low_inventory_alerted": order.low_inventory_alerted,
        "start_date": order.start_date,
        "end_date": order.end_date,
        "started_at": order.started_at,
        "completed_at": order.completed_at,
    }


# ── Status changes ───────────────────────────────────────────

async def set_order_status(
    db: AsyncSession, order_id: str, status: str
) -> ManufacturingOrder:
    """Hold, resume or cancel an order.

    ``completed`` is reachable only through the tracker when the completed
    count reaches the target; requesting it here is always rejected.
    """
    try:
        target = OrderStatus(status)
    except ValueError:
        raise MalformedInputError(
            f"Unknown order status {status!r}", details={"field": "status"}
        )
    if target == OrderStatus.COMPLETED:
        raise OrderCompletionForbidden(
            "Orders complete automatically when the target quantity is reached"
        )

    order = await lock_order(db, order_id)
    current = OrderStatus(order.status)
    if current in TERMINAL_ORDER_STATUSES:
        raise OrderClosed(f"Order {order.order_number} is {current.value}")
    if target == current:
        return order
    if target == OrderStatus.PENDING:
        raise MalformedInputError(
            "An order cannot be moved back to pending", details={"field": "status"}
        )

    order.status = target.value
    if target == OrderStatus.IN_PROGRESS and order.started_at is None:
        order.started_at = utcnow()
    await bounded(db.flush(), "update order status")
    logger.info(
        "Order %s status %s → %s", order.order_number, current.value, target.value
    )
    return order


# ── Panel acceptance ─────────────────────────────────────────

async def accept_panel(
    db: AsyncSession, order_id: str, panel_type: int
) -> ManufacturingOrder:
    """Lock the order and check it can take one more panel of this type."""
    order = await lock_order(db, order_id)
    status = OrderStatus(order.status)
    if status in TERMINAL_ORDER_STATUSES:
        raise OrderClosed(f"Order {order.order_number} is {status.value}")
    if status == OrderStatus.ON_HOLD:
        raise OrderNotAccepting(f"Order {order.order_number} is on hold")
    if panel_type != order.panel_type:
        raise PanelTypeMismatch(
            f"Order {order.order_number} is for type {order.panel_type} panels, "
            f"not type {panel_type}"
        )

    active = (await bounded(db.execute(
        select(func.count(Panel.id)).where(
            Panel.order_id == order.id,
            Panel.status != PanelStatus.FAILED.value,
        )
    ))).scalar() or 0
    if active >= order.target_quantity:
        raise OrderNotAccepting(
            f"Order {order.order_number} already has {active} active panels "
            f"for a target of {order.target_quantity}"
        )

    if status == OrderStatus.PENDING:
        order.status = OrderStatus.IN_PROGRESS.value
        order.started_at = utcnow()
    return order


# ── Subscribers ──────────────────────────────────────────────

async def _raise_low_inventory_alert(db: AsyncSession, order: ManufacturingOrder) -> None:
    order.low_inventory_alerted = True
    db.add(OrderAlert(
        order_id=order.id,
        alert_type=LOW_INVENTORY,
        severity="warning",
        title=f"Order {order.order_number} nearing target",
        message=(
            f"{order.remaining} panels remaining of {order.target_quantity} "
            f"(threshold {settings.low_inventory_threshold})"
        ),
        threshold_value=settings.low_inventory_threshold,
        current_value=order.remaining,
        status="open",
    ))
    logger.warning(
        "Low inventory: order %s has %d panels remaining",
        order.order_number, order.remaining,
    )


@subscribe(PanelCompleted)
async def on_panel_completed(db: AsyncSession, event: PanelCompleted) -> None:
    order = await lock_order(db, event.order_id)
    if order.completed_count >= order.target_quantity:
        raise PreconditionViolation(
            f"Order {order.order_number} is already at its target of "
            f"{order.target_quantity}",
            "order_completed_within_target",
        )
    order.completed_count += 1

    if (
        not order.low_inventory_alerted
        and 0 < order.remaining <= settings.low_inventory_threshold
    ):
        await _raise_low_inventory_alert(db, order)

    # a cancelled order keeps counting panels already on the line but stays cancelled
    if (
        order.completed_count == order.target_quantity
        and OrderStatus(order.status) not in TERMINAL_ORDER_STATUSES
    ):
        order.status = OrderStatus.COMPLETED.value
        order.completed_at = utcnow()
        logger.info(
            "Order %s completed: %d/%d panels",
            order.order_number, order.completed_count, order.target_quantity,
        )
    await bounded(db.flush(), "update order counters")


async def _has_alert(db: AsyncSession, order_id: str, alert_type: str) -> bool:
    result = await bounded(db.execute(
        select(OrderAlert.id)
        .where(OrderAlert.order_id == order_id, OrderAlert.alert_type == alert_type)
        .limit(1)
    ))
    return result.scalar_one_or_none() is not None


@subscribe(PanelFailed)
async def on_panel_failed(db: AsyncSession, event: PanelFailed) -> None:
    order = await lock_order(db, event.order_id)
    order.failed_count += 1

    processed = order.completed_count + order.failed_count
    if (
        processed >= settings.high_failure_min_samples
        and order.failure_rate >= settings.high_failure_rate_threshold
        and not await _has_alert(db, order.id, HIGH_FAILURE_RATE)
    ):
        db.add(OrderAlert(
            order_id=order.id,
            alert_type=HIGH_FAILURE_RATE,
            severity="critical",
            title=f"High failure rate on order {order.order_number}",
            message=(
                f"{order.failed_count} of {processed} panels failed "
                f"({order.failure_rate}%, threshold "
                f"{settings.high_failure_rate_threshold}%)"
            ),
            threshold_value=round(settings.high_failure_rate_threshold),
            current_value=round(order.failure_rate),
            status="open",
        ))
        logger.warning(
            "High failure rate: order %s at %.2f%% (%d/%d)",
            order.order_number, order.failure_rate, order.failed_count, processed,
        )
    await bounded(db.flush(), "update order counters")


# ── Alerts ───────────────────────────────────────────────────

async def list_alerts(
    db: AsyncSession, order_id: str, status: str | None = None
) -> list[OrderAlert]:
    await get_order(db, order_id)
    stmt = select(OrderAlert).where(OrderAlert.order_id == order_id)
    if status:
        stmt = stmt.where(OrderAlert.status == status)
    result = await bounded(db.execute(stmt.order_by(OrderAlert.created_at)))
    return list(result.scalars().all())


async def acknowledge_alert(
    db: AsyncSession, alert_id: str, acknowledged_by: str
) -> OrderAlert:
    alert = await bounded(db.get(OrderAlert, alert_id))
    if alert is None:
        raise ResourceNotFoundError("Order alert", alert_id)
    if alert.status != "acknowledged":
        alert.status = "acknowledged"
        alert.acknowledged_by = acknowledged_by
        alert.acknowledged_at = utcnow()
        await bounded(db.flush(), "acknowledge alert")
    return alert
