"""Manufacturing order router.

Endpoints:
    POST  /api/orders/                         Create an order
    GET   /api/orders/                         List orders
    GET   /api/orders/{order_id}               Order detail
    GET   /api/orders/{order_id}/progress      Counters and panel breakdown
    PATCH /api/orders/{order_id}/status        Hold / resume / cancel
    GET   /api/orders/{order_id}/alerts        Alerts raised for the order
    POST  /api/orders/alerts/{alert_id}/acknowledge
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.order import (
    AlertAcknowledge,
    AlertOut,
    OrderCreate,
    OrderOut,
    OrderProgress,
    OrderStatusUpdate,
)
from app.services import orders as order_service

router = APIRouter()


@router.post("/", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(body: OrderCreate, db: AsyncSession = Depends(get_db)):
    return await order_service.create_order(
        db,
        order_number=body.order_number,
        panel_type=body.panel_type,
        target_quantity=body.target_quantity,
        start_date=body.start_date,
        end_date=body.end_date,
        customer_name=body.customer_name,
        notes=body.notes,
    )


@router.get("/", response_model=list[OrderOut])
async def list_orders(
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.list_orders(db, status=status)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await order_service.get_order(db, order_id)


@router.get("/{order_id}/progress", response_model=OrderProgress)
async def order_progress(order_id: str, db: AsyncSession = Depends(get_db)):
    return await order_service.order_progress(db, order_id)


@router.patch("/{order_id}/status", response_model=OrderOut)
async def set_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await order_service.set_order_status(db, order_id, body.status)


@router.get("/{order_id}/alerts", response_model=list[AlertOut])
async def list_alerts(
    order_id: str,
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.list_alerts(db, order_id, status=status)


@router.post("/alerts/{alert_id}/acknowledge", response_model=AlertOut)
async def acknowledge_alert(
    alert_id: str,
    body: AlertAcknowledge,
    db: AsyncSession = Depends(get_db),
):
    return await order_service.acknowledge_alert(db, alert_id, body.acknowledged_by)
