"""Panel router.

Endpoints:
    POST /api/panels/                          Register a panel against an order
    POST /api/panels/scan                      Admit a panel to a station
    GET  /api/panels/                          List panels (filters, paginated)
    GET  /api/panels/by-code/{code}            Panel status by identifier
    GET  /api/panels/by-code/{code}/history    Transition log and inspections
    GET  /api/panels/rework                    Rework queue
    GET  /api/panels/{panel_id}                Panel detail
    PUT  /api/panels/{panel_id}/readings       Record electrical readings
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.panel import Panel
from app.schemas.common import PaginatedResponse
from app.schemas.panel import (
    ElectricalReadings,
    PanelCreate,
    PanelHistoryOut,
    PanelOut,
    PanelScan,
    PanelSummary,
)
from app.services import panels as panel_service
from app.services.rework import list_rework_queue

router = APIRouter()


@router.post("/", response_model=PanelOut, status_code=status.HTTP_201_CREATED)
async def create_panel(body: PanelCreate, db: AsyncSession = Depends(get_db)):
    return await panel_service.create_panel(db, body.code, body.order_id)


@router.post("/scan", response_model=PanelOut)
async def scan_panel(body: PanelScan, db: AsyncSession = Depends(get_db)):
    return await panel_service.scan_panel(db, body.code, body.station, body.order_id)


@router.get("/", response_model=PaginatedResponse[PanelSummary])
async def list_panels(
    order_id: str | None = Query(None),
    status: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items = await panel_service.list_panels(
        db, order_id=order_id, status=status, limit=limit, offset=offset
    )
    count_stmt = select(func.count(Panel.id))
    if order_id:
        count_stmt = count_stmt.where(Panel.order_id == order_id)
    if status:
        count_stmt = count_stmt.where(Panel.status == status)
    total = (await db.execute(count_stmt)).scalar() or 0
    return PaginatedResponse[PanelSummary](
        items=[PanelSummary.model_validate(p) for p in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/rework", response_model=list[PanelSummary])
async def rework_queue(
    order_id: str | None = Query(None),
    station: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await list_rework_queue(db, order_id=order_id, station=station)


@router.get("/by-code/{code}", response_model=PanelOut)
async def panel_by_code(code: str, db: AsyncSession = Depends(get_db)):
    return await panel_service.get_panel_by_code(db, code)


@router.get("/by-code/{code}/history", response_model=PanelHistoryOut)
async def panel_history(code: str, db: AsyncSession = Depends(get_db)):
    return await panel_service.panel_history(db, code)


@router.get("/{panel_id}", response_model=PanelOut)
async def get_panel(panel_id: str, db: AsyncSession = Depends(get_db)):
    return await panel_service.get_panel(db, panel_id)


@router.put("/{panel_id}/readings", response_model=PanelOut)
async def record_readings(
    panel_id: str,
    body: ElectricalReadings,
    db: AsyncSession = Depends(get_db),
):
    return await panel_service.record_electrical_readings(
        db, panel_id, wattage=body.wattage, vmp=body.vmp, imp=body.imp
    )
