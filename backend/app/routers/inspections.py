"""Inspection router.

Endpoints:
    POST /api/inspections/                   Record a station result
    GET  /api/inspections/{inspection_id}    Single inspection
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.inspection import InspectionCreate, InspectionOut, InspectionRecorded
from app.services import inspections as inspection_service
from app.services.panels import get_panel

router = APIRouter()


@router.post("/", response_model=InspectionRecorded, status_code=status.HTTP_201_CREATED)
async def record_inspection(body: InspectionCreate, db: AsyncSession = Depends(get_db)):
    inspection = await inspection_service.record_inspection(
        db,
        panel_id=body.panel_id,
        station_number=body.station,
        inspector_id=body.inspector_id,
        result=body.result,
        failed_criteria=body.failed_criteria,
        notes=body.notes,
        wattage=body.wattage,
        vmp=body.vmp,
        imp=body.imp,
        rework_reason=body.rework_reason,
    )
    panel = await get_panel(db, inspection.panel_id)
    return InspectionRecorded(
        inspection=InspectionOut.model_validate(inspection),
        panel_status=panel.status,
        current_station=panel.current_station,
    )


@router.get("/{inspection_id}", response_model=InspectionOut)
async def get_inspection(inspection_id: str, db: AsyncSession = Depends(get_db)):
    return await inspection_service.get_inspection(db, inspection_id)
