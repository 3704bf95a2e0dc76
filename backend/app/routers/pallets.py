"""Pallet router.

Endpoints:
    POST /api/pallets/assign                   Place a completed panel on a pallet
    GET  /api/pallets/                         List pallets (filters)
    GET  /api/pallets/{pallet_id}              Pallet detail
    POST /api/pallets/{pallet_id}/close        Close below capacity (confirmed)
    GET  /api/pallets/{pallet_id}/manifest     Serials, readings, wattage stats
    GET  /api/pallets/{pallet_id}/qr           QR label SVG
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.pallet import (
    PalletAssignmentOut,
    PalletAssignRequest,
    PalletCloseRequest,
    PalletManifest,
    PalletOut,
)
from app.services import pallets as pallet_service

router = APIRouter()


@router.post(
    "/assign", response_model=PalletAssignmentOut, status_code=status.HTTP_201_CREATED
)
async def assign_panel(body: PalletAssignRequest, db: AsyncSession = Depends(get_db)):
    return await pallet_service.assign_to_pallet(
        db, body.panel_id, pallet_id=body.pallet_id, capacity=body.capacity
    )


@router.get("/", response_model=list[PalletOut])
async def list_pallets(
    order_id: str | None = Query(None),
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await pallet_service.list_pallets(db, order_id=order_id, status=status)


@router.get("/{pallet_id}", response_model=PalletOut)
async def get_pallet(pallet_id: str, db: AsyncSession = Depends(get_db)):
    return await pallet_service.get_pallet(db, pallet_id)


@router.post("/{pallet_id}/close", response_model=PalletOut)
async def close_pallet(
    pallet_id: str,
    body: PalletCloseRequest,
    db: AsyncSession = Depends(get_db),
):
    return await pallet_service.close_pallet_manually(
        db, pallet_id, closed_by=body.closed_by, confirm=body.confirm
    )


@router.get("/{pallet_id}/manifest", response_model=PalletManifest)
async def pallet_manifest(pallet_id: str, db: AsyncSession = Depends(get_db)):
    return await pallet_service.pallet_manifest(db, pallet_id)


@router.get("/{pallet_id}/qr")
async def pallet_qr(pallet_id: str, db: AsyncSession = Depends(get_db)):
    svg = await pallet_service.pallet_label_svg(db, pallet_id)
    return Response(content=svg, media_type="image/svg+xml")
