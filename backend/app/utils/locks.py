"""Per-aggregate row locks.

Every mutating workflow operation locks the rows it changes with
``SELECT ... FOR UPDATE`` inside its own transaction, always in the order

    panel  →  order  →  pallet

so two operations never wait on each other in opposite directions.
``populate_existing`` refreshes any copy already in the identity map so
guards are evaluated against the committed row, not a stale read.

Lock reads go through ``bounded`` so a stuck lock surfaces as
TransientFailure instead of blocking forever.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import bounded
from app.middleware.exceptions import ResourceNotFoundError
from app.models.order import ManufacturingOrder
from app.models.pallet import Pallet
from app.models.panel import Panel


async def _lock(db: AsyncSession, model, pk: str, label: str):
    stmt = (
        select(model)
        .where(model.id == pk)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = (await bounded(db.execute(stmt), f"lock {label}")).scalar_one_or_none()
    if row is None:
        raise ResourceNotFoundError(label, pk)
    return row


async def lock_panel(db: AsyncSession, panel_id: str) -> Panel:
    return await _lock(db, Panel, panel_id, "Panel")


async def lock_order(db: AsyncSession, order_id: str) -> ManufacturingOrder:
    return await _lock(db, ManufacturingOrder, order_id, "Manufacturing order")


async def lock_pallet(db: AsyncSession, pallet_id: str) -> Pallet:
    return await _lock(db, Pallet, pallet_id, "Pallet")
