"""Sequential code generation.

Format tokens:
  {order}   → owning order number
  {seq:N}   → zero-padded sequence number, N digits, per prefix

Default formats:
  pallet:   PAL-{order}-{seq:3}

Callers hold the parent aggregate's row lock, so counting existing codes
under the same prefix cannot race with another writer.
"""

import re

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import bounded
from app.models.pallet import Pallet

DEFAULT_FORMATS = {
    "pallet": "PAL-{order}-{seq:3}",
}

# Entity type → code column for counting
ENTITY_COLUMN_MAP = {
    "pallet": Pallet.pallet_number,
}


def _build_prefix(fmt: str, order_number: str) -> str:
    """Everything before {seq:N}, used to count existing codes."""
    prefix = fmt.replace("{order}", order_number)
    return re.sub(r"\{seq:\d+\}.*$", "", prefix)


async def _count_existing(db: AsyncSession, entity: str, prefix: str) -> int:
    column = ENTITY_COLUMN_MAP[entity]
    result = await bounded(db.execute(
        select(func.count()).where(column.like(f"{prefix}%"))
    ))
    return result.scalar() or 0


async def generate_code(db: AsyncSession, entity: str, order_number: str) -> str:
    """Generate the next code for ``entity``, e.g. "PAL-MO-2025-001-003"."""
    fmt = DEFAULT_FORMATS[entity]
    prefix = _build_prefix(fmt, order_number)
    seq_num = await _count_existing(db, entity, prefix) + 1

    seq_match = re.search(r"\{seq:(\d+)\}", fmt)
    seq_width = int(seq_match.group(1)) if seq_match else 3

    code = fmt.replace("{order}", order_number)
    return re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", code)
