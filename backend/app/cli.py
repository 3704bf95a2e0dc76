"""Management CLI.

Usage:
    python -m app.cli decode <code>              # Decode a panel identifier
    python -m app.cli stations <A|B>             # Criteria catalogue for a line
    python -m app.cli order-progress <order_id>  # Counters and status
    python -m app.cli migrate                    # alembic upgrade head
"""

import asyncio
import subprocess
import sys
from pathlib import Path

from app.database import session_scope
from app.middleware.exceptions import PanelTraceException
from app.services.orders import order_progress
from app.services.stations import station_catalogue
from app.utils.barcode import decode_identifier

BACKEND_DIR = Path(__file__).resolve().parent.parent


def decode(code: str) -> int:
    try:
        identifier = decode_identifier(code)
    except PanelTraceException as exc:
        print(f"  INVALID ({exc.details['field']}): {exc.message}")
        return 1
    print(f"  Code:       {identifier.code}")
    print(f"  Year:       20{identifier.year:02d}")
    print(f"  Frame:      {identifier.frame_type}")
    print(f"  Backsheet:  {identifier.backsheet_type}")
    print(f"  Panel type: {identifier.panel_type}")
    print(f"  Sequence:   {identifier.sequence}")
    print(f"  Line:       {identifier.line}")
    return 0


def stations(line: str) -> int:
    try:
        catalogue = station_catalogue(line.upper())
    except PanelTraceException as exc:
        print(f"  {exc.message}")
        return 1
    for station in catalogue:
        print(f"  Station {station['number']}: {station['name']} ({station['stage']})")
        for criterion in station["criteria"]:
            if criterion["kind"] == "not_applicable":
                continue
            print(f"    [{criterion['outcome']:<7}] {criterion['id']}")
    return 0


async def _order_progress(order_id: str) -> dict:
    async with session_scope() as db:
        return await order_progress(db, order_id)


def show_order_progress(order_id: str) -> int:
    try:
        progress = asyncio.run(_order_progress(order_id))
    except PanelTraceException as exc:
        print(f"  {exc.message}")
        return 1
    print(f"  Order {progress['order_number']} ({progress['status']})")
    print(
        f"  Completed {progress['completed_count']}/{progress['target_quantity']} "
        f"({progress['progress_percent']}%), failed {progress['failed_count']}, "
        f"remaining {progress['remaining']}, failure rate {progress['failure_rate']}%"
    )
    for status, count in progress["panels_by_status"].items():
        print(f"    {status:<12} {count}")
    for station, count in progress["at_station"].items():
        print(f"    station {station}    {count}")
    return 0


def migrate() -> int:
    """Run Alembic upgrade head."""
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        cwd=BACKEND_DIR, capture_output=True, text=True,
    )
    if result.returncode != 0:
        print(f"  FAILED: {result.stderr}")
    else:
        print("  OK")
    return result.returncode


USAGE = "Usage: python -m app.cli [decode <code>|stations <A|B>|order-progress <order_id>|migrate]"


def main(argv: list[str]) -> int:
    cmd = argv[0] if argv else ""
    arg = argv[1] if len(argv) > 1 else None
    if cmd == "decode" and arg:
        return decode(arg)
    if cmd == "stations" and arg:
        return stations(arg)
    if cmd == "order-progress" and arg:
        return show_order_progress(arg)
    if cmd == "migrate":
        return migrate()
    print(USAGE)
    return 2


def run() -> None:
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
