"""Inspection recorder.

Accepts one inspection per (panel, station, attempt), validates it against
the lifecycle guards and applies the resulting transition:

  pass             → stamp the station; station 4 completes the panel
  fail / cosmetic  → panel failed, order failed-count +1
  rework           → rework router, panel re-enters at this station

All validation runs before the first mutation.  The inspection row, the
panel change and every subscriber effect (order counters, alerts,
pallet placement, history) are flushed in one transaction.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import bounded, utcnow
from app.middleware.exceptions import (
    DuplicateInspection,
    MalformedInputError,
    ResourceNotFoundError,
)
from app.models.inspection import DOCUMENTED_RESULTS, Inspection, InspectionResult
from app.models.panel import PanelStatus
from app.services import lifecycle
from app.services.events import (
    PanelAdmitted,
    PanelCompleted,
    PanelFailed,
    StationPassed,
    publish,
)
from app.services.rework import route_to_rework
from app.services.stations import Station, get_station
from app.utils.locks import lock_panel

logger = logging.getLogger("paneltrace.inspections")


async def passed_stations(db: AsyncSession, panel_id: str) -> set[int]:
    """Stations holding a Pass inspection for this panel, across all attempts."""
    result = await bounded(db.execute(
        select(Inspection.station_number).where(
            Inspection.panel_id == panel_id,
            Inspection.result == InspectionResult.PASS.value,
        )
    ))
    return set(result.scalars().all())


async def list_inspections(db: AsyncSession, panel_id: str) -> list[Inspection]:
    result = await bounded(db.execute(
        select(Inspection)
        .where(Inspection.panel_id == panel_id)
        .order_by(Inspection.created_at, Inspection.station_number)
    ))
    return list(result.scalars().all())


def _parse_result(result) -> InspectionResult:
    try:
        return InspectionResult(result)
    except ValueError:
        raise MalformedInputError(
            f"Result must be one of {[r.value for r in InspectionResult]}, got {result!r}",
            error_code="INVALID_RESULT",
            details={"field": "result"},
        )


def _check_criteria(
    station: Station, line: str, result: InspectionResult, criteria: list[str]
) -> None:
    if result == InspectionResult.PASS:
        if criteria:
            raise MalformedInputError(
                "A Pass inspection cannot list failed criteria",
                error_code="INVALID_CRITERIA",
                details={"field": "failed_criteria"},
            )
        return
    unknown = sorted(set(criteria) - station.fail_criteria_ids(line))
    if unknown:
        raise MalformedInputError(
            f"Criteria not applicable to station {station.number} on line {line}: "
            f"{', '.join(unknown)}",
            error_code="INVALID_CRITERIA",
            details={"field": "failed_criteria", "invalid": unknown},
        )


async def record_inspection(
    db: AsyncSession,
    panel_id: str,
    station_number: int,
    inspector_id: str,
    result,
    failed_criteria: list[str] | None = None,
    notes: str | None = None,
    wattage: float | None = None,
    vmp: float | None = None,
    imp: float | None = None,
    rework_reason: str | None = None,
) -> Inspection:
    """Record one station result and apply its transition atomically.

    Raises:
        UnknownStationError     station outside 1–4
        MalformedInputError     bad result, criteria or missing notes
        ValueOutOfRange         electrical reading outside physical bounds
        PreconditionViolation   progression, duplicate, terminal, rework or
                                electrical-data guards
    """
    # ── Validate input (no state read yet) ───────────────────
    station = get_station(station_number)
    outcome = _parse_result(result)
    inspector_id = (inspector_id or "").strip()
    if not inspector_id:
        raise MalformedInputError(
            "Inspector is required", details={"field": "inspector_id"}
        )
    notes = (notes or "").strip()
    if outcome in DOCUMENTED_RESULTS and not notes:
        raise MalformedInputError(
            f"Notes are required for a {outcome.value} result",
            error_code="NOTES_REQUIRED",
            details={"field": "notes"},
        )
    criteria = list(dict.fromkeys(failed_criteria or []))
    readings = lifecycle.validate_readings(wattage, vmp, imp)

    # ── Validate against current state (panel locked) ────────
    panel = await lock_panel(db, panel_id)
    _check_criteria(station, panel.line, outcome, criteria)

    passed = await passed_stations(db, panel.id)
    lifecycle.check_admission(panel, station.number, passed)

    attempt = panel.rework_count
    existing = await bounded(db.execute(
        select(Inspection.id).where(
            Inspection.panel_id == panel.id,
            Inspection.station_number == station.number,
            Inspection.attempt == attempt,
        )
    ))
    if existing.first() is not None:
        raise DuplicateInspection(
            f"Panel {panel.barcode} already has an inspection at station "
            f"{station.number} for this attempt"
        )

    if outcome == InspectionResult.PASS and station.is_final:
        lifecycle.ensure_can_complete(panel, readings)
    if outcome == InspectionResult.REWORK:
        lifecycle.ensure_rework_allowed(panel)

    # ── Apply ────────────────────────────────────────────────
    now = utcnow()
    events = []

    admitted_from = lifecycle.admit(panel, station.number, passed)
    if admitted_from is not None:
        events.append(PanelAdmitted(
            panel_id=panel.id, order_id=panel.order_id, station=station.number,
            from_status=admitted_from, to_status=PanelStatus.IN_PROGRESS.value,
        ))
    lifecycle.apply_readings(panel, readings)

    inspection = Inspection(
        panel_id=panel.id,
        station_number=station.number,
        attempt=attempt,
        inspector_id=inspector_id,
        result=outcome.value,
        failed_criteria=criteria,
        notes=notes or None,
        created_at=now,
        **readings,
    )

    if outcome == InspectionResult.PASS:
        completed = lifecycle.pass_station(panel, station.number, now)
        events.append(StationPassed(
            panel_id=panel.id, order_id=panel.order_id, station=station.number,
            from_status=PanelStatus.IN_PROGRESS.value, to_status=panel.status,
            inspector_id=inspector_id, attempt=attempt,
        ))
        if completed:
            events.append(PanelCompleted(
                panel_id=panel.id, order_id=panel.order_id, station=station.number,
                from_status=PanelStatus.IN_PROGRESS.value, to_status=panel.status,
                wattage=panel.wattage, vmp=panel.vmp, imp=panel.imp,
            ))
            logger.info("Panel %s completed (%.1f W)", panel.barcode, panel.wattage)
        else:
            logger.info("Panel %s passed station %d", panel.barcode, station.number)
    elif outcome == InspectionResult.REWORK:
        reason = (rework_reason or "").strip() or notes
        events.append(route_to_rework(panel, station.number, reason, criteria))
    else:
        lifecycle.fail(panel, notes)
        events.append(PanelFailed(
            panel_id=panel.id, order_id=panel.order_id, station=station.number,
            from_status=PanelStatus.IN_PROGRESS.value, to_status=panel.status,
            result=outcome.value, notes=notes, failed_criteria=tuple(criteria),
        ))
        logger.warning(
            "Panel %s failed at station %d (%s): %s",
            panel.barcode, station.number, outcome.value, notes,
        )

    lifecycle.check_invariants(panel)
    db.add(inspection)
    try:
        await bounded(db.flush(), "record inspection")
    except IntegrityError as exc:
        raise DuplicateInspection(
            f"Panel {panel.barcode} already has an inspection at station "
            f"{station.number} for this attempt"
        ) from exc

    for event in events:
        await publish(db, event)
    return inspection


async def get_inspection(db: AsyncSession, inspection_id: str) -> Inspection:
    inspection = await bounded(db.get(Inspection, inspection_id))
    if inspection is None:
        raise ResourceNotFoundError("Inspection", inspection_id)
    return inspection
