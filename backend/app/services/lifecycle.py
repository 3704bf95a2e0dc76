"""Panel lifecycle state machine.

    pending ──admit(1)──▶ in_progress ──pass(4)──▶ completed
                              │  ▲
                    fail /    │  │ re-admit at the
                    cosmetic  │  │ failed station
                              ▼  │
                  failed ◀────┴─ rework

Every transition is a plain function that validates first and mutates
second: when a guard fails the panel is left exactly as it was.  Callers
hold the panel's row lock for the duration.

The set of stations with a Pass inspection on record drives progression:
the next expected station is the lowest one without a Pass.
"""

import math
from datetime import datetime

from app.config import settings
from app.middleware.exceptions import (
    DuplicateInspection,
    ElectricalDataMissing,
    MalformedInputError,
    PanelTerminal,
    PreconditionViolation,
    ReworkLimitReached,
    ReworkReentryMismatch,
    StationOutOfOrder,
    ValueOutOfRange,
)
from app.models.panel import Panel, PanelStatus, TERMINAL_PANEL_STATUSES
from app.services.stations import (
    ELECTRICAL_BOUNDS,
    FINAL_STATION,
    STATION_NUMBERS,
)


# ── Readings ─────────────────────────────────────────────────

def validate_readings(
    wattage: float | None = None,
    vmp: float | None = None,
    imp: float | None = None,
    require_all: bool = False,
) -> dict[str, float]:
    """Range-check supplied readings; out-of-range values are rejected, never clamped."""
    supplied = {"wattage": wattage, "vmp": vmp, "imp": imp}
    readings = {}
    for name, value in supplied.items():
        if value is None:
            if require_all:
                raise MalformedInputError(
                    f"{name} is required", details={"field": name}
                )
            continue
        lower, upper = ELECTRICAL_BOUNDS[name]
        value = float(value)
        if math.isnan(value) or not lower < value <= upper:
            raise ValueOutOfRange(name, value, lower, upper)
        readings[name] = value
    return readings


# ── Progression ──────────────────────────────────────────────

def next_expected_station(passed: set[int]) -> int | None:
    """Lowest station without a Pass inspection, or None when all four passed."""
    for number in STATION_NUMBERS:
        if number not in passed:
            return number
    return None


def check_admission(panel: Panel, station: int, passed: set[int]) -> None:
    """Raise unless ``station`` is where this panel may be inspected next."""
    status = PanelStatus(panel.status)
    if status in TERMINAL_PANEL_STATUSES:
        raise PanelTerminal(f"Panel {panel.barcode} is {status.value}; no further inspections")

    if status == PanelStatus.REWORK and station != panel.current_station:
        raise ReworkReentryMismatch(
            f"Panel {panel.barcode} is in rework and must re-enter at station "
            f"{panel.current_station}, not station {station}"
        )

    expected = next_expected_station(passed)
    if expected is None or station < expected:
        raise DuplicateInspection(
            f"Panel {panel.barcode} has already passed station {station}"
        )
    if station > expected:
        raise StationOutOfOrder(
            f"Panel {panel.barcode} cannot be inspected at station {station} "
            f"before passing station {expected}"
        )


def admit(panel: Panel, station: int, passed: set[int]) -> str | None:
    """Bring the panel to ``station``; returns the previous status if it changed."""
    check_admission(panel, station, passed)
    previous = panel.status
    panel.current_station = station
    if previous == PanelStatus.IN_PROGRESS.value:
        return None
    # pending at station 1, or rework re-entering at its failed station
    panel.status = PanelStatus.IN_PROGRESS.value
    return previous


# ── Result transitions ───────────────────────────────────────

def ensure_can_complete(panel: Panel, readings: dict[str, float]) -> None:
    """A final-station Pass needs all three readings, supplied now or stored earlier."""
    merged = {
        "wattage": readings.get("wattage", panel.wattage),
        "vmp": readings.get("vmp", panel.vmp),
        "imp": readings.get("imp", panel.imp),
    }
    missing = sorted(k for k, v in merged.items() if v is None)
    if missing:
        raise ElectricalDataMissing(
            f"Panel {panel.barcode} cannot complete without electrical readings: "
            f"{', '.join(missing)}"
        )


def ensure_rework_allowed(panel: Panel) -> None:
    if panel.rework_count >= settings.max_rework_attempts:
        raise ReworkLimitReached(
            f"Panel {panel.barcode} has been reworked {panel.rework_count} times; "
            f"the limit is {settings.max_rework_attempts}. Record a Fail instead."
        )


def apply_readings(panel: Panel, readings: dict[str, float]) -> None:
    for name, value in readings.items():
        setattr(panel, name, value)


def pass_station(panel: Panel, station: int, now: datetime) -> bool:
    """Stamp the station; returns True when this Pass completed the panel."""
    previous = [
        panel.station_completed_at(n) for n in STATION_NUMBERS if n < station
    ]
    floor = max((ts for ts in previous if ts is not None), default=now)
    panel.set_station_completed_at(station, max(now, floor))

    if station == FINAL_STATION:
        panel.status = PanelStatus.COMPLETED.value
        panel.current_station = None
        panel.completed_at = panel.station_completed_at(FINAL_STATION)
        return True

    panel.current_station = station + 1
    return False


def fail(panel: Panel, notes: str) -> None:
    panel.status = PanelStatus.FAILED.value
    panel.quality_notes = notes


def send_to_rework(panel: Panel, station: int, reason: str) -> None:
    ensure_rework_allowed(panel)
    panel.status = PanelStatus.REWORK.value
    panel.current_station = station
    panel.rework_reason = reason
    panel.rework_count += 1


# ── Invariants ───────────────────────────────────────────────

def check_invariants(panel: Panel) -> None:
    """Final gate before flush; a failure here rolls the whole operation back."""
    status = PanelStatus(panel.status)

    stamps = [panel.station_completed_at(n) for n in STATION_NUMBERS]
    present = [ts for ts in stamps if ts is not None]
    if any(b < a for a, b in zip(present, present[1:])):
        raise PreconditionViolation(
            f"Panel {panel.barcode} station timestamps regress", "monotonic_timestamps"
        )
    seen_gap = False
    for ts in stamps:
        if ts is None:
            seen_gap = True
        elif seen_gap:
            raise PreconditionViolation(
                f"Panel {panel.barcode} has a station stamped before an earlier one",
                "station_progression",
            )

    if status == PanelStatus.PENDING and panel.current_station is not None:
        raise PreconditionViolation(
            f"Pending panel {panel.barcode} cannot hold a station", "pending_has_no_station"
        )
    if status == PanelStatus.IN_PROGRESS and panel.current_station is None:
        raise PreconditionViolation(
            f"Panel {panel.barcode} is in progress without a station",
            "in_progress_has_station",
        )
    if status == PanelStatus.COMPLETED:
        if None in stamps:
            raise PreconditionViolation(
                f"Panel {panel.barcode} completed with unstamped stations",
                "completed_requires_all_stations",
            )
        ensure_can_complete(panel, {})
        validate_readings(panel.wattage, panel.vmp, panel.imp, require_all=True)
    if status == PanelStatus.REWORK and not (panel.rework_reason or "").strip():
        raise PreconditionViolation(
            f"Panel {panel.barcode} is in rework without a reason", "rework_requires_reason"
        )
    if status == PanelStatus.FAILED and not (panel.quality_notes or "").strip():
        raise PreconditionViolation(
            f"Panel {panel.barcode} failed without notes", "failure_requires_notes"
        )
