"""Tests for the panel lifecycle state machine (no database)."""

import math
from datetime import datetime, timedelta

import pytest

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
from app.models.panel import Panel, PanelStatus
from app.services import lifecycle

T0 = datetime(2025, 6, 1, 8, 0, 0)


def make_panel(status=PanelStatus.PENDING, current_station=None, **kwargs) -> Panel:
    kwargs.setdefault("rework_count", 0)
    return Panel(
        barcode="CRS25WT3600042",
        company_tag="CRS",
        year=25,
        frame_type="silver",
        backsheet_type="transparent",
        panel_type=36,
        sequence=42,
        status=status.value,
        current_station=current_station,
        order_id="order-1",
        **kwargs,
    )


@pytest.mark.unit
class TestReadings:

    def test_accepts_values_within_bounds(self):
        assert lifecycle.validate_readings(1000, 100, 20) == {
            "wattage": 1000.0, "vmp": 100.0, "imp": 20.0,
        }

    def test_skips_missing_values(self):
        assert lifecycle.validate_readings(wattage=410.5) == {"wattage": 410.5}

    @pytest.mark.parametrize("name,value", [
        ("wattage", 0), ("wattage", 1000.1), ("vmp", -1), ("vmp", 101),
        ("imp", 0), ("imp", 20.5), ("wattage", math.nan),
    ])
    def test_rejects_out_of_range(self, name, value):
        with pytest.raises(ValueOutOfRange) as exc_info:
            lifecycle.validate_readings(**{name: value})
        assert exc_info.value.error_code == "VALUE_OUT_OF_RANGE"
        assert exc_info.value.details["field"] == name

    def test_require_all(self):
        with pytest.raises(MalformedInputError):
            lifecycle.validate_readings(400, 40, require_all=True)


@pytest.mark.unit
class TestAdmission:

    def test_next_expected_station(self):
        assert lifecycle.next_expected_station(set()) == 1
        assert lifecycle.next_expected_station({1, 2}) == 3
        assert lifecycle.next_expected_station({1, 2, 3, 4}) is None

    def test_pending_panel_admitted_at_station_one(self):
        panel = make_panel()
        assert lifecycle.admit(panel, 1, set()) == "pending"
        assert panel.status == "in_progress"
        assert panel.current_station == 1

    def test_pending_panel_cannot_skip_ahead(self):
        panel = make_panel()
        with pytest.raises(StationOutOfOrder):
            lifecycle.admit(panel, 3, set())
        assert panel.status == "pending"
        assert panel.current_station is None

    def test_in_progress_readmission_is_silent(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=2)
        assert lifecycle.admit(panel, 2, {1}) is None

    def test_passed_station_is_a_duplicate(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=3)
        with pytest.raises(DuplicateInspection):
            lifecycle.check_admission(panel, 2, {1, 2})

    @pytest.mark.parametrize("status", [PanelStatus.COMPLETED, PanelStatus.FAILED])
    def test_terminal_panels_are_rejected(self, status):
        panel = make_panel(status)
        with pytest.raises(PanelTerminal):
            lifecycle.check_admission(panel, 1, set())

    def test_rework_reenters_only_at_failed_station(self):
        panel = make_panel(PanelStatus.REWORK, current_station=2, rework_reason="bent frame")
        with pytest.raises(ReworkReentryMismatch):
            lifecycle.check_admission(panel, 1, {1})
        assert lifecycle.admit(panel, 2, {1}) == "rework"
        assert panel.status == "in_progress"


@pytest.mark.unit
class TestTransitions:

    def test_pass_advances_station(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=1)
        assert lifecycle.pass_station(panel, 1, T0) is False
        assert panel.current_station == 2
        assert panel.station_1_completed_at == T0

    def test_timestamps_never_regress(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=2)
        panel.station_1_completed_at = T0
        lifecycle.pass_station(panel, 2, T0 - timedelta(seconds=5))
        assert panel.station_2_completed_at == T0

    def test_final_pass_completes(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=4,
                           wattage=400.0, vmp=40.0, imp=10.0)
        for n in (1, 2, 3):
            panel.set_station_completed_at(n, T0)
        assert lifecycle.pass_station(panel, 4, T0 + timedelta(minutes=1)) is True
        assert panel.status == "completed"
        assert panel.current_station is None
        assert panel.completed_at == T0 + timedelta(minutes=1)
        lifecycle.check_invariants(panel)

    def test_completion_requires_readings(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=4, wattage=400.0)
        with pytest.raises(ElectricalDataMissing) as exc_info:
            lifecycle.ensure_can_complete(panel, {"vmp": 40.0})
        assert "imp" in exc_info.value.message
        lifecycle.ensure_can_complete(panel, {"vmp": 40.0, "imp": 10.0})

    def test_rework_increments_count(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=3)
        lifecycle.send_to_rework(panel, 3, "loose connector")
        assert panel.status == "rework"
        assert panel.current_station == 3
        assert panel.rework_count == 1
        assert panel.rework_reason == "loose connector"

    def test_rework_limit(self, monkeypatch):
        monkeypatch.setattr(lifecycle.settings, "max_rework_attempts", 2)
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=1, rework_count=2)
        with pytest.raises(ReworkLimitReached):
            lifecycle.send_to_rework(panel, 1, "again")
        assert panel.status == "in_progress"
        assert panel.rework_count == 2

    def test_fail_records_notes(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=1)
        lifecycle.fail(panel, "cracked cell")
        assert panel.status == "failed"
        assert panel.quality_notes == "cracked cell"
        lifecycle.check_invariants(panel)


@pytest.mark.unit
class TestInvariants:

    def test_completed_without_readings(self):
        panel = make_panel(PanelStatus.COMPLETED)
        for n in (1, 2, 3, 4):
            panel.set_station_completed_at(n, T0)
        with pytest.raises(ElectricalDataMissing):
            lifecycle.check_invariants(panel)

    def test_gap_in_station_stamps(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=2)
        panel.station_2_completed_at = T0
        with pytest.raises(PreconditionViolation) as exc_info:
            lifecycle.check_invariants(panel)
        assert exc_info.value.invariant == "station_progression"

    def test_regressing_stamps(self):
        panel = make_panel(PanelStatus.IN_PROGRESS, current_station=3)
        panel.station_1_completed_at = T0
        panel.station_2_completed_at = T0 - timedelta(seconds=1)
        with pytest.raises(PreconditionViolation) as exc_info:
            lifecycle.check_invariants(panel)
        assert exc_info.value.invariant == "monotonic_timestamps"

    def test_failed_without_notes(self):
        panel = make_panel(PanelStatus.FAILED)
        with pytest.raises(PreconditionViolation) as exc_info:
            lifecycle.check_invariants(panel)
        assert exc_info.value.invariant == "failure_requires_notes"
