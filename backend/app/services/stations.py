"""Station registry: the four fixed inspection stages and their criteria.

Stations are static reference data.  Count, order and criteria are fixed by
the manufacturing process; nothing at runtime may add or reorder them.

Each criterion carries a kind relative to a given line:
  pass_fail       applicable checkbox (pass or fail outcome)
  numeric         bounded measurement (station 4 electrical readings)
  not_applicable  belongs to the other line only
"""

from dataclasses import dataclass

from app.middleware.exceptions import MalformedInputError, UnknownStationError
from app.utils.barcode import LINE_A, LINE_B

ASSEMBLY_EL = "ASSEMBLY_EL"
FRAMING = "FRAMING"
JUNCTION_BOX = "JUNCTION_BOX"
PERFORMANCE_FINAL = "PERFORMANCE_FINAL"

FIRST_STATION = 1
FINAL_STATION = 4
STATION_NUMBERS = (1, 2, 3, 4)

PASS_FAIL = "pass_fail"
NUMERIC = "numeric"
NOT_APPLICABLE = "not_applicable"

# Exclusive lower bound, inclusive upper bound
ELECTRICAL_BOUNDS = {
    "wattage": (0.0, 1000.0),
    "vmp": (0.0, 100.0),
    "imp": (0.0, 20.0),
}
ELECTRICAL_UNITS = {"wattage": "W", "vmp": "V", "imp": "A"}


@dataclass(frozen=True)
class Criterion:
    id: str
    label: str
    outcome: str                # "pass" | "fail" | "measure"
    line: str | None = None     # None = both lines
    numeric: bool = False

    def kind_for(self, line: str) -> str:
        if self.line is not None and self.line != line:
            return NOT_APPLICABLE
        return NUMERIC if self.numeric else PASS_FAIL


@dataclass(frozen=True)
class Station:
    number: int
    stage: str
    name: str
    description: str
    criteria: tuple[Criterion, ...]

    def criteria_for(self, line: str) -> list[tuple[Criterion, str]]:
        return [(c, c.kind_for(line)) for c in self.criteria]

    def fail_criteria_ids(self, line: str) -> set[str]:
        return {
            c.id for c in self.criteria
            if c.outcome == "fail" and c.kind_for(line) != NOT_APPLICABLE
        }

    @property
    def is_final(self) -> bool:
        return self.number == FINAL_STATION


def _p(cid: str, label: str, line: str | None = None) -> Criterion:
    return Criterion(cid, label, "pass", line)


def _f(cid: str, label: str, line: str | None = None) -> Criterion:
    return Criterion(cid, label, "fail", line)


def _m(cid: str, label: str) -> Criterion:
    return Criterion(cid, label, "measure", numeric=True)


STATIONS: dict[int, Station] = {
    1: Station(1, ASSEMBLY_EL, "Assembly & EL", "Electrical testing and assembly validation", (
        _p("el_test_passed", "EL test passed"),
        _p("assembly_complete", "Assembly complete"),
        _p("no_visible_defects", "No visible defects"),
        _p("electrical_continuity", "Electrical continuity verified"),
        _p("large_panel_handling", "Large panel handling verified", LINE_B),
        _f("el_test_failed", "EL test failed"),
        _f("assembly_incomplete", "Assembly incomplete"),
        _f("visible_defects", "Visible defects found"),
        _f("electrical_continuity_failed", "Electrical continuity failed"),
        _f("component_missing", "Component missing"),
        _f("large_panel_handling_failed", "Large panel handling issues", LINE_B),
        _f("other", "Other"),
    )),
    2: Station(2, FRAMING, "Framing", "Frame assembly and structural validation", (
        _p("frame_properly_assembled", "Frame properly assembled"),
        _p("no_frame_damage", "No frame damage"),
        _p("corner_joints_secure", "Corner joints secure"),
        _p("frame_alignment_correct", "Frame alignment correct"),
        _p("mirror_examination_passed", "Mirror examination passed", LINE_A),
        _p("large_panel_handling_verified", "Large panel handling verified", LINE_B),
        _f("frame_misaligned", "Frame misaligned"),
        _f("frame_damage", "Frame damage detected"),
        _f("loose_corner_joints", "Loose corner joints"),
        _f("missing_frame_components", "Missing frame components"),
        _f("frame_warping", "Frame warping"),
        _f("mirror_examination_failed", "Mirror examination failed", LINE_A),
        _f("large_panel_handling_issues", "Large panel handling issues", LINE_B),
        _f("other", "Other"),
    )),
    3: Station(3, JUNCTION_BOX, "Junction Box", "Junction box installation and wiring validation", (
        _p("junction_box_properly_installed", "Junction box properly installed"),
        _p("wiring_correctly_connected", "Wiring correctly connected"),
        _p("sealing_complete", "Sealing complete"),
        _p("no_electrical_shorts", "No electrical shorts"),
        _p("large_panel_wiring_verified", "Large panel wiring verified", LINE_B),
        _f("junction_box_misaligned", "Junction box misaligned"),
        _f("wiring_disconnected", "Wiring disconnected"),
        _f("incomplete_sealing", "Incomplete sealing"),
        _f("electrical_short_detected", "Electrical short detected"),
        _f("missing_components", "Missing components"),
        _f("large_panel_wiring_issues", "Large panel wiring issues", LINE_B),
        _f("other", "Other"),
    )),
    4: Station(4, PERFORMANCE_FINAL, "Performance & Final Inspection",
               "Final performance testing and quality validation", (
        _m("wattage", "Maximum power (W)"),
        _m("vmp", "Voltage at maximum power (V)"),
        _m("imp", "Current at maximum power (A)"),
        _p("performance_within_specifications", "Performance within specifications"),
        _p("visual_inspection_passed", "Visual inspection passed"),
        _p("all_tests_completed", "All tests completed"),
        _p("quality_standards_met", "Quality standards met"),
        _p("second_el_test_passed", "Second EL test passed", LINE_A),
        _p("extended_performance_testing_passed", "Extended performance testing passed", LINE_B),
        _f("performance_below_specifications", "Performance below specifications"),
        _f("visual_defects_found", "Visual defects found"),
        _f("test_failures", "Test failures"),
        _f("quality_standards_not_met", "Quality standards not met"),
        _f("calibration_issues", "Calibration issues"),
        _f("second_el_test_failed", "Second EL test failed", LINE_A),
        _f("extended_performance_testing_failed", "Extended performance testing failed", LINE_B),
        _f("other", "Other"),
    )),
}


def get_station(number) -> Station:
    """Look up a station; anything outside 1–4 is a programmer error."""
    if isinstance(number, bool) or not isinstance(number, int) or number not in STATIONS:
        raise UnknownStationError(number)
    return STATIONS[number]


def station_catalogue(line: str) -> list[dict]:
    """Plain-dict view of every station for one line (API, CLI, cache)."""
    if line not in (LINE_A, LINE_B):
        raise MalformedInputError(f"Line must be {LINE_A!r} or {LINE_B!r}, got {line!r}")
    catalogue = []
    for station in STATIONS.values():
        criteria = []
        for criterion, kind in station.criteria_for(line):
            entry = {
                "id": criterion.id,
                "label": criterion.label,
                "outcome": criterion.outcome,
                "kind": kind,
            }
            if criterion.numeric:
                lower, upper = ELECTRICAL_BOUNDS[criterion.id]
                entry.update(min_exclusive=lower, max=upper, unit=ELECTRICAL_UNITS[criterion.id])
            criteria.append(entry)
        catalogue.append({
            "number": station.number,
            "stage": station.stage,
            "name": station.name,
            "description": station.description,
            "line": line,
            "criteria": criteria,
        })
    return catalogue
