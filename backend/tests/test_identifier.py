"""Tests for the panel identifier codec."""

from datetime import date

import pytest

from app.middleware.exceptions import MalformedIdentifier
from app.utils.barcode import (
    Identifier,
    decode_identifier,
    encode_identifier,
    generate_identifier,
    line_for,
    year_window,
)

TODAY = date(2025, 6, 1)


@pytest.mark.unit
class TestDecode:

    def test_decodes_line_a_code(self):
        identifier = decode_identifier("CRS25WT3600042", today=TODAY)
        assert identifier == Identifier(
            company_tag="CRS",
            year=25,
            frame_type="silver",
            backsheet_type="transparent",
            panel_type=36,
            sequence=42,
        )
        assert identifier.line == "A"

    def test_decodes_type_144_on_line_b(self):
        identifier = decode_identifier("CRS24BB14400001", today=TODAY)
        assert identifier.panel_type == 144
        assert identifier.frame_type == "black"
        assert identifier.backsheet_type == "black"
        assert identifier.line == "B"

    def test_trims_and_uppercases(self):
        identifier = decode_identifier("  crs25ww7200010 ", today=TODAY)
        assert identifier.code == "CRS25WW7200010"

    @pytest.mark.parametrize("code,field", [
        ("", "input"),
        ("CRS25WT36", "length"),
        ("ABC25WT3600042", "company_tag"),
        ("CRS19WT3600042", "year"),
        ("CRS99WT3600042", "year"),
        ("CRSXXWT3600042", "year"),
        ("CRS25XT3600042", "frame_type"),
        ("CRS25WX3600042", "backsheet_type"),
        ("CRS25WT3700042", "panel_type"),
        ("CRS25WT14500042", "panel_type"),
        ("CRS25WT3600000", "sequence"),
        ("CRS25WT36000A2", "sequence"),
    ])
    def test_names_the_failing_field(self, code, field):
        with pytest.raises(MalformedIdentifier) as exc_info:
            decode_identifier(code, today=TODAY)
        assert exc_info.value.details["field"] == field
        assert exc_info.value.error_code == "MALFORMED_IDENTIFIER"

    def test_first_failing_field_wins(self):
        # bad tag and bad year: the tag is checked first
        with pytest.raises(MalformedIdentifier) as exc_info:
            decode_identifier("XYZ99WT3600042", today=TODAY)
        assert exc_info.value.details["field"] == "company_tag"

    def test_year_window_follows_today(self):
        assert year_window(TODAY) == (20, 30)
        assert decode_identifier("CRS30WT3600001", today=TODAY).year == 30
        with pytest.raises(MalformedIdentifier):
            decode_identifier("CRS31WT3600001", today=TODAY)


@pytest.mark.unit
class TestEncode:

    def test_encode_inverts_decode(self):
        for code in ("CRS25WT3600042", "CRS21BW6099999", "CRS25WB14400007"):
            assert encode_identifier(decode_identifier(code, today=TODAY)) == code

    def test_generate_builds_valid_code(self):
        code = generate_identifier(144, 7, year=25, frame_type="black", backsheet_type="T")
        assert code == "CRS25BT14400007"
        assert len(code) == 15

    def test_generate_rejects_bad_sequence(self):
        with pytest.raises(MalformedIdentifier) as exc_info:
            generate_identifier(36, 0, year=25)
        assert exc_info.value.details["field"] == "sequence"

    def test_generate_rejects_unknown_type(self):
        with pytest.raises(MalformedIdentifier) as exc_info:
            generate_identifier(50, 1, year=25)
        assert exc_info.value.details["field"] == "panel_type"


@pytest.mark.unit
class TestLineRouting:

    @pytest.mark.parametrize("panel_type", [36, 40, 60, 72])
    def test_small_types_run_on_line_a(self, panel_type):
        assert line_for(panel_type) == "A"

    def test_type_144_runs_on_line_b(self):
        assert line_for(144) == "B"

    def test_unknown_type_is_rejected(self):
        with pytest.raises(MalformedIdentifier):
            line_for(48)
