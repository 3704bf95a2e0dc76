"""Tests for the rework router."""

import pytest

from app.config import settings
from app.middleware.exceptions import (
    MalformedInputError,
    ReworkLimitReached,
    ReworkReentryMismatch,
)
from app.services.panels import get_panel, scan_panel
from app.services.rework import list_rework_queue


@pytest.mark.asyncio
class TestRework:

    async def test_rework_keeps_earlier_passes(self, tx, inspect, panel):
        await inspect(panel.id, 1)
        await inspect(panel.id, 2)
        await inspect(panel.id, 3, "rework", notes="loose cable", rework_reason="reseat cable")

        current = await tx(get_panel, panel.id)
        assert current.status == "rework"
        assert current.current_station == 3
        assert current.rework_count == 1
        assert current.station_1_completed_at is not None
        assert current.station_3_completed_at is None

    async def test_reentry_only_at_failed_station(self, tx, inspect, panel):
        await inspect(panel.id, 1)
        await inspect(panel.id, 2, "rework", notes="gap", rework_reason="realign frame")

        with pytest.raises(ReworkReentryMismatch):
            await tx(scan_panel, panel.barcode, 1)
        with pytest.raises(ReworkReentryMismatch):
            await inspect(panel.id, 3)

        # re-inspection at the same station is a new attempt
        second = await inspect(panel.id, 2)
        assert second.attempt == 1
        current = await tx(get_panel, panel.id)
        assert current.status == "in_progress"
        assert current.current_station == 3

    async def test_reworked_panel_can_complete(self, tx, inspect, complete_panel, panel):
        await inspect(panel.id, 1, "rework", notes="EL dark area", rework_reason="replace cell")
        await complete_panel(panel.id)
        done = await tx(get_panel, panel.id)
        assert done.status == "completed"
        assert done.rework_count == 1

    async def test_rework_limit(self, tx, inspect, panel, monkeypatch):
        monkeypatch.setattr(settings, "max_rework_attempts", 1)
        await inspect(panel.id, 1, "rework", notes="first", rework_reason="fix")
        with pytest.raises(ReworkLimitReached):
            await inspect(panel.id, 1, "rework", notes="second", rework_reason="fix again")
        assert (await tx(get_panel, panel.id)).rework_count == 1

        await inspect(panel.id, 1, "fail", notes="still defective")
        assert (await tx(get_panel, panel.id)).status == "failed"

    async def test_rework_needs_notes(self, inspect, panel):
        with pytest.raises(MalformedInputError):
            await inspect(panel.id, 1, "rework", rework_reason="fix")

    async def test_reason_defaults_to_notes(self, tx, inspect, panel):
        await inspect(panel.id, 1, "rework", notes="bubble in laminate")
        assert (await tx(get_panel, panel.id)).rework_reason == "bubble in laminate"

    async def test_rework_queue(self, tx, inspect, make_panel, order):
        first = await make_panel(order)
        second = await make_panel(order)
        await inspect(first.id, 1, "rework", notes="a", rework_reason="a")
        await inspect(second.id, 1)
        await inspect(second.id, 2, "rework", notes="b", rework_reason="b")

        queue = await tx(list_rework_queue, order.id)
        assert {p.id for p in queue} == {first.id, second.id}
        at_two = await tx(list_rework_queue, order.id, 2)
        assert [p.id for p in at_two] == [second.id]
