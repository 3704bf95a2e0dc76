"""Tests for the pallet manager."""

import pytest

from app.config import settings
from app.middleware.exceptions import (
    AlreadyAssigned,
    AlreadyClosed,
    MalformedInputError,
    ManualCloseNotConfirmed,
    NotCompleted,
    PalletClosed,
    PalletOrderMismatch,
)
from app.services.pallets import (
    assign_to_pallet,
    close_pallet_manually,
    get_pallet,
    list_pallets,
    next_free_position,
    pallet_label_svg,
    pallet_manifest,
)
from app.services.panels import get_panel


@pytest.fixture
def completed_panel(make_panel, complete_panel):
    async def make(order, wattage=400.0):
        panel = await make_panel(order)
        await complete_panel(panel.id, wattage=wattage)
        return panel

    return make


@pytest.mark.unit
class TestGrid:

    def test_row_major_order(self):
        assert next_free_position(set(), 20) == (0, 0)
        assert next_free_position({(0, 0), (1, 0)}, 20) == (2, 0)
        taken = {(x, 0) for x in range(20)}
        assert next_free_position(taken, 20) == (0, 1)

    def test_fills_gaps_first(self):
        assert next_free_position({(0, 0), (2, 0)}, 20) == (1, 0)


@pytest.mark.asyncio
class TestAssign:

    async def test_auto_assign_opens_pallet(self, tx, order, completed_panel):
        panel = await completed_panel(order)
        assignment = await tx(assign_to_pallet, panel.id)
        assert (assignment.position_x, assignment.position_y) == (0, 0)
        assert assignment.panel_barcode == panel.barcode
        assert assignment.wattage == 400.0

        pallet = await tx(get_pallet, assignment.pallet_id)
        assert pallet.capacity == settings.default_pallet_capacity
        assert pallet.assigned_count == 1
        assert pallet.status == "in_progress"
        assert pallet.pallet_number == f"PAL-{order.order_number}-001"
        assert (await tx(get_panel, panel.id)).pallet_id == pallet.id

    async def test_only_completed_panels(self, tx, panel):
        with pytest.raises(NotCompleted):
            await tx(assign_to_pallet, panel.id)

    async def test_panel_assigned_once(self, tx, order, completed_panel):
        panel = await completed_panel(order)
        await tx(assign_to_pallet, panel.id)
        with pytest.raises(AlreadyAssigned):
            await tx(assign_to_pallet, panel.id)

    async def test_closes_at_capacity_and_opens_next(self, tx, order, completed_panel):
        panels = [await completed_panel(order) for _ in range(3)]
        first = await tx(assign_to_pallet, panels[0].id, capacity=2)
        second = await tx(assign_to_pallet, panels[1].id)
        assert second.pallet_id == first.pallet_id
        assert (second.position_x, second.position_y) == (1, 0)

        full = await tx(get_pallet, first.pallet_id)
        assert full.status == "completed"
        assert full.assigned_count == 2
        assert full.closed_manually is False
        assert full.completed_at is not None

        third = await tx(assign_to_pallet, panels[2].id, capacity=2)
        assert third.pallet_id != first.pallet_id
        assert (third.position_x, third.position_y) == (0, 0)

    async def test_explicit_closed_pallet_rejected(self, tx, order, completed_panel):
        first = await completed_panel(order)
        assignment = await tx(assign_to_pallet, first.id, capacity=1)
        second = await completed_panel(order)
        with pytest.raises(PalletClosed):
            await tx(assign_to_pallet, second.id, assignment.pallet_id)

    async def test_pallet_must_belong_to_panel_order(
        self, tx, make_order, completed_panel
    ):
        order_a = await make_order(36, 10)
        order_b = await make_order(36, 10)
        on_a = await tx(assign_to_pallet, (await completed_panel(order_a)).id)
        stranger = await completed_panel(order_b)
        with pytest.raises(PalletOrderMismatch):
            await tx(assign_to_pallet, stranger.id, on_a.pallet_id)

    @pytest.mark.parametrize("capacity", [0, 101])
    async def test_capacity_bounds(self, tx, order, completed_panel, capacity):
        panel = await completed_panel(order)
        with pytest.raises(MalformedInputError):
            await tx(assign_to_pallet, panel.id, capacity=capacity)

    async def test_auto_palletize_on_completion(
        self, tx, order, completed_panel, monkeypatch
    ):
        monkeypatch.setattr(settings, "auto_palletize", True)
        panel = await completed_panel(order)
        stored = await tx(get_panel, panel.id)
        assert stored.pallet_id is not None
        pallets = await tx(list_pallets, order.id)
        assert [p.assigned_count for p in pallets] == [1]


@pytest.mark.asyncio
class TestManualClose:

    async def test_requires_confirmation(self, tx, order, completed_panel):
        assignment = await tx(assign_to_pallet, (await completed_panel(order)).id)
        with pytest.raises(ManualCloseNotConfirmed):
            await tx(close_pallet_manually, assignment.pallet_id, "lead-1")
        assert (await tx(get_pallet, assignment.pallet_id)).status == "in_progress"

    async def test_closed_pallet_stays_closed(self, tx, order, completed_panel):
        assignment = await tx(assign_to_pallet, (await completed_panel(order)).id)
        closed = await tx(close_pallet_manually, assignment.pallet_id, "lead-1", True)
        assert closed.status == "completed"
        assert closed.closed_manually is True
        assert closed.closed_by == "lead-1"
        assert closed.assigned_count == 1

        with pytest.raises(AlreadyClosed):
            await tx(close_pallet_manually, assignment.pallet_id, "lead-1", True)

        # the next auto assignment opens a fresh pallet
        nxt = await tx(assign_to_pallet, (await completed_panel(order)).id)
        assert nxt.pallet_id != assignment.pallet_id


@pytest.mark.asyncio
class TestManifest:

    async def test_manifest_statistics(self, tx, order, completed_panel):
        pallet_id = None
        for wattage in (400.0, 410.0, 420.0):
            panel = await completed_panel(order, wattage=wattage)
            pallet_id = (await tx(assign_to_pallet, panel.id, pallet_id)).pallet_id

        manifest = await tx(pallet_manifest, pallet_id)
        assert manifest["count"] == 3
        assert manifest["wattage"] == {
            "total": 1230.0, "average": 410.0, "minimum": 400.0, "maximum": 420.0,
        }
        assert [(p["position_x"], p["position_y"]) for p in manifest["panels"]] == [
            (0, 0), (1, 0), (2, 0),
        ]
        assert all(p["completed_at"] is not None for p in manifest["panels"])

    async def test_qr_label(self, tx, order, completed_panel):
        assignment = await tx(assign_to_pallet, (await completed_panel(order)).id)
        svg = await tx(pallet_label_svg, assignment.pallet_id)
        assert b"<svg" in svg


@pytest.mark.asyncio
class TestOrderClosure:

    async def test_partial_pallet_closed_when_order_completes(
        self, tx, make_order, completed_panel, monkeypatch
    ):
        monkeypatch.setattr(settings, "auto_palletize", True)
        order = await make_order(36, 2)
        await completed_panel(order)
        [pallet] = await tx(list_pallets, order.id)
        assert pallet.status == "in_progress"

        await completed_panel(order)
        [pallet] = await tx(list_pallets, order.id)
        assert pallet.status == "completed"
        assert pallet.assigned_count == 2
        assert pallet.closed_manually is True
        assert pallet.closed_by == "system"
        assert pallet.completed_at is not None

    async def test_open_pallet_left_alone_while_order_runs(
        self, tx, make_order, completed_panel
    ):
        order = await make_order(36, 3)
        assignment = await tx(assign_to_pallet, (await completed_panel(order)).id)
        await completed_panel(order)
        assert (await tx(get_pallet, assignment.pallet_id)).status == "in_progress"

        await completed_panel(order)
        closed = await tx(get_pallet, assignment.pallet_id)
        assert closed.status == "completed"
        assert closed.closed_by == "system"
        assert closed.assigned_count == 1
