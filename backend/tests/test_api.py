"""HTTP API tests: status codes and the error envelope."""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from conftest import INSPECTOR, panel_code


async def _create_order(client: AsyncClient, number="MO-API-001", panel_type=36, target=10):
    response = await client.post("/api/orders/", json={
        "order_number": number,
        "panel_type": panel_type,
        "target_quantity": target,
        "start_date": date.today().isoformat(),
        "end_date": (date.today() + timedelta(days=14)).isoformat(),
    })
    assert response.status_code == 201, response.text
    return response.json()


async def _create_panel(client: AsyncClient, order_id: str, seq=1, panel_type=36):
    response = await client.post("/api/panels/", json={
        "code": panel_code(seq, panel_type), "order_id": order_id,
    })
    assert response.status_code == 201, response.text
    return response.json()


async def _inspect(client: AsyncClient, panel_id: str, station: int, result="pass", **extra):
    return await client.post("/api/inspections/", json={
        "panel_id": panel_id,
        "station": station,
        "inspector_id": INSPECTOR,
        "result": result,
        **extra,
    })


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


@pytest.mark.api
@pytest.mark.asyncio
class TestIdentifiers:

    async def test_decode(self, client: AsyncClient):
        response = await client.get("/api/identifiers/CRS25WT14400042")
        assert response.status_code == 200
        data = response.json()
        assert data["panel_type"] == 144
        assert data["line"] == "B"
        assert data["backsheet_type"] == "transparent"

    async def test_malformed_identifier_envelope(self, client: AsyncClient):
        response = await client.get("/api/identifiers/CRS25QT3600042")
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "MALFORMED_IDENTIFIER"
        assert error["details"]["field"] == "frame_type"


@pytest.mark.api
@pytest.mark.asyncio
class TestStations:

    async def test_catalogue_for_line(self, client: AsyncClient):
        response = await client.get("/api/stations/A")
        assert response.status_code == 200
        stations = response.json()
        assert [s["number"] for s in stations] == [1, 2, 3, 4]

    async def test_unknown_station(self, client: AsyncClient):
        response = await client.get("/api/stations/A/7")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UNKNOWN_STATION"


@pytest.mark.api
@pytest.mark.asyncio
class TestWorkflow:

    async def test_full_run_to_pallet(self, client: AsyncClient):
        order = await _create_order(client, target=1)
        panel = await _create_panel(client, order["id"])
        assert panel["status"] == "pending"
        assert panel["line"] == "A"

        for station in (1, 2, 3):
            response = await _inspect(client, panel["id"], station)
            assert response.status_code == 201, response.text

        response = await _inspect(client, panel["id"], 4)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ELECTRICAL_DATA_MISSING"

        response = await client.put(
            f"/api/panels/{panel['id']}/readings",
            json={"wattage": 310, "vmp": 32.5, "imp": 9.1},
        )
        assert response.status_code == 200

        response = await _inspect(client, panel["id"], 4)
        assert response.status_code == 201
        body = response.json()
        assert body["panel_status"] == "completed"
        assert body["current_station"] is None

        progress = (await client.get(f"/api/orders/{order['id']}/progress")).json()
        assert progress["status"] == "completed"
        assert progress["completed_count"] == 1

        response = await client.post("/api/pallets/assign", json={"panel_id": panel["id"]})
        assert response.status_code == 201
        pallet_id = response.json()["pallet_id"]

        manifest = (await client.get(f"/api/pallets/{pallet_id}/manifest")).json()
        assert manifest["count"] == 1
        assert manifest["wattage"]["total"] == 310.0

        response = await client.post(
            f"/api/pallets/{pallet_id}/close", json={"closed_by": "lead-1"}
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "MANUAL_CLOSE_NOT_CONFIRMED"

        response = await client.post(
            f"/api/pallets/{pallet_id}/close", json={"closed_by": "lead-1", "confirm": True}
        )
        assert response.status_code == 200
        assert response.json()["closed_manually"] is True

        qr = await client.get(f"/api/pallets/{pallet_id}/qr")
        assert qr.status_code == 200
        assert qr.headers["content-type"].startswith("image/svg+xml")

    async def test_out_of_order_station(self, client: AsyncClient):
        order = await _create_order(client)
        panel = await _create_panel(client, order["id"])
        response = await _inspect(client, panel["id"], 2)
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "STATION_OUT_OF_ORDER"
        assert error["details"]["invariant"] == "station_progression"

    async def test_fail_without_notes(self, client: AsyncClient):
        order = await _create_order(client)
        panel = await _create_panel(client, order["id"])
        response = await _inspect(client, panel["id"], 1, "fail")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "NOTES_REQUIRED"

        panel = (await client.get(f"/api/panels/{panel['id']}")).json()
        assert panel["status"] == "pending"

    async def test_out_of_range_reading(self, client: AsyncClient):
        order = await _create_order(client)
        panel = await _create_panel(client, order["id"])
        response = await client.put(
            f"/api/panels/{panel['id']}/readings",
            json={"wattage": 1500, "vmp": 40, "imp": 10},
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALUE_OUT_OF_RANGE"
        assert error["details"]["field"] == "wattage"

    async def test_scan_creates_and_admits(self, client: AsyncClient):
        order = await _create_order(client)
        response = await client.post("/api/panels/scan", json={
            "code": panel_code(5), "station": 1, "order_id": order["id"],
        })
        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"
        assert response.json()["current_station"] == 1

    async def test_duplicate_panel(self, client: AsyncClient):
        order = await _create_order(client)
        await _create_panel(client, order["id"], seq=9)
        response = await client.post("/api/panels/", json={
            "code": panel_code(9), "order_id": order["id"],
        })
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_IDENTIFIER"

    async def test_history(self, client: AsyncClient):
        order = await _create_order(client)
        panel = await _create_panel(client, order["id"])
        await _inspect(client, panel["id"], 1, "rework", notes="bad solder", rework_reason="resolder")

        response = await client.get(f"/api/panels/by-code/{panel['barcode']}/history")
        assert response.status_code == 200
        data = response.json()
        assert data["panel"]["status"] == "rework"
        assert [h["event_type"] for h in data["history"]] == ["created", "admitted", "rework"]
        assert data["inspections"][0]["result"] == "rework"

        queue = (await client.get("/api/panels/rework")).json()
        assert [p["id"] for p in queue] == [panel["id"]]

    async def test_order_completion_cannot_be_forced(self, client: AsyncClient):
        order = await _create_order(client)
        response = await client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "completed"}
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ORDER_COMPLETION_FORBIDDEN"

    async def test_not_found(self, client: AsyncClient):
        response = await client.get("/api/orders/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    async def test_request_validation_envelope(self, client: AsyncClient):
        response = await client.post("/api/orders/", json={"order_number": "MO-1"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "MALFORMED_INPUT"
