"""Unit tests for the HTTP and WebSocket endpoints."""
import json
import pytest
from types import SimpleNamespace

from inspection_agent.api.webhooks.voice import get_session_manager
from inspection_agent.services.persistence.callers import CallerPersistenceService
from inspection_agent.services.persistence.inspections import InspectionPersistenceService


async def record_inspection(test_db, stream_sid, **data):
    service = InspectionPersistenceService(test_db)
    await service.begin_call(stream_sid, "+15550001111")
    submission = {
        "equipment_id": "SCAFF-001",
        "inspector_name": "Jane",
        "location": "Warehouse A - Bay 3",
        "inspection_result": "PASS",
    }
    submission.update(data)
    return await service.save_structured_data(stream_sid, submission)


class TestIncomingCallWebhook:
    """Test the voice webhook answering calls."""

    @pytest.mark.asyncio
    async def test_incoming_call_with_caller(self, async_client):
        """Test that the answer connects a media stream and carries the number."""
        response = await async_client.post(
            "/incoming-call",
            data={"From": "+15550001111", "CallSid": "CA-1"},
            headers={"host": "voice.example.com"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert '<Stream url="wss://voice.example.com/media-stream">' in response.text
        assert '<Parameter name="phone" value="+15550001111"/>' in response.text

    @pytest.mark.asyncio
    async def test_incoming_call_without_caller(self, async_client):
        response = await async_client.post(
            "/incoming-call", data={"CallSid": "CA-2"}, headers={"host": "voice.example.com"}
        )

        assert response.status_code == 200
        assert "<Connect>" in response.text
        assert "<Parameter" not in response.text

    @pytest.mark.asyncio
    async def test_incoming_call_uses_base_url(self, async_client, test_settings):
        test_settings.base_url = "https://public.example.org/"

        response = await async_client.post("/incoming-call", data={"From": "+15550001111"})

        assert '<Stream url="wss://public.example.org/media-stream">' in response.text

    @pytest.mark.asyncio
    async def test_incoming_call_returning_caller(self, async_client, test_db):
        """Test that answering a known caller still connects the stream."""
        await CallerPersistenceService(test_db).remember_caller("+15550001111", "Jane")

        response = await async_client.post("/incoming-call", data={"From": "+15550001111"})

        assert response.status_code == 200
        assert '<Parameter name="phone" value="+15550001111"/>' in response.text


class FakeSessionManager:
    """Records the media connection and echoes one clear event."""

    def __init__(self):
        self.received = []

    async def run_session(self, media, caller_identity=None):
        async for raw in media.messages():
            self.received.append(json.loads(raw))
            await media.send_text(json.dumps({"event": "clear", "streamSid": "MZ-WS"}))
            break
        await media.close()
        return SimpleNamespace(call_id="MZ-WS", close_reason="test finished")


class TestMediaStreamEndpoint:
    """Test the media stream WebSocket route."""

    def test_media_stream_runs_session(self, test_client, app_overrides):
        manager = FakeSessionManager()
        app_overrides.dependency_overrides[get_session_manager] = lambda: manager

        with test_client.websocket_connect("/media-stream") as websocket:
            websocket.send_text(json.dumps({"event": "connected", "protocol": "Call"}))
            assert websocket.receive_json() == {"event": "clear", "streamSid": "MZ-WS"}

        assert manager.received == [{"event": "connected", "protocol": "Call"}]


class TestInspectionRecords:
    """Test the inspection record endpoints."""

    @pytest.mark.asyncio
    async def test_requires_auth(self, async_client):
        response = await async_client.get("/inspections")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_inspections(self, async_client, auth, test_db):
        await record_inspection(test_db, "MZ-1")
        await record_inspection(test_db, "MZ-2", equipment_id="SCAFF-003", inspection_result="FAIL")

        response = await async_client.get("/inspections", auth=auth)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert {i["stream_sid"] for i in data["inspections"]} == {"MZ-1", "MZ-2"}
        assert data["inspections"][0]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_list_limit(self, async_client, auth, test_db):
        for i in range(3):
            await record_inspection(test_db, f"MZ-{i}")

        response = await async_client.get("/inspections?limit=2", auth=auth)

        assert response.json()["count"] == 2

    @pytest.mark.asyncio
    async def test_stats(self, async_client, auth, test_db):
        await record_inspection(test_db, "MZ-1")
        await record_inspection(test_db, "MZ-2", inspection_result="FAIL", inspector_name="Sam")

        response = await async_client.get("/inspections/stats", auth=auth)

        assert response.json() == {
            "stats": {
                "total": 2,
                "passed": 1,
                "failed": 1,
                "unique_inspectors": 2,
                "unique_locations": 1,
            }
        }

    @pytest.mark.asyncio
    async def test_by_equipment(self, async_client, auth, test_db):
        await record_inspection(test_db, "MZ-1")
        await record_inspection(test_db, "MZ-2", equipment_id="SCAFF-003")

        response = await async_client.get("/inspections/equipment/scaff-003", auth=auth)

        data = response.json()
        assert [i["stream_sid"] for i in data["inspections"]] == ["MZ-2"]

    @pytest.mark.asyncio
    async def test_by_result(self, async_client, auth, test_db):
        """Test filtering by result; the value is case-insensitive."""
        await record_inspection(test_db, "MZ-1")
        await record_inspection(test_db, "MZ-2", inspection_result="FAIL")

        response = await async_client.get("/inspections/result/fail", auth=auth)

        data = response.json()
        assert data["result"] == "FAIL"
        assert [i["stream_sid"] for i in data["inspections"]] == ["MZ-2"]

    @pytest.mark.asyncio
    async def test_by_result_invalid(self, async_client, auth):
        response = await async_client.get("/inspections/result/MAYBE", auth=auth)

        assert response.status_code == 400
        assert response.json()["detail"] == "Result must be PASS or FAIL"

    @pytest.mark.asyncio
    async def test_by_location(self, async_client, auth, test_db):
        await record_inspection(test_db, "MZ-1")
        await record_inspection(test_db, "MZ-2", location="Building B - North Wall")

        response = await async_client.get("/inspections/location/north wall", auth=auth)

        data = response.json()
        assert [i["stream_sid"] for i in data["inspections"]] == ["MZ-2"]


class TestEquipmentEndpoints:
    """Test the equipment registry endpoints."""

    def test_list_equipment(self, test_client, auth):
        response = test_client.get("/equipment", auth=auth)

        data = response.json()
        assert data["count"] == 15
        assert data["equipment"][0]["id"] == "SCAFF-001"

    def test_list_equipment_by_status(self, test_client, auth):
        response = test_client.get("/equipment?status=maintenance", auth=auth)

        data = response.json()
        assert data["count"] == 1
        assert data["equipment"][0]["id"] == "SCAFF-008"

    def test_equipment_stats(self, test_client, auth):
        response = test_client.get("/equipment/stats", auth=auth)

        stats = response.json()["stats"]
        assert stats["total"] == 15
        assert stats["by_status"] == {"active": 14, "maintenance": 1}
        assert stats["by_type"]["Mobile Scaffold Tower"] == 7

    def test_equipment_by_location(self, test_client, auth):
        response = test_client.get("/equipment/location/Warehouse A", auth=auth)

        assert [item["id"] for item in response.json()["equipment"]] == ["SCAFF-001", "SCAFF-002", "SCAFF-007"]

    def test_get_equipment(self, test_client, auth):
        response = test_client.get("/equipment/scaff-001", auth=auth)

        assert response.status_code == 200
        assert response.json()["equipment"]["location"] == "Warehouse A - Bay 3"

    def test_get_equipment_not_found(self, test_client, auth):
        response = test_client.get("/equipment/SCAFF-999", auth=auth)

        assert response.status_code == 404
        assert response.json()["detail"] == "Equipment not found"


class TestServiceStatus:
    """Test the health and status endpoints."""

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_status(self, async_client, test_db, clean_call_sessions):
        await record_inspection(test_db, "MZ-1")

        response = await async_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["mcp_servers"] == "none configured"
        assert data["database"]["total"] == 1
        assert data["equipment"]["total"] == 15
        assert data["active_calls"] == 0
