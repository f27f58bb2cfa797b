"""Tests for the HTTP API."""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from followup_gate.db.database import get_session
from followup_gate.followups.orchestrator import FollowUpOrchestrator
from followup_gate.main import app, get_orchestrator, get_sender


@pytest.fixture
async def client(session_factory, sender, clock):
    async def override_session():
        async with session_factory() as s:
            yield s

    async def override_orchestrator():
        async with session_factory() as s:
            yield FollowUpOrchestrator(s, sender=sender, clock=clock, delay_minutes=60)

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_sender] = lambda: sender
    app.dependency_overrides[get_orchestrator] = override_orchestrator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def create_lead(client, email="jane@techcorp.io"):
    response = await client.post("/leads", json={"email": email, "first_name": "Jane"})
    return response.json()["lead"]["id"]


class TestServiceEndpoints:

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["engine_version"]

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "healthy"}


class TestLeadEndpoints:

    @pytest.mark.asyncio
    async def test_create_and_fetch(self, client):
        response = await client.post("/leads", json={"email": "jane@techcorp.io", "company": "Tech Corp"})
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "created"
        assert body["lead"]["state"] == "NEW"

        fetched = await client.get(f"/leads/{body['lead']['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["company"] == "Tech Corp"
        assert fetched.json()["state_description"]

    @pytest.mark.asyncio
    async def test_duplicate_returns_200(self, client):
        first = await create_lead(client)
        response = await client.post("/leads", json={"email": "jane@techcorp.io"})
        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert response.json()["lead"]["id"] == first

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, client):
        response = await client.post("/leads", json={"email": "not-an-email"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_lead_is_404(self, client):
        response = await client.get(f"/leads/{uuid.uuid4()}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_with_state_filter(self, client):
        lead_id = await create_lead(client, "a@acmecorp.io")
        await create_lead(client, "b@acmecorp.io")
        await client.post(f"/leads/{lead_id}/follow-up", json={})

        contacted = await client.get("/leads", params={"state": "CONTACTED"})
        assert contacted.json()["count"] == 1
        assert contacted.json()["leads"][0]["id"] == lead_id

        everything = await client.get("/leads")
        assert everything.json()["count"] == 2

    @pytest.mark.asyncio
    async def test_unknown_state_filter_is_422(self, client):
        response = await client.get("/leads", params={"state": "QUALIFIED"})
        assert response.status_code == 422


class TestFollowUpEndpoints:

    @pytest.mark.asyncio
    async def test_preview_then_run(self, client, sender):
        lead_id = await create_lead(client)

        preview = await client.get(f"/leads/{lead_id}/decision")
        assert preview.status_code == 200
        assert preview.json()["action"] == "SEND"
        assert sender.sent == []

        run = await client.post(f"/leads/{lead_id}/follow-up", json={"subject": "Hello"})
        assert run.status_code == 200
        body = run.json()
        assert body["outcome"] == "sent"
        assert body["state"] == "CONTACTED"
        assert body["decision"]["rule"] == "ELIGIBLE"
        assert len(sender.sent) == 1

        again = await client.post(f"/leads/{lead_id}/follow-up", json={})
        assert again.json()["outcome"] == "skipped"
        assert again.json()["decision"]["rule"] == "TIME_GATE"

    @pytest.mark.asyncio
    async def test_inbound_engages_lead(self, client, clock):
        lead_id = await create_lead(client)
        await client.post(f"/leads/{lead_id}/follow-up", json={})

        clock.advance(minutes=3)
        response = await client.post(f"/leads/{lead_id}/inbound", json={"body": "Interested"})
        assert response.json()["state"] == "ENGAGED"

        decision = await client.get(f"/leads/{lead_id}/decision")
        assert decision.json()["rule"] == "STATE_BLOCK"

    @pytest.mark.asyncio
    async def test_decision_log_and_history(self, client):
        lead_id = await create_lead(client)
        await client.post(f"/leads/{lead_id}/follow-up", json={})
        await client.post(f"/leads/{lead_id}/follow-up", json={})

        decisions = (await client.get(f"/leads/{lead_id}/decisions")).json()
        assert decisions["count"] == 2
        assert [d["outcome"] for d in decisions["decisions"]] == ["sent", "skipped"]

        history = (await client.get(f"/leads/{lead_id}/history")).json()
        assert [e["event"] for e in history["events"]] == ["LEAD_CREATED", "OUTBOUND_SENT"]

    @pytest.mark.asyncio
    async def test_sweep(self, client, sender):
        await create_lead(client, "a@acmecorp.io")
        await create_lead(client, "b@acmecorp.io")

        response = await client.post("/follow-ups/run", json={"subject": "Checking in"})

        assert response.json() == {"processed": 2, "sent": 2, "skipped": 0, "failed": 0}
        assert len(sender.sent) == 2


class TestEventEndpoints:

    @pytest.mark.asyncio
    async def test_pause_and_terminate(self, client):
        lead_id = await create_lead(client)
        await client.post(f"/leads/{lead_id}/follow-up", json={})

        paused = await client.post(f"/leads/{lead_id}/events", json={"event": "MANUAL_OVERRIDE"})
        assert paused.json()["state"] == "PAUSED"

        closed = await client.post(f"/leads/{lead_id}/events", json={"event": "TERMINATE"})
        assert closed.json()["state"] == "CLOSED"

    @pytest.mark.asyncio
    async def test_illegal_event_is_409(self, client):
        lead_id = await create_lead(client)

        response = await client.post(f"/leads/{lead_id}/events", json={"event": "INBOUND_RECEIVED"})

        assert response.status_code == 409
        assert response.json()["state"] == "NEW"
        assert response.json()["event"] == "INBOUND_RECEIVED"

    @pytest.mark.asyncio
    async def test_unknown_event_is_422(self, client):
        lead_id = await create_lead(client)
        response = await client.post(f"/leads/{lead_id}/events", json={"event": "EXPLODE"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_event_on_unknown_lead_is_404(self, client):
        response = await client.post(f"/leads/{uuid.uuid4()}/events", json={"event": "TERMINATE"})
        assert response.status_code == 404
