"""Tests for the HTTP and WebSocket surface."""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from ade_gateway.app import app
from ade_gateway.app_state import GatewayState
from ade_gateway.auth import is_valid_key
from ade_gateway.config import config
from ade_gateway.deps import get_state
from ade_gateway.models.jobs import JobStatus
from ade_gateway.ws.manager import ConnectionManager

from conftest import API_KEY, FakeTranslator, make_command, wait_until

AUTH = {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def translator():
    return FakeTranslator(make_command(), reply="Done: story implemented.")


@pytest.fixture
async def state(manager, translator):
    gateway = GatewayState(job_manager=manager, translator=translator)

    async def override():
        return gateway

    app.dependency_overrides[get_state] = override
    yield gateway
    app.dependency_overrides.clear()


@pytest.fixture
async def client(state):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


class TestAuth:
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}])
    async def test_rejects_bad_credentials(self, client, headers):
        resp = await client.get("/api/jobs", headers=headers)
        assert resp.status_code == 401

    async def test_health_is_public(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200


class TestHealth:
    async def test_reports_bridge_and_queue(self, client, fake_bridge):
        resp = await client.get("/api/health")
        body = resp.json()
        assert body["status"] == "ok"
        assert body["claudeAvailable"] is True
        assert body["bridge"] == "idle"
        assert body["activeJobs"] == 0
        assert body["protocolVersion"] == "1.0"

    async def test_degraded_without_executable(self, client, fake_bridge):
        fake_bridge.available = False
        body = (await client.get("/api/health")).json()
        assert body["status"] == "degraded"
        assert body["claudeAvailable"] is False


class TestJobsApi:
    async def test_submit_and_get(self, client, manager, fake_bridge):
        resp = await client.post("/api/jobs", json={"owner": "alice", "command": "run tests"}, headers=AUTH)
        assert resp.status_code == 200
        job = resp.json()["job"]
        assert job["status"] == "queued"
        assert job["owner"] == "alice"

        await wait_until(lambda: len(fake_bridge.runs) == 1)
        fake_bridge.runs[0].emit("42 passed")
        fake_bridge.runs[0].finish("42 passed")

        await wait_until(lambda: manager.get_job(job["id"]).status.is_terminal)
        detail = (await client.get(f"/api/jobs/{job['id']}", headers=AUTH)).json()["job"]
        assert detail["status"] == "completed"
        assert detail["output"] == ["42 passed"]

    async def test_empty_command_rejected(self, client):
        resp = await client.post("/api/jobs", json={"owner": "alice", "command": ""}, headers=AUTH)
        assert resp.status_code == 422

    async def test_unknown_job(self, client):
        resp = await client.get("/api/jobs/nope", headers=AUTH)
        assert resp.status_code == 404

    async def test_list_and_active(self, client, manager):
        manager.create_job("alice", "one")
        manager.create_job("bob", "two")

        all_jobs = (await client.get("/api/jobs", headers=AUTH)).json()["jobs"]
        assert len(all_jobs) == 2

        bobs = (await client.get("/api/jobs/active", params={"owner": "bob"}, headers=AUTH)).json()["jobs"]
        assert [j["command"] for j in bobs] == ["two"]

    async def test_list_limit_validated(self, client):
        resp = await client.get("/api/jobs", params={"limit": 0}, headers=AUTH)
        assert resp.status_code == 422

    async def test_cancel(self, client, manager):
        job = manager.create_job("alice", "long task")
        resp = await client.post(f"/api/jobs/{job.id}/cancel", headers=AUTH)
        assert resp.json() == {"success": True, "jobId": job.id}
        assert manager.get_job(job.id).status == JobStatus.CANCELLED

        again = await client.post(f"/api/jobs/{job.id}/cancel", headers=AUTH)
        assert again.status_code == 400


class TestMessagesApi:
    async def test_message_runs_job(self, client, fake_bridge, translator):
        fake_bridge.auto_output = ["story done"]
        resp = await client.post(
            "/api/messages",
            json={"owner": "alice", "text": "implement story 1.2", "access_token": "llm-token"},
            headers=AUTH,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["messages"] == ["Done: story implemented."]
        assert body["job_id"]
        assert body["command"]["agent"] == "dev"
        assert translator.command_calls[0][0] == "llm-token"

    async def test_configured_token_used(self, client, fake_bridge, translator, monkeypatch):
        monkeypatch.setattr(config, "translator_token", "from-env")
        fake_bridge.auto_output = ["ok"]
        resp = await client.post("/api/messages", json={"owner": "alice", "text": "build it"}, headers=AUTH)
        assert resp.status_code == 200
        assert translator.command_calls[0][0] == "from-env"

    async def test_missing_token(self, client, monkeypatch):
        monkeypatch.setattr(config, "translator_token", "")
        resp = await client.post("/api/messages", json={"owner": "alice", "text": "build it"}, headers=AUTH)
        assert resp.status_code == 400

    async def test_reset_history(self, client, state):
        state.engine.get_or_create_context("alice", "tok")
        resp = await client.delete("/api/messages/alice/history", headers=AUTH)
        assert resp.json() == {"success": True}
        resp = await client.delete("/api/messages/alice/history", headers=AUTH)
        assert resp.json() == {"success": False}


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.sent: list[dict] = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


class TestProgressRelay:
    async def test_relays_events_in_order(self, manager, fake_bridge):
        relay = ConnectionManager()
        watch_all, watch_other = FakeWebSocket(), FakeWebSocket()
        await relay.connect(watch_all)
        await relay.connect(watch_other, job_id="someone-else")
        relay.attach(manager)
        try:
            fake_bridge.auto_output = ["a", "b", "c"]
            job = manager.create_job("alice", "cmd")
            await wait_until(lambda: len(watch_all.sent) == 5)
        finally:
            relay.detach()

        assert watch_other.sent == []
        assert all(m["type"] == "job_progress" for m in watch_all.sent)
        assert [m["data"]["kind"] for m in watch_all.sent] == ["started", "output", "output", "output", "completed"]
        assert [m["data"]["content"] for m in watch_all.sent[1:4]] == ["a", "b", "c"]
        assert watch_all.sent[0]["data"]["job_id"] == job.id

    async def test_job_filter(self, manager, fake_bridge):
        relay = ConnectionManager()
        fake_bridge.auto_output = ["x"]
        job = manager.create_job("alice", "cmd")
        watcher = FakeWebSocket()
        await relay.connect(watcher, job_id=job.id)
        relay.attach(manager)
        try:
            await wait_until(lambda: any(m["data"]["kind"] == "completed" for m in watcher.sent))
        finally:
            relay.detach()
        assert {m["data"]["job_id"] for m in watcher.sent} == {job.id}

    async def test_broken_socket_is_dropped(self, manager, fake_bridge):
        relay = ConnectionManager()
        broken = FakeWebSocket(fail=True)
        await relay.connect(broken)
        relay.attach(manager)
        try:
            fake_bridge.auto_output = ["x"]
            manager.create_job("alice", "cmd")
            await wait_until(lambda: relay.connection_count == 0)
        finally:
            relay.detach()


def test_websocket_rejects_bad_token():
    test_client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with test_client.websocket_connect("/api/ws?token=wrong") as ws:
            ws.receive_text()
    assert exc_info.value.code == 4001


@pytest.mark.parametrize("token", [None, "", "wrong", "tést"])
def test_is_valid_key_rejects(token):
    assert not is_valid_key(token)


def test_is_valid_key_accepts_configured_key():
    assert is_valid_key(API_KEY)
