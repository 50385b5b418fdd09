"""Tests for the FastAPI surface: envelopes, Problem Details and routing."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from placeops.api.app import create_app

PREFIX = "/api/v1"


@pytest.fixture()
def client(settings, make_channel, remote):
    remote.add("Building", "b1", "HQ")
    remote.add("Floor", "f1", "Level 1", "b1")
    remote.add("Floor", "f2", "Level 2", "b1")
    app = create_app(settings, channel=make_channel(remote))
    with TestClient(app) as c:
        yield c


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"mirror": "ok"}

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_headers(self, client):
        resp = client.get("/health/live", headers={"X-Request-ID": "req-42"})
        assert resp.headers["X-Request-ID"] == "req-42"
        assert "X-Process-Time-Ms" in resp.headers


class TestPlaces:
    def test_refresh_then_hierarchy(self, client):
        resp = client.post(f"{PREFIX}/places/refresh")
        assert resp.status_code == 200
        assert resp.json()["data"]["totals"]["created"] == 3

        tree = client.get(f"{PREFIX}/places/hierarchy").json()["data"]
        assert tree["count"] == 3
        assert [f["external_id"] for f in tree["roots"][0]["children"]] == ["f1", "f2"]

    def test_remote_listing(self, client):
        resp = client.get(f"{PREFIX}/places/Floor")
        assert resp.status_code == 200
        assert len(resp.json()["data"]) == 2

    def test_unknown_type_is_problem_json(self, client):
        resp = client.get(f"{PREFIX}/places/Garage")
        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/problem+json")
        assert resp.json()["code"] == "VALIDATION_FAILED"

    def test_create(self, client):
        resp = client.post(
            f"{PREFIX}/places",
            json={"type": "Building", "display_name": "Annex", "attributes": {"city": "Oslo"}},
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["mirrored"]["display_name"] == "Annex"

    def test_create_dry_run(self, client):
        resp = client.post(f"{PREFIX}/places?dry_run=true", json={"type": "Building", "display_name": "Annex"})
        assert resp.json()["data"]["dry_run"] is True
        assert client.get(f"{PREFIX}/mirror").json()["data"]["Building"] == 0

    def test_create_body_validation(self, client):
        resp = client.post(f"{PREFIX}/places", json={"type": "Building", "display_name": ""})
        assert resp.status_code == 422

    def test_aborted_refresh_flags_connection(self, client, remote):
        remote.failing = {"Building"}
        resp = client.post(f"{PREFIX}/places/refresh")
        assert resp.status_code == 502
        body = resp.json()
        assert body["code"] == "REFRESH_ABORTED"
        assert body["requires_connection"] is True
        assert body["details"]["report"]["aborted_stage"] == "fetch:Building"


class TestMirror:
    def test_paging_and_delete(self, client):
        client.post(f"{PREFIX}/places/refresh")

        page = client.get(f"{PREFIX}/mirror/Floor", params={"limit": 1}).json()
        assert page["page"] == {"total": 2, "limit": 1, "offset": 0, "has_more": True}

        building_id = client.get(f"{PREFIX}/mirror/Building").json()["data"][0]["id"]
        resp = client.delete(f"{PREFIX}/mirror/Building/{building_id}")
        assert resp.status_code == 409
        assert resp.json()["details"]["children"] == 2

        floor_id = page["data"][0]["id"]
        assert client.delete(f"{PREFIX}/mirror/Floor/{floor_id}").json()["data"]["deleted"] is True
        assert client.get(f"{PREFIX}/mirror/Floor/{floor_id}").status_code == 404


class TestCommands:
    def test_execute_and_history(self, client):
        resp = client.post(f"{PREFIX}/commands/execute", json={"command": "echo hello"})
        assert resp.status_code == 200
        assert resp.json()["data"]["output"] == "hello"

        failed = client.post(f"{PREFIX}/commands/execute", json={"command": "warn Access Denied"}).json()
        assert failed["data"]["succeeded"] is False

        history = client.get(f"{PREFIX}/commands/history").json()
        assert history["page"]["total"] == 2
        assert history["data"][0]["command"] == "warn Access Denied"

        assert client.delete(f"{PREFIX}/commands/history").json()["data"] == {"cleared": 2}


class TestConnections:
    def test_connect_and_status(self, client):
        resp = client.post(f"{PREFIX}/connections/exchange", json={"tenant": "contoso.onmicrosoft.com"})
        assert resp.status_code == 200

        (conn,) = client.get(f"{PREFIX}/connections").json()["data"]
        assert conn["service_name"] == "Exchange Online"
        assert conn["status"] == "connected"

        status = client.get(f"{PREFIX}/system/status").json()["data"]
        assert status["channel"]["state"] == "idle"
        assert status["mirror"]["Building"] == 0

    def test_denied_connect(self, client, remote):
        remote.deny_connect = True
        resp = client.post(f"{PREFIX}/connections/exchange", json={})
        assert resp.status_code == 502
        assert resp.json()["requires_connection"] is True

    def test_modules(self, client):
        checked = client.post(f"{PREFIX}/modules/check", json={}).json()
        assert {m["name"] for m in checked["data"]} == {"ExchangeOnlineManagement", "MicrosoftPlaces"}

        installed = client.post(f"{PREFIX}/modules/install", json={"name": "MicrosoftPlaces"})
        assert installed.status_code == 200
        modules = {m["module_name"]: m for m in client.get(f"{PREFIX}/modules").json()["data"]}
        assert modules["MicrosoftPlaces"]["status"] == "installed"


class TestRouting:
    def test_routes_registered(self, client):
        paths = set(client.app.openapi()["paths"])
        assert client.get("/health").status_code == 200
        for expected in (
            f"{PREFIX}/places/hierarchy",
            f"{PREFIX}/places/refresh",
            f"{PREFIX}/mirror/{{place_type}}",
            f"{PREFIX}/commands/execute",
            f"{PREFIX}/connections/exchange",
            f"{PREFIX}/modules/check",
            f"{PREFIX}/system/status",
        ):
            assert expected in paths

    def test_openapi(self, client):
        assert client.get(f"{PREFIX}/openapi.json").status_code == 200
