"""HTTP API tests against a temporary SQLite file."""

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from cardtime.api.deps import current_context, get_host
from cardtime.core.config import Settings
from cardtime.main import create_app
from cardtime.services.host import Person, StaticHost


@pytest.fixture
def app(tmp_path):
    settings = Settings(
        APP_SECRET="test-secret",
        SQLITE_PATH=str(tmp_path / "api.db"),
        TRELLO_API_KEY=None,
        CSV_BOM=True,
    )
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(client):
    r = client.post("/api/auth/login", json={"board_id": "b1", "member_id": "m1", "member_name": "Alice"})
    assert r.status_code == 200
    return {"X-Tracker-Context": r.json()["token"]}


class TestAuth:
    def test_requires_context(self, client):
        assert client.get("/api/cards/c1/time").status_code == 401

    def test_rejects_tampered_token(self, client, auth):
        bad = {"X-Tracker-Context": auth["X-Tracker-Context"] + "x"}
        assert client.get("/api/me", headers=bad).status_code == 401

    def test_me(self, client, auth):
        r = client.get("/api/me", headers=auth)
        assert r.json()["member_id"] == "m1"
        assert r.json()["board_id"] == "b1"

    def test_query_param_token(self, client, auth):
        r = client.get("/api/me", params={"ctx": auth["X-Tracker-Context"]})
        assert r.status_code == 200

    def test_login_requires_member_without_trello(self, client):
        assert client.post("/api/auth/login", json={"board_id": "b1"}).status_code == 401


class TestTimers:
    def test_start_stop_cycle(self, client, auth):
        r = client.post("/api/cards/c1/timer/start", headers=auth)
        assert r.json() == {"card_id": "c1", "member_id": "m1", "running": True}

        view = client.get("/api/cards/c1/time", headers=auth).json()
        assert view["active"] is True
        assert view["members"][0]["active_timer_id"] is not None

        r = client.post("/api/cards/c1/timer/stop", headers=auth)
        assert r.json()["running"] is False
        assert client.get("/api/cards/c1/time", headers=auth).json()["active"] is False

    def test_toggle_for_other_member(self, app, client, auth):
        async def board_host(ctx: dict = Depends(current_context)):
            me = Person(ctx["member_id"], ctx["member_name"])
            return StaticHost(person=me, board_id=ctx["board_id"], members=[me, Person("m2", "Bob")])

        app.dependency_overrides[get_host] = board_host
        r = client.post("/api/cards/c1/timer/toggle", headers=auth, json={"member": {"id": "m2", "name": "Bob"}})
        assert r.json()["member_id"] == "m2"
        assert r.json()["running"] is True

    def test_adjust_with_amount_string(self, client, auth):
        r = client.post("/api/cards/c1/time/adjust", headers=auth, json={"amount": "1h 30m"})
        assert r.status_code == 200
        assert r.json()["duration_ms"] == 5_400_000

        r = client.post("/api/cards/c1/time/adjust", headers=auth, json={"amount": "2h", "subtract": True, "day": "2024-03-01"})
        assert r.json()["duration_ms"] == -7_200_000
        assert r.json()["started_at"].startswith("2024-03-01T12:00:00")

        view = client.get("/api/cards/c1/time", headers=auth).json()
        assert view["total_ms"] == -1_800_000
        assert view["formatted"] == "0m 0s"

    def test_adjust_rejects_garbage(self, client, auth):
        r = client.post("/api/cards/c1/time/adjust", headers=auth, json={"amount": "soon"})
        assert r.status_code == 422
        assert r.json()["code"] == "invalid_input"
        assert client.post("/api/cards/c1/time/adjust", headers=auth, json={}).status_code == 422

    def test_reset_and_stop_all(self, client, auth):
        client.post("/api/cards/c1/time/adjust", headers=auth, json={"delta_ms": 60_000})
        client.post("/api/cards/c2/timer/start", headers=auth)
        timer_id = client.get("/api/cards/c2/time", headers=auth).json()["members"][0]["active_timer_id"]

        stopped = client.post("/api/timers/stop", headers=auth, json={"timer_ids": [timer_id]}).json()
        assert [e["card_id"] for e in stopped] == ["c2"]

        assert client.delete("/api/cards/c1/time", headers=auth).json() == {"entries": 1, "active_timers": 0}


class TestEstimates:
    def test_set_read_and_clear(self, client, auth):
        r = client.put("/api/cards/c1/estimates", headers=auth, json={"estimate": "2h"})
        assert r.json() == {"card_id": "c1", "member_id": "m1", "change": "created"}

        r = client.put("/api/cards/c1/estimates", headers=auth, json={"estimated_ms": 7_200_000})
        assert r.json()["change"] == "unchanged"

        estimates = client.get("/api/cards/c1/estimates", headers=auth).json()
        assert [(e["member_id"], e["estimated_ms"]) for e in estimates] == [("m1", 7_200_000)]
        assert client.get("/api/cards/c1/estimates/history", headers=auth).json() == []

        assert client.delete("/api/cards/c1/estimates/all", headers=auth).json() == {"removed": 1}
        assert client.get("/api/cards/c1/estimates", headers=auth).json() == []

    def test_zero_estimate_rejected(self, client, auth):
        r = client.put("/api/cards/c1/estimates", headers=auth, json={"estimated_ms": 0})
        assert r.status_code == 422

    def test_remove_own_estimate(self, client, auth):
        client.put("/api/cards/c1/estimates", headers=auth, json={"estimate": "30m"})
        assert client.delete("/api/cards/c1/estimates", headers=auth).json() == {"removed": True}


class TestReports:
    def _seed(self, client, auth):
        client.put("/api/cards/c1/estimates", headers=auth, json={"estimate": "1h"})
        client.post("/api/cards/c1/time/adjust", headers=auth, json={"amount": "90m"})

    def test_report_json(self, client, auth):
        self._seed(client, auth)
        report = client.get("/api/reports", headers=auth, params={"kind": "estimate", "group_by": "card"}).json()
        row = report["rows"][0]
        assert row["label"] == "c1"
        assert row["deviation_ms"] == 1_800_000
        assert report["summary"]["total_actual_ms"] == 5_400_000

    def test_csv_download_has_bom(self, client, auth):
        self._seed(client, auth)
        r = client.get("/api/reports/export.csv", headers=auth, params={"preset": "all"})
        assert r.headers["content-type"].startswith("text/csv")
        assert r.content.startswith("\ufeff".encode("utf-8"))
        assert "attachment" in r.headers["content-disposition"]

    def test_json_download(self, client, auth):
        self._seed(client, auth)
        r = client.get("/api/reports/export.json", headers=auth, params={"group_by": "person"})
        assert r.json()[0]["label"] == "Alice"

    def test_entries_download(self, client, auth):
        self._seed(client, auth)
        text = client.get("/api/reports/entries.csv", headers=auth).content.decode("utf-8-sig")
        assert text.splitlines()[1].startswith("c1;")

    def test_bad_filters(self, client, auth):
        assert client.get("/api/reports", headers=auth, params={"preset": "someday"}).status_code == 422
        assert client.get("/api/reports", headers=auth, params={"group_by": "planet"}).status_code == 422


class TestMeta:
    def test_health_and_client_config(self, client):
        assert client.get("/api/health").json() == {"ok": True}
        cfg = client.get("/api/client-config").json()
        assert cfg["poll_interval_seconds"] == 5.0
        assert cfg["grace_period_seconds"] == 120


class TestBoardIsolation:
    def _login(self, client, board_id, member_id):
        r = client.post("/api/auth/login", json={"board_id": board_id, "member_id": member_id})
        return {"X-Tracker-Context": r.json()["token"]}

    def test_other_board_cannot_wipe_card(self, client, auth):
        client.post("/api/cards/c1/time/adjust", headers=auth, json={"amount": "90m"})
        client.put("/api/cards/c1/estimates", headers=auth, json={"estimate": "2h"})
        intruder = self._login(client, "other-board", "m9")

        assert client.delete("/api/cards/c1/time", headers=intruder).json() == {"entries": 0, "active_timers": 0}
        assert client.delete("/api/cards/c1/estimates/all", headers=intruder).json() == {"removed": 0}
        assert client.get("/api/cards/c1/time", headers=intruder).json()["members"] == []

        assert client.get("/api/cards/c1/time", headers=auth).json()["total_ms"] == 5_400_000
        assert len(client.get("/api/cards/c1/estimates", headers=auth).json()) == 1

    def test_unknown_member_override_rejected(self, client, auth):
        r = client.post("/api/cards/c1/timer/start", headers=auth, json={"member": {"id": "not-on-board"}})
        assert r.status_code == 422
        r = client.put("/api/cards/c1/estimates", headers=auth, json={"estimate": "1h", "member": {"id": "not-on-board"}})
        assert r.status_code == 422
        assert client.get("/api/cards/c1/time", headers=auth).json()["members"] == []
