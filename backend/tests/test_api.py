"""API integration tests using FastAPI TestClient."""

from fastapi.testclient import TestClient

from backend.app.main import _cap_settings, app

client = TestClient(app)

SCENARIO = (
    'console.log("Start"); setTimeout(()=>console.log("Timeout"),1000); '
    'Promise.resolve().then(()=>console.log("Promise")); console.log("End");'
)


def _logs(console):
    return [e["args"][0] for e in console if e["type"] == "log"]


def test_translate_returns_instructions_and_diagnostics():
    r = client.post("/translate", json={"code": "var a = 1;\nfor (;;) {}\n"})
    assert r.status_code == 200
    data = r.json()
    assert data["errors"] is None
    assert data["instructions"][0]["kind"] == "hoistingPhase"
    assert len(data["diagnostics"]) == 1


def test_translate_error_shape():
    r = client.post("/translate", json={"code": "let s = 'open;"})
    data = r.json()
    assert data["errors"]["code"] == "TRANSLATION_ERROR"
    assert data["instructions"] == []


def test_run_orders_event_loop():
    r = client.post("/run", json={"code": SCENARIO})
    assert r.status_code == 200
    data = r.json()
    assert data["errors"] is None
    assert _logs(data["console"]) == ["Start", "End", "Promise", "Timeout"]
    assert data["steps"] >= 4
    assert data["state"]["is_running"] is False


def test_run_reports_translation_error():
    r = client.post("/run", json={"code": "function f() {\n  console.log(1);\n"})
    data = r.json()
    assert data["errors"]["code"] == "TRANSLATION_ERROR"


def test_session_lifecycle():
    r = client.post("/sessions", json={"code": SCENARIO, "settings": {"speed_ms": 10}})
    assert r.status_code == 200
    created = r.json()
    sid = created["session_id"]
    assert [i["kind"] for i in created["instructions"]] == ["console", "setTimeout", "promise", "console"]

    r = client.post(f"/sessions/{sid}/step")
    data = r.json()
    assert data["has_more"] is True
    assert data["phase"] == "paused"
    assert _logs(data["console"]) == ["Start"]

    r = client.post(f"/sessions/{sid}/run", json={"wait": True})
    data = r.json()
    assert data["phase"] == "completed"
    assert _logs(data["console"]) == ["Start", "End", "Promise", "Timeout"]

    r = client.post(f"/sessions/{sid}/reset")
    assert r.json()["phase"] == "idle"
    assert r.json()["console"] == []

    r = client.get(f"/sessions/{sid}")
    assert r.status_code == 200

    r = client.delete(f"/sessions/{sid}")
    assert r.json() == {"deleted": sid}
    assert client.get(f"/sessions/{sid}").status_code == 404


def test_step_until_done():
    sid = client.post("/sessions", json={"code": "let a = 1;\nconsole.log(a);"}).json()["session_id"]
    steps = 0
    while client.post(f"/sessions/{sid}/step").json()["has_more"]:
        steps += 1
        assert steps < 10
    data = client.get(f"/sessions/{sid}").json()
    assert data["phase"] == "completed"
    assert data["state"]["scopes"][0]["variables"]["a"]["value"] == 1


def test_pause_outside_run_is_a_noop():
    sid = client.post("/sessions", json={"code": "console.log(1);"}).json()["session_id"]
    r = client.post(f"/sessions/{sid}/pause")
    assert r.json()["paused"] is False
    r = client.post(f"/sessions/{sid}/resume")
    assert r.json()["resumed"] is False


def test_unknown_session_is_404():
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/step").status_code == 404


def test_cap_settings_clamps_client_values():
    caps = _cap_settings({"speed_ms": 10 ** 6, "max_steps": 10 ** 9, "max_call_depth": -3})
    assert caps["speed_ms"] == 5000
    assert caps["max_steps"] == 10000
    assert caps["max_call_depth"] == 1
    assert caps["realtime"] is False
    assert _cap_settings(None)["speed_ms"] == 1000
