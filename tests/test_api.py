import pytest
from fastapi.testclient import TestClient

import main

DOC = """
files:
- path: /etc/app.conf
  permissions: 416
  content:
    inline:
      data: hello
units:
- name: app.service
  enable: true
  command: start
  content: "[Service]\\nExecStart=/bin/app\\n"
"""


@pytest.fixture
def client(reconciler, source, monkeypatch):
    # Drive cycles from the test instead of the background loop
    monkeypatch.setattr(main, "START_LOOP", False)
    monkeypatch.setattr(main, "reconciler", reconciler)
    source.raw = DOC.encode()
    with TestClient(main.app) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_reconcile_then_status_cycles_and_applied(client, fs, manager):
    r = client.post("/reconcile", json={"reason": "auto-update"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "succeeded"
    assert body["reason"] == "auto-update"
    assert body["description"].startswith("All operations successful.")
    assert fs.read_file("/etc/app.conf") == b"hello"
    assert ("start", "app.service") in manager.actions

    status = client.get("/status").json()
    assert status["cycles_run"] == 1
    assert status["last_applied_checksum"] == body["checksum"]
    assert status["last_recorded_cycle"]["status"] == "succeeded"

    cycles = client.get("/cycles", params={"limit": 5}).json()
    assert [c["status"] for c in cycles] == ["succeeded"]

    applied = client.get("/applied").json()
    assert [f["path"] for f in applied["files"]] == ["/etc/app.conf"]
    assert applied["units"][0]["name"] == "app.service"

    events = client.get("/events", params={"limit": 100}).json()
    assert any("Cycle succeeded" in e["message"] for e in events)


def test_second_reconcile_is_skipped_unless_forced(client):
    client.post("/reconcile", json={})
    assert client.post("/reconcile", json={}).json()["status"] == "skipped"

    forced = client.post("/reconcile", json={"force": True}).json()
    assert forced["status"] == "succeeded"
    assert forced["steps_total"] == 0


def test_reconcile_rejects_unknown_reason(client):
    r = client.post("/reconcile", json={"reason": "because"})
    assert r.status_code == 422


def test_plan_is_a_dry_run(client, fs, manager):
    r = client.post("/plan", json={"document": DOC})
    assert r.status_code == 200
    body = r.json()

    assert body["restart_requested"] is False
    assert body["changes"]["files"] == [{"path": "/etc/app.conf", "change": "added"}]
    assert body["changes"]["units"] == [{"name": "app.service", "change": "added"}]
    steps = [(s["action"], s["target"]) for s in body["steps"]]
    assert steps == [
        ("write-file", "/etc/app.conf"),
        ("write-file", "/etc/systemd/system/app.service"),
        ("enable-unit", "app.service"),
        ("reload-manager", ""),
        ("start-unit", "app.service"),
    ]
    assert body["steps"][0]["mode"] == "0640"
    assert body["steps"][0]["phase"] == 1
    assert not fs.exists("/etc/app.conf")
    assert manager.actions == []


def test_plan_rejects_orphan_drop_in(client):
    doc = "extensionUnits:\n- name: ghost\n  dropIns:\n  - name: d.conf\n    content: x\n"
    r = client.post("/plan", json={"document": doc})
    assert r.status_code == 422
    assert "ghost" in r.json()["detail"]


def test_plan_rejects_invalid_document(client):
    r = client.post("/plan", json={"document": "files: [unterminated"})
    assert r.status_code == 422
