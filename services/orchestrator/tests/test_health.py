from fastapi.testclient import TestClient

from rulemaster_api.main import app


def test_health():
    client = TestClient(app)
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert isinstance(data.get("version"), str)
    assert "timestamp" in data


def test_detailed_health_before_services_start(monkeypatch):
    monkeypatch.setattr(app.state, "research_services", None, raising=False)
    client = TestClient(app)

    resp = client.get("/health/detailed")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["research"] == {"status": "not started"}
    assert data["configuration"]["complexity_threshold"] == 8
    assert "memory_percent" in data["system"]
