from fastapi.testclient import TestClient

from rifaqui.core.config import Settings
from rifaqui.main import app
from rifaqui.utils.errors import NotFoundError


@app.get("/_test/boom")
async def boom_route():
    raise RuntimeError("boom")


@app.get("/_test/missing")
async def missing_route():
    raise NotFoundError("Campaign not found", campaign_id="x")


client = TestClient(app, raise_server_exceptions=False)


def test_liveness():
    res = client.get("/healthz/live")
    assert res.status_code == 200
    assert res.json()["kind"] == "live"


def test_readiness_pings_database():
    res = client.get("/healthz/ready")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.headers["cache-control"] == "no-store"


def test_domain_errors_use_envelope():
    res = client.get("/_test/missing")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not found", "message": "Campaign not found"}


def test_unhandled_error_returns_json_500():
    res = client.get("/_test/boom")
    assert res.status_code == 500
    assert res.json()["success"] is False
    assert res.json()["error"] == "Internal server error"


def test_settings_parse_origins_and_batch_size(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("BACKFILL_BATCH_SIZE", "250")
    monkeypatch.setenv("ADMIN_API_KEY", "  k  ")
    s = Settings(_env_file=None)
    assert s.CORS_ORIGINS == ["https://a.example", "https://b.example"]
    assert s.BACKFILL_BATCH_SIZE == 250
    assert s.ADMIN_API_KEY == "k"
