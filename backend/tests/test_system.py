"""Health, version and CORS headers."""


def test_health_reports_checks(client, db_session):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert set(resp.json["checks"]) == {"database", "session_service", "settings"}
    # flags not initialized yet
    assert resp.json["status"] == "degraded"


def test_health_healthy_after_init(client, db_session):
    from groupbuy.services import settings_service
    settings_service.ensure_defaults()

    resp = client.get("/health")
    assert resp.json["status"] == "healthy"
    assert resp.json["checks"]["database"]["status"] == "healthy"


def test_version(client):
    resp = client.get("/version")
    assert resp.status_code == 200
    assert resp.json["server_time"].endswith("Z")


def test_cors_only_for_allowed_origins(client, db_session):
    allowed = client.get("/api/settings", headers={"Origin": "http://localhost:3000"})
    denied = client.get("/api/settings", headers={"Origin": "http://evil.example"})

    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert "Idempotency-Key" in allowed.headers["Access-Control-Allow-Headers"]
    assert "Access-Control-Allow-Origin" not in denied.headers
