from sqlalchemy.exc import OperationalError

from flaggate.core.config import settings
from flaggate.services.feature_flags import FeatureFlagStore
from flaggate.utils.cache import cache

ADMIN = "/api/v1/admin/feature-flags"
PUBLIC = "/api/v1/feature-flags"


async def _create(client, headers, **payload):
    return await client.post(ADMIN, json=payload, headers=headers)


async def test_admin_requires_token(client):
    resp = await client.get(ADMIN)
    assert resp.status_code == 401

    resp = await client.get(ADMIN, headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 403


async def test_create_and_get_flag(client, admin_headers):
    resp = await _create(client, admin_headers, flag_key="stocks_widget", description="行情小组件")
    assert resp.status_code == 201
    body = resp.json()
    assert body["flag_key"] == "stocks_widget"
    assert body["enabled"] is False
    assert body["rollout_percentage"] == 0

    resp = await client.get(f"{ADMIN}/stocks_widget", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["description"] == "行情小组件"

    resp = await _create(client, admin_headers, flag_key="stocks_widget")
    assert resp.status_code == 409


async def test_get_unknown_flag(client, admin_headers):
    resp = await client.get(f"{ADMIN}/does_not_exist", headers=admin_headers)
    assert resp.status_code == 404


async def test_patch_validation_and_not_found(client, admin_headers):
    await _create(client, admin_headers, flag_key="guarded", rollout_percentage=20)

    resp = await client.patch(f"{ADMIN}/guarded", json={"rollout_percentage": 150}, headers=admin_headers)
    assert resp.status_code == 422

    resp = await client.get(f"{ADMIN}/guarded", headers=admin_headers)
    assert resp.json()["rollout_percentage"] == 20

    resp = await client.patch(f"{ADMIN}/missing", json={"enabled": True}, headers=admin_headers)
    assert resp.status_code == 404


async def test_patch_records_actor_and_trace(client, admin_headers):
    await _create(client, admin_headers, flag_key="checkout_v2")

    headers = {**admin_headers, "X-Request-ID": "req-abc"}
    resp = await client.patch(
        f"{ADMIN}/checkout_v2",
        json={"enabled": True, "rollout_percentage": 100, "reason": "全量"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-abc"
    assert resp.json()["enabled"] is True

    resp = await client.get(f"{ADMIN}/checkout_v2/audit", headers=admin_headers)
    rows = resp.json()
    assert [r["action"] for r in rows] == ["update", "create"]
    assert rows[0]["actor_id"] == "admin-7"
    assert rows[0]["actor_type"] == "admin"
    assert rows[0]["trace_id"] == "req-abc"
    assert rows[0]["reason"] == "全量"
    assert rows[0]["before_state"]["rollout_percentage"] == 0
    assert rows[0]["after_state"]["rollout_percentage"] == 100


async def test_evaluate_endpoint(client, admin_headers):
    await _create(
        client,
        admin_headers,
        flag_key="beta_widget",
        enabled=True,
        rollout_percentage=0,
        whitelist=["42"],
        analytics_enabled=True,
    )

    resp = await client.get(f"{PUBLIC}/beta_widget/evaluate", params={"user_id": "42"})
    assert resp.status_code == 200
    assert resp.json() == {"flag_key": "beta_widget", "enabled": True, "reason": "whitelisted"}

    resp = await client.get(f"{PUBLIC}/beta_widget/evaluate", params={"user_id": "99"})
    assert resp.json()["reason"] == "zero_rollout"

    resp = await client.get(f"{PUBLIC}/beta_widget/evaluate")
    assert resp.json() == {"flag_key": "beta_widget", "enabled": False, "reason": "missing_subject"}

    resp = await client.get(f"{PUBLIC}/does_not_exist/evaluate", params={"user_id": "42"})
    assert resp.json() == {"flag_key": "does_not_exist", "enabled": False, "reason": "flag_not_found"}


async def test_evaluation_log_endpoints(client, admin_headers):
    await _create(client, admin_headers, flag_key="tracked", enabled=True, rollout_percentage=100, analytics_enabled=True)

    await client.get(
        f"{PUBLIC}/tracked/evaluate",
        params={"user_id": "u1", "analytics_consent": "true"},
        headers={"X-Request-ID": "req-eval"},
    )
    await client.get(f"{PUBLIC}/tracked/evaluate", params={"user_id": "u2"})

    resp = await client.get(f"{ADMIN}/tracked/evaluations", headers=admin_headers)
    rows = resp.json()
    assert len(rows) == 1
    assert rows[0]["subject_id"] == "u1"
    assert rows[0]["trace_id"] == "req-eval"
    assert rows[0]["rollout_percentage_snapshot"] == 100

    resp = await client.get(f"{ADMIN}/tracked/evaluations/summary", headers=admin_headers)
    assert resp.json()["by_reason"] == {"full_rollout": 1}

    resp = await client.delete(f"{ADMIN}/evaluations/subjects/user/u1", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"subject_type": "user", "deleted": 1}

    resp = await client.get(f"{ADMIN}/tracked/evaluations", headers=admin_headers)
    assert resp.json() == []

    resp = await client.delete(f"{ADMIN}/evaluations/subjects/robot/u1", headers=admin_headers)
    assert resp.status_code == 422


async def test_delete_flag(client, admin_headers):
    await _create(client, admin_headers, flag_key="legacy", enabled=True, rollout_percentage=100)

    resp = await client.delete(f"{ADMIN}/legacy", params={"reason": "下线"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["is_deleted"] is True

    resp = await client.get(f"{PUBLIC}/legacy/evaluate", params={"user_id": "u1"})
    assert resp.json()["reason"] == "flag_not_found"

    resp = await client.get(ADMIN, headers=admin_headers)
    assert resp.json() == []
    resp = await client.get(ADMIN, params={"include_deleted": "true"}, headers=admin_headers)
    assert [f["flag_key"] for f in resp.json()] == ["legacy"]

    resp = await client.delete(f"{ADMIN}/legacy", headers=admin_headers)
    assert resp.status_code == 404


async def test_evaluate_store_failure_returns_503(client, monkeypatch):
    async def unavailable(db, flag_key):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(FeatureFlagStore, "load_snapshot", staticmethod(unavailable))
    resp = await client.get(f"{PUBLIC}/checkout_v2/evaluate", params={"user_id": "u1"})
    assert resp.status_code == 503


async def test_ping(client):
    resp = await client.get("/ping")
    assert resp.status_code == 200
    assert resp.json()["message"] == "pong"

    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["checks"] == {"database": "healthy", "redis": "disabled"}


async def test_health_served_at_root_with_security_headers(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Request-ID"]

    resp = await client.get("/api/v1/version")
    assert resp.json()["version"] == settings.VERSION


async def test_health_degraded_when_cache_unreachable(client, monkeypatch):
    async def unreachable():
        raise ConnectionError("redis down")

    monkeypatch.setattr(settings, "FEATURE_FLAG_CACHE_ENABLED", True)
    monkeypatch.setattr(cache, "get_client", unreachable)
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "degraded"
    assert body["checks"] == {"database": "healthy", "redis": "unhealthy"}
