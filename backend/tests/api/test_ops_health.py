import pytest

from app.obs import health
from app.settings import settings


@pytest.mark.asyncio
async def test_liveness(api_client):
	response = await api_client.get("/health/live")

	assert response.status_code == 200
	assert response.json() == {"status": "ok"}
	assert response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_readiness_reports_degraded_postgres(api_client, monkeypatch):
	async def postgres_down(timeout: float = 0.3):
		return {"ok": False, "error": "connection refused"}

	monkeypatch.setattr(health, "_postgres_status", postgres_down)

	response = await api_client.get("/health/ready")

	assert response.status_code == 503
	payload = response.json()
	assert payload["status"] == "degraded"
	assert payload["checks"]["redis"]["ok"] is True


@pytest.mark.asyncio
async def test_readiness_ok(api_client, monkeypatch):
	async def postgres_up(timeout: float = 0.3):
		return {"ok": True, "latency_ms": 1.0}

	monkeypatch.setattr(health, "_postgres_status", postgres_up)

	response = await api_client.get("/health/ready")

	assert response.status_code == 200
	assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")

	denied = await api_client.get("/metrics")
	allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "ops-secret"})

	assert denied.status_code == 403
	assert denied.json()["detail"] == "forbidden"
	assert allowed.status_code == 200
	assert "rh_quests_completed_total" in allowed.text


@pytest.mark.asyncio
async def test_metrics_public_when_configured(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", True)

	response = await api_client.get("/metrics")

	assert response.status_code == 200
