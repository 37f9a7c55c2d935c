"""
Integration tests for the FastAPI surface in dashboard_service.main.

Components are wired by build_components over a FakeTransport; no network.
"""

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from core.state import EndpointConfig
from dashboard_service.main import build_components, create_app
from shared.storage.credentials import SecureStore, load_endpoint, save_endpoint


@pytest.fixture
def store(test_config) -> SecureStore:
    return SecureStore(db_path=test_config.credential_db_path, encryption_key=Fernet.generate_key())


@pytest.fixture
def transport(transport_factory):
    return transport_factory(files=["report.csv", "old.xls"])


@pytest.fixture
def components(test_config, transport, store):
    return build_components(test_config, transport=transport, store=store)


@pytest.fixture
def api(components):
    app = create_app(components=components, configure_logs=False, start_background=False)
    with TestClient(app) as client:
        yield client


class TestSystemEndpoints:

    def test_health(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["environment"] == "development"

    def test_metrics(self, api):
        api.get("/health")

        response = api.get("/metrics")

        assert response.status_code == 200
        assert "fetcher_api_requests_total" in response.text

    def test_logs(self, api, components):
        components.log_queue.log("warn", "disk nearly full")

        response = api.get("/logs", params={"days": 1})

        assert response.status_code == 200
        assert response.json()["logs"][0]["message"] == "disk nearly full"


class TestSeriesEndpoints:

    def test_series_missing_before_first_cycle(self, api):
        assert api.get("/series").status_code == 404

    def test_refresh_then_series(self, api):
        refresh = api.post("/refresh")

        assert refresh.status_code == 200
        assert refresh.json()["success"] is True
        assert refresh.json()["synthetic"] is False

        series = api.get("/series").json()
        assert series["labels"] == ["Jan", "Feb", "Mar"]
        assert [d["column"] for d in series["datasets"]] == ["Sales", "Profit"]
        assert [p["value"] for p in series["proportional"]] == [100, 200, 300]

    def test_refresh_failure_reported(self, api, transport):
        transport.content = b"Month\nJan\n"

        body = api.post("/refresh").json()

        assert body["success"] is False
        assert "No numeric data" in body["message"]

    def test_refresh_conflict(self, api, components):
        components.scheduler._in_progress = True

        response = api.post("/refresh")

        assert response.status_code == 409

    def test_status(self, api):
        api.post("/refresh")

        body = api.get("/status").json()

        assert body["connection_status"] == "disconnected"
        assert body["in_progress"] is False
        assert body["last_updated"] is not None
        assert body["synthetic"] is False
        assert len(body["metrics"]) == 2


class TestRemoteEndpoints:

    def test_list_files(self, api):
        body = api.get("/files", params={"directory": "/exports"}).json()

        assert body == {"directory": "/exports", "files": ["report.csv", "old.xls"]}

    def test_get_config_is_redacted(self, api):
        body = api.get("/config").json()

        assert body["endpoint"]["host"] == "ftp.test.local"
        assert "password" not in body["endpoint"]

    def test_put_config_persists(self, api, components, store):
        payload = {
            "host": "ftp.new.local",
            "port": 2222,
            "username": "ops",
            "password": "hunter2",
            "target_filename": "weekly.xlsx",
        }

        response = api.put("/config", json=payload)

        assert response.status_code == 200
        assert response.json()["persisted"] is True
        assert components.client.get_config() == EndpointConfig(**payload)
        assert load_endpoint(store) == EndpointConfig(**payload)

    def test_put_config_validates(self, api):
        response = api.put("/config", json={"host": "ftp.x", "port": 0})

        assert response.status_code == 422


class TestComposition:

    def test_saved_endpoint_preferred(self, test_config, transport, store):
        saved = EndpointConfig(host="ftp.saved.local", target_filename="saved.csv")
        save_endpoint(store, saved)

        components = build_components(test_config, transport=transport, store=store)

        assert components.client.get_config() == saved

    def test_tier_defaults_without_saved_endpoint(self, test_config, transport, store):
        components = build_components(test_config, transport=transport, store=store)

        assert components.client.get_config().host == "ftp.test.local"
        assert components.client.allow_synthetic_fallback is True
        assert components.log_queue.sink is None

    def test_malformed_encryption_key_falls_back_to_tier_defaults(self, test_config, transport, clean_env, caplog):
        clean_env.setenv("FETCHER_ENCRYPTION_KEY", "not-a-valid-fernet-key")

        components = build_components(test_config, transport=transport)

        assert components.store is None
        assert components.client.get_config().host == "ftp.test.local"
        assert components.client.get_config().target_filename == "report.csv"
        assert "Secure store unavailable" in caplog.text
