"""
Unit tests for shared.storage.credentials.

Tests encrypted persistence and EndpointConfig round trips.
"""

import sqlite3

import pytest
from cryptography.fernet import Fernet

from core.state import EndpointConfig
from shared.storage.credentials import ENDPOINT_KEY, SecureStore, load_endpoint, save_endpoint


@pytest.fixture
def store(tmp_path) -> SecureStore:
    return SecureStore(db_path=str(tmp_path / "creds.db"), encryption_key=Fernet.generate_key())


class TestSecureStore:

    def test_save_and_load(self, store):
        store.save("token", "abc123")

        assert store.load("token") == "abc123"
        assert store.has("token") is True

    def test_missing_key(self, store):
        assert store.load("absent") is None
        assert store.has("absent") is False

    def test_overwrite(self, store):
        store.save("token", "old")
        store.save("token", "new")

        assert store.load("token") == "new"

    def test_delete(self, store):
        store.save("token", "abc")

        assert store.delete("token") is True
        assert store.delete("token") is False
        assert store.load("token") is None

    def test_value_encrypted_at_rest(self, store):
        store.save("token", "plaintext-secret")

        with sqlite3.connect(str(store.db_path)) as conn:
            raw = conn.execute("SELECT encrypted_data FROM secrets").fetchone()[0]
        assert "plaintext-secret" not in raw

    def test_wrong_key_reads_as_absent(self, tmp_path):
        path = str(tmp_path / "creds.db")
        SecureStore(db_path=path, encryption_key=Fernet.generate_key()).save("token", "abc")

        other = SecureStore(db_path=path, encryption_key=Fernet.generate_key())

        assert other.load("token") is None

    def test_env_key(self, tmp_path, monkeypatch):
        key = Fernet.generate_key().decode()
        monkeypatch.setenv("FETCHER_ENCRYPTION_KEY", key)
        path = str(tmp_path / "creds.db")

        SecureStore(db_path=path).save("token", "abc")

        assert SecureStore(db_path=path, encryption_key=key).load("token") == "abc"


class TestEndpointPersistence:

    def test_round_trip(self, store):
        endpoint = EndpointConfig(
            host="ftp.example.org",
            port=990,
            username="reports",
            password="p@ss, with \"quotes\"",
            target_filename="exports/monthly.xlsx",
        )

        assert save_endpoint(store, endpoint) is True

        assert load_endpoint(store) == endpoint

    def test_nothing_saved(self, store):
        assert load_endpoint(store) is None

    def test_invalid_saved_value(self, store):
        store.save(ENDPOINT_KEY, '{"host": "", "port": 99999}')

        assert load_endpoint(store) is None

    def test_store_failure_is_not_fatal(self, store, tmp_path, caplog):
        store.db_path = tmp_path / "missing-dir" / "creds.db"

        assert load_endpoint(store) is None
        assert save_endpoint(store, EndpointConfig()) is False
        assert "Failed to" in caplog.text
