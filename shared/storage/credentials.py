"""
Secure Store - encrypted at-rest storage for endpoint credentials.

Uses Fernet symmetric encryption so the saved password never touches disk
in plaintext. Master key comes from FETCHER_ENCRYPTION_KEY.

The store itself only speaks opaque strings (save/load by key);
save_endpoint/load_endpoint handle the EndpointConfig JSON on top.
"""
import logging
import os
import sqlite3
from base64 import urlsafe_b64encode
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError as PydanticValidationError

from core.state import EndpointConfig

logger = logging.getLogger(__name__)

ENDPOINT_KEY = "ftp_credentials"


def _build_fernet(key: Optional[Union[str, bytes]] = None) -> Fernet:
    key = key or os.getenv("FETCHER_ENCRYPTION_KEY", "")
    if not key:
        # Deterministic dev key; set FETCHER_ENCRYPTION_KEY in production
        logger.warning("FETCHER_ENCRYPTION_KEY not set, using derived dev key")
        key = urlsafe_b64encode(sha256(b"sheet-fetcher-dev-key-not-for-production").digest())
    elif isinstance(key, str):
        key = key.encode()
    return Fernet(key)


class SecureStore:
    """
    Encrypted key/value storage in SQLite.

    Args:
        db_path: SQLite file location
        encryption_key: Fernet key; defaults to FETCHER_ENCRYPTION_KEY
    """

    def __init__(self, db_path: str = "data/credentials.db",
                 encryption_key: Optional[Union[str, bytes]] = None):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._fernet = _build_fernet(encryption_key)
        self._init_db()
        logger.info(f"SecureStore initialized: {self.db_path}")

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS secrets (
                    key TEXT PRIMARY KEY,
                    encrypted_data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def _connect(self):
        return sqlite3.connect(str(self.db_path))

    def save(self, key: str, value: str) -> None:
        """Encrypt and store value under key, replacing any previous value."""
        encrypted = self._fernet.encrypt(value.encode("utf-8")).decode()
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO secrets (key, encrypted_data, updated_at) VALUES (?, ?, ?)",
                (key, encrypted, now),
            )
        logger.info(f"Secret stored: {key}")

    def load(self, key: str) -> Optional[str]:
        """
        Retrieve and decrypt a value.

        Returns None if nothing is stored or the value cannot be decrypted.
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT encrypted_data FROM secrets WHERE key = ?", (key,)
            ).fetchone()

        if row is None:
            return None

        try:
            return self._fernet.decrypt(row[0].encode()).decode("utf-8")
        except InvalidToken:
            logger.error(f"Failed to decrypt secret {key}: key mismatch or corrupt data")
            return None

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM secrets WHERE key = ?", (key,))
            removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Secret deleted: {key}")
        return removed

    def has(self, key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM secrets WHERE key = ?", (key,)).fetchone()
        return row is not None


def save_endpoint(store: SecureStore, endpoint: EndpointConfig, key: str = ENDPOINT_KEY) -> bool:
    """Persist an endpoint. Failures are logged and reported as False."""
    try:
        store.save(key, endpoint.model_dump_json())
    except sqlite3.Error as e:
        logger.error(f"Failed to save endpoint configuration: {e}")
        return False
    logger.info(f"Endpoint configuration saved for {endpoint.host}")
    return True


def load_endpoint(store: SecureStore, key: str = ENDPOINT_KEY) -> Optional[EndpointConfig]:
    """Load a saved endpoint; any store or decode failure counts as nothing saved."""
    try:
        raw = store.load(key)
    except sqlite3.Error as e:
        logger.error(f"Failed to read saved endpoint configuration: {e}")
        return None

    if raw is None:
        return None

    try:
        return EndpointConfig.model_validate_json(raw)
    except PydanticValidationError as e:
        logger.error(f"Saved endpoint configuration is invalid: {e}")
        return None
