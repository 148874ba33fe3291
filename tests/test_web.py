import base64
import os

import pytest

from snapvault.core.config import (
    CryptoConfig,
    LoggingConfig,
    MigrationConfig,
    SnapVaultConfig,
    StorageConfig,
)
from web.backend.app import create_app

KEY = base64.b64encode(bytes(32)).decode()


def _client(tmp_path, key=KEY, chunk_size=4096):
    config = SnapVaultConfig(
        crypto=CryptoConfig(encryption_key=key, chunk_size=chunk_size),
        storage=StorageConfig(snapshot_dir=tmp_path),
        logging=LoggingConfig(log_dir=tmp_path / "logs", enable_console=False),
    )
    app = create_app(config)
    app.testing = True
    return app.test_client()


@pytest.fixture
def client(tmp_path):
    return _client(tmp_path)


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json()["key_configured"] is True
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.get_json()["migration"] == {
        "force_migration": False,
        "will_clean_on_shutdown": False,
    }


def test_health_reports_migration_settings(tmp_path):
    config = SnapVaultConfig(
        crypto=CryptoConfig(encryption_key=KEY),
        storage=StorageConfig(snapshot_dir=tmp_path),
        migration=MigrationConfig(force_migration=True, clean_on_shutdown=True),
        logging=LoggingConfig(log_dir=tmp_path / "logs", enable_console=False),
    )
    app = create_app(config)
    app.testing = True

    response = app.test_client().get("/api/health")

    assert response.get_json()["migration"] == {
        "force_migration": True,
        "will_clean_on_shutdown": True,
    }


def test_text_round_trip(client):
    encrypted = client.post("/api/text/encrypt", json={"text": "hello redis"})
    assert encrypted.status_code == 200
    assert set(encrypted.get_json()) == {"base64EncodedEncryptedText", "iv", "tag"}

    decrypted = client.post("/api/text/decrypt", json=encrypted.get_json())
    assert decrypted.get_json() == {"text": "hello redis"}


def test_text_package_round_trip(client):
    packaged = client.post("/api/text/package", json={"text": "hello redis"})
    blob = base64.b64decode(packaged.get_json()["base64EncryptedPackage"])
    assert len(blob) == 39

    opened = client.post("/api/text/unpackage", json=packaged.get_json())
    assert opened.get_json() == {"text": "hello redis"}


def test_tampered_payload_is_rejected(client):
    payload = client.post("/api/text/encrypt", json={"text": "secret"}).get_json()
    tag = bytearray(base64.b64decode(payload["tag"]))
    tag[0] ^= 1
    payload["tag"] = base64.b64encode(bytes(tag)).decode()

    response = client.post("/api/text/decrypt", json=payload)

    assert response.status_code == 400
    assert "secret" not in response.get_data(as_text=True)


def test_short_package_is_bad_request(client):
    response = client.post(
        "/api/text/unpackage",
        json={"base64EncryptedPackage": base64.b64encode(bytes(27)).decode()},
    )

    assert response.status_code == 400


@pytest.mark.parametrize("body", [None, {"text": 5}, {}])
def test_missing_text_is_bad_request(client, body):
    assert client.post("/api/text/encrypt", json=body).status_code == 400


def test_unconfigured_key_is_server_error(tmp_path):
    client = _client(tmp_path, key="")

    response = client.post("/api/text/encrypt", json={"text": "x"})

    assert response.status_code == 500
    assert response.get_json() == {"error": "Encryption is not configured"}


def test_snapshot_round_trip(tmp_path):
    client = _client(tmp_path, chunk_size=1024)
    original = os.urandom(5000)
    (tmp_path / "dump.rdb").write_bytes(original)

    encrypted = client.post("/api/snapshot/encrypt")
    assert encrypted.status_code == 200
    assert encrypted.get_json()["filename"] == "dump.rdb.crypt"
    assert encrypted.get_json()["encrypted_size"] == 5000 + 5 * 28

    decrypted = client.post("/api/snapshot/decrypt")
    assert decrypted.status_code == 200
    assert (tmp_path / "dump.rdb.dcrypt").read_bytes() == original


def test_snapshot_file_name_is_sanitized(client, tmp_path):
    (tmp_path / "other.rdb").write_bytes(b"other snapshot")

    response = client.post("/api/snapshot/encrypt", json={"file_name": "../other.rdb"})

    assert response.status_code == 200
    assert response.get_json()["source"] == "other.rdb"


def test_missing_snapshot_is_not_found(client):
    assert client.post("/api/snapshot/encrypt").status_code == 404
    assert client.post("/api/snapshot/decrypt").status_code == 404
