"""
SnapVault Web API
=================
Flask backend exposing text encryption and snapshot file encryption.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, current_app, jsonify, request
from werkzeug.utils import secure_filename

from snapvault.core.config import SnapVaultConfig
from snapvault.core.crypto.payloads import (
    EncryptedTextPackagePayload,
    EncryptedTextPayload,
    decrypt_text,
    decrypt_text_package,
    encrypt_text,
    encrypt_text_package,
)
from snapvault.core.exceptions import (
    AuthenticationFailure,
    ConfigurationError,
    IOFailure,
    MalformedInput,
)
from snapvault.core.file_ops.snapshot import decrypt_file_packages, encrypt_file_packages
from snapvault.core.logging import configure_logging

_log = logging.getLogger("snapvault.web")


def create_app(config: Optional[SnapVaultConfig] = None) -> Flask:
    app = Flask(__name__)
    app.config["SNAPVAULT"] = config or SnapVaultConfig.load()
    app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024

    configure_logging(app.config["SNAPVAULT"].logging)

    # ============================================================
    # CORS
    # ============================================================

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Max-Age"] = "3600"
        return response

    # ============================================================
    # ERROR MAPPING
    # ============================================================

    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(e):
        _log.error("Configuration error: %s", e)
        return jsonify({"error": "Encryption is not configured"}), 500

    @app.errorhandler(AuthenticationFailure)
    def handle_authentication_failure(e):
        _log.warning("Rejected payload: authentication failed")
        return jsonify({"error": "Decryption failed. Payload was altered or the key is wrong"}), 400

    @app.errorhandler(MalformedInput)
    def handle_malformed_input(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(IOFailure)
    def handle_io_failure(e):
        _log.error("Snapshot I/O failed: %s", e)
        return jsonify({"error": "Snapshot file operation failed"}), 500

    _register_routes(app)
    return app


def _settings() -> SnapVaultConfig:
    return current_app.config["SNAPVAULT"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise MalformedInput("Request body must be a JSON object")
    return data


def _register_routes(app: Flask) -> None:

    # ============================================================
    # HEALTH CHECK
    # ============================================================

    @app.route("/api/health")
    def health():
        settings = _settings()
        return jsonify({
            "status": "healthy",
            "key_configured": settings.crypto.has_key,
            "chunk_size": settings.crypto.chunk_size,
            "migration": {
                "force_migration": settings.migration.force_migration,
                "will_clean_on_shutdown": settings.migration.clean_on_shutdown,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # ============================================================
    # TEXT ROUTES
    # ============================================================

    @app.route("/api/text/encrypt", methods=["POST"])
    def text_encrypt():
        text = _json_body().get("text")
        if not isinstance(text, str):
            return jsonify({"error": "text is required"}), 400

        payload = encrypt_text(text, _settings().crypto.encryption_key)
        return jsonify(payload.to_dict())

    @app.route("/api/text/decrypt", methods=["POST"])
    def text_decrypt():
        payload = EncryptedTextPayload.from_dict(_json_body())
        return jsonify({"text": decrypt_text(payload, _settings().crypto.encryption_key)})

    @app.route("/api/text/package", methods=["POST"])
    def text_package():
        text = _json_body().get("text")
        if not isinstance(text, str):
            return jsonify({"error": "text is required"}), 400

        payload = encrypt_text_package(text, _settings().crypto.encryption_key)
        return jsonify(payload.to_dict())

    @app.route("/api/text/unpackage", methods=["POST"])
    def text_unpackage():
        payload = EncryptedTextPackagePayload.from_dict(_json_body())
        return jsonify({"text": decrypt_text_package(payload, _settings().crypto.encryption_key)})

    # ============================================================
    # SNAPSHOT ROUTES
    # ============================================================

    @app.route("/api/snapshot/encrypt", methods=["POST"])
    def snapshot_encrypt():
        settings = _settings()
        storage = settings.storage
        source = _snapshot_source(storage.snapshot_dir, storage.snapshot_file_name)
        if source is None:
            return jsonify({"error": "Snapshot file not found"}), 404

        output = encrypt_file_packages(
            source,
            settings.crypto.encryption_key,
            output_path=storage.encrypted_path,
            chunk_size=settings.crypto.chunk_size,
            derive_sub_chunk=settings.crypto.derive_sub_chunk,
        )
        _log.info("Encrypted snapshot %s -> %s", source.name, output.name)

        return jsonify({
            "message": "Snapshot encrypted successfully",
            "source": source.name,
            "filename": output.name,
            "original_size": source.stat().st_size,
            "encrypted_size": output.stat().st_size,
        })

    @app.route("/api/snapshot/decrypt", methods=["POST"])
    def snapshot_decrypt():
        settings = _settings()
        storage = settings.storage
        source = _snapshot_source(storage.snapshot_dir, storage.encrypted_file_name)
        if source is None:
            return jsonify({"error": "Encrypted snapshot not found"}), 404

        output = decrypt_file_packages(
            source,
            settings.crypto.encryption_key,
            output_path=storage.decrypted_path,
            chunk_size=settings.crypto.chunk_size,
            derive_sub_chunk=settings.crypto.derive_sub_chunk,
        )
        _log.info("Decrypted snapshot %s -> %s", source.name, output.name)

        return jsonify({
            "message": "Snapshot decrypted successfully",
            "filename": output.name,
            "size": output.stat().st_size,
        })


def _snapshot_source(snapshot_dir, default_name):
    """Resolve an optional ``file_name`` from the body inside the snapshot directory."""
    data = request.get_json(silent=True) or {}
    requested = data.get("file_name") if isinstance(data, dict) else None

    if requested is not None and not isinstance(requested, str):
        raise MalformedInput("file_name must be a string")

    name = secure_filename(requested) if requested else default_name
    if not name:
        raise MalformedInput("file_name is not a valid file name")

    source = snapshot_dir / name
    if not source.is_file():
        return None
    return source


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
