"""
Text Payloads
=============

Base64 records used to move encrypted text over JSON.

    EncryptedTextPayload:        ciphertext, nonce (iv) and tag, separately
    EncryptedTextPackagePayload: one base64 package blob
"""

from __future__ import annotations

import binascii
import json
from base64 import b64decode, b64encode
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from snapvault.core.crypto.aes_gcm import AesGcmCipher, KeyMaterial
from snapvault.core.crypto.package import PackageCodec
from snapvault.core.exceptions import MalformedInput


def _b64decode_field(value: Any, field_name: str) -> bytes:
    if not isinstance(value, str):
        raise MalformedInput(f"{field_name} must be a base64 string")
    try:
        return b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedInput(f"{field_name} is not valid base64") from e


@dataclass(frozen=True, slots=True)
class EncryptedTextPayload:
    """Encrypted text with its nonce and tag carried alongside."""

    base64_encrypted_text: str
    iv: str
    tag: str

    def to_dict(self) -> dict[str, str]:
        return {
            "base64EncodedEncryptedText": self.base64_encrypted_text,
            "iv": self.iv,
            "tag": self.tag,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncryptedTextPayload":
        try:
            return cls(
                base64_encrypted_text=data["base64EncodedEncryptedText"],
                iv=data["iv"],
                tag=data["tag"],
            )
        except (KeyError, TypeError) as e:
            raise MalformedInput(f"Missing payload field: {e}") from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "EncryptedTextPayload":
        try:
            return cls.from_dict(json.loads(json_str))
        except json.JSONDecodeError as e:
            raise MalformedInput("Payload is not valid JSON") from e


@dataclass(frozen=True, slots=True)
class EncryptedTextPackagePayload:
    """Encrypted text as a single base64 package blob."""

    base64_encrypted_package: str

    def to_dict(self) -> dict[str, str]:
        return {"base64EncryptedPackage": self.base64_encrypted_package}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncryptedTextPackagePayload":
        try:
            return cls(base64_encrypted_package=data["base64EncryptedPackage"])
        except (KeyError, TypeError) as e:
            raise MalformedInput(f"Missing payload field: {e}") from e


def encrypt_text(
    text: str,
    key: KeyMaterial,
    cipher: Optional[AesGcmCipher] = None,
) -> EncryptedTextPayload:
    """Encrypt UTF-8 text, carrying nonce and tag out-of-band."""
    result = (cipher or AesGcmCipher()).encrypt(text.encode("utf-8"), key)
    return EncryptedTextPayload(
        base64_encrypted_text=b64encode(result.ciphertext).decode("ascii"),
        iv=b64encode(result.nonce).decode("ascii"),
        tag=b64encode(result.tag).decode("ascii"),
    )


def decrypt_text(
    payload: EncryptedTextPayload,
    key: KeyMaterial,
    cipher: Optional[AesGcmCipher] = None,
) -> str:
    """
    Decrypt an EncryptedTextPayload back to text.

    Raises:
        MalformedInput: If a field is not valid base64 or the
            plaintext is not UTF-8
        AuthenticationFailure: If tag verification fails
    """
    plaintext = (cipher or AesGcmCipher()).decrypt(
        _b64decode_field(payload.base64_encrypted_text, "base64EncodedEncryptedText"),
        _b64decode_field(payload.iv, "iv"),
        _b64decode_field(payload.tag, "tag"),
        key,
    )
    return _decode_utf8(plaintext)


def encrypt_text_package(
    text: str,
    key: KeyMaterial,
    codec: Optional[PackageCodec] = None,
) -> EncryptedTextPackagePayload:
    """Encrypt UTF-8 text into a base64 package blob."""
    blob = (codec or PackageCodec()).encode(text.encode("utf-8"), key)
    return EncryptedTextPackagePayload(b64encode(blob).decode("ascii"))


def decrypt_text_package(
    payload: EncryptedTextPackagePayload,
    key: KeyMaterial,
    codec: Optional[PackageCodec] = None,
) -> str:
    """Decrypt a base64 package blob back to text."""
    blob = _b64decode_field(payload.base64_encrypted_package, "base64EncryptedPackage")
    return _decode_utf8((codec or PackageCodec()).decode(blob, key))


def _decode_utf8(plaintext: bytes) -> str:
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedInput("Decrypted payload is not UTF-8 text") from e
