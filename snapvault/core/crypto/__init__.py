"""
SnapVault Cryptographic Core
============================

Authenticated encryption of byte payloads with AES-256-GCM.

Components:
    1. AesGcmCipher: one AEAD call per buffer, detached nonce and tag
    2. PackageCodec: NONCE | CIPHERTEXT | TAG blobs
    3. Text payloads: base64 records for JSON transport

Security Properties:
    - All encryption is authenticated (AEAD)
    - A fresh random nonce for every encryption
    - Tag verified before any plaintext is returned
    - The key is supplied by the caller and never stored
"""

from snapvault.core.crypto.aes_gcm import AesGcmCipher, AesGcmResult, resolve_key
from snapvault.core.crypto.package import (
    PackageCodec,
    decode_package,
    encode_package,
    split_package,
)
from snapvault.core.crypto.payloads import (
    EncryptedTextPackagePayload,
    EncryptedTextPayload,
    decrypt_text,
    decrypt_text_package,
    encrypt_text,
    encrypt_text_package,
)

__all__ = [
    "AesGcmCipher",
    "AesGcmResult",
    "resolve_key",
    "PackageCodec",
    "encode_package",
    "decode_package",
    "split_package",
    "EncryptedTextPayload",
    "EncryptedTextPackagePayload",
    "encrypt_text",
    "decrypt_text",
    "encrypt_text_package",
    "decrypt_text_package",
]
