"""
Self-Describing Package Blobs
=============================

A package bundles everything needed for decryption except the key.

Format:
    NONCE (12) | CIPHERTEXT (variable, may be empty) | TAG (16)

The ciphertext is exactly as long as the plaintext, so every package
is the plaintext length plus a fixed 28 bytes.
"""

from __future__ import annotations

from typing import Optional, Tuple

from snapvault.core.constants import NONCE_SIZE, PACKAGE_OVERHEAD, TAG_SIZE
from snapvault.core.crypto.aes_gcm import AesGcmCipher, KeyMaterial
from snapvault.core.exceptions import MalformedPackage


def split_package(blob: bytes) -> Tuple[bytes, bytes, bytes]:
    """
    Split a package blob into its parts.

    Returns:
        Tuple of (nonce, ciphertext, tag)

    Raises:
        MalformedPackage: If the blob is shorter than the fixed overhead
    """
    if len(blob) < PACKAGE_OVERHEAD:
        raise MalformedPackage(
            f"Package too short: {len(blob)} bytes (minimum {PACKAGE_OVERHEAD})"
        )

    view = memoryview(blob)
    nonce = bytes(view[:NONCE_SIZE])
    ciphertext = bytes(view[NONCE_SIZE:len(blob) - TAG_SIZE])
    tag = bytes(view[len(blob) - TAG_SIZE:])

    return nonce, ciphertext, tag


class PackageCodec:
    """
    Encodes and decodes package blobs around an AesGcmCipher.

    Usage:
        codec = PackageCodec()
        blob = codec.encode(b"hello redis", key)
        assert len(blob) == 11 + 28
        plaintext = codec.decode(blob, key)
    """

    __slots__ = ("_cipher",)

    def __init__(self, cipher: Optional[AesGcmCipher] = None) -> None:
        self._cipher = cipher or AesGcmCipher()

    @property
    def cipher(self) -> AesGcmCipher:
        return self._cipher

    def encode(self, plaintext: bytes, key: KeyMaterial) -> bytes:
        """Encrypt plaintext and return NONCE | CIPHERTEXT | TAG."""
        result = self._cipher.encrypt(plaintext, key)
        return result.nonce + result.ciphertext + result.tag

    def decode(self, blob: bytes, key: KeyMaterial) -> bytes:
        """
        Verify and decrypt a package blob.

        Raises:
            MalformedPackage: If the blob is shorter than 28 bytes
            AuthenticationFailure: If tag verification fails
        """
        nonce, ciphertext, tag = split_package(blob)
        return self._cipher.decrypt(ciphertext, nonce, tag, key)


def encode_package(plaintext: bytes, key: KeyMaterial) -> bytes:
    """Convenience function to build a package blob."""
    return PackageCodec().encode(plaintext, key)


def decode_package(blob: bytes, key: KeyMaterial) -> bytes:
    """Convenience function to open a package blob."""
    return PackageCodec().decode(blob, key)
