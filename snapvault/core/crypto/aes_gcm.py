"""
AES-256-GCM Authenticated Encryption
====================================

Implements AES-256-GCM over an externally supplied key with a fresh
random nonce per encryption and a detached authentication tag.

Security Properties:
    - 256-bit key (supplied by the caller, never generated here)
    - 96-bit nonce (NIST recommended), generated for every call
    - 128-bit authentication tag, returned separately from ciphertext
    - Ciphertext length equals plaintext length

NIST SP 800-38D Compliance:
    - GCM mode with 96-bit IV
    - Unique nonce for each encryption under same key

WARNING:
    - Callers can never supply an encryption nonce
    - Decryption verifies the tag before any plaintext is returned
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Callable, Optional, Union

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag

from snapvault.core.constants import KEY_SIZE, NONCE_SIZE, TAG_SIZE
from snapvault.core.exceptions import (
    AuthenticationFailure,
    ConfigurationError,
    MalformedInput,
)

KeyMaterial = Union[str, bytes, bytearray, None]


@dataclass(frozen=True, slots=True)
class AesGcmResult:
    """
    Immutable result of AES-GCM encryption.

    Attributes:
        ciphertext: Encrypted data, same length as the plaintext
        nonce: Unique 12-byte nonce used for this encryption
        tag: 16-byte authentication tag required for decryption
    """

    ciphertext: bytes
    nonce: bytes
    tag: bytes

    def __repr__(self) -> str:
        """Safe representation without exposing ciphertext bytes."""
        return f"AesGcmResult(ciphertext_len={len(self.ciphertext)}, nonce_len={len(self.nonce)})"


def resolve_key(key: KeyMaterial) -> bytes:
    """
    Turn caller key material into raw AES-256 key bytes.

    Args:
        key: Base64 string, or already-decoded key bytes

    Returns:
        32 bytes of key material

    Raises:
        ConfigurationError: If the key is missing, not valid base64,
            or does not decode to exactly 32 bytes
    """
    if key is None:
        raise ConfigurationError("Encryption key is not configured")

    if isinstance(key, str):
        if not key.strip():
            raise ConfigurationError("Encryption key is empty")
        try:
            raw = base64.b64decode(key.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError("Encryption key is not valid base64") from e
    else:
        raw = bytes(key)

    if len(raw) != KEY_SIZE:
        raise ConfigurationError(
            f"Encryption key must decode to exactly {KEY_SIZE} bytes (got {len(raw)})"
        )

    return raw


class AesGcmCipher:
    """
    AES-256-GCM Authenticated Encryption with Associated Data (AEAD).

    The cipher holds no key and no per-call state; the key is resolved
    on every call so a bad key surfaces at the moment of use.

    Usage:
        cipher = AesGcmCipher()

        result = cipher.encrypt(plaintext, key)

        plaintext = cipher.decrypt(
            ciphertext=result.ciphertext,
            nonce=result.nonce,
            tag=result.tag,
            key=key,
        )

    Security Notes:
        - The nonce is always generated internally
        - InvalidTag from the primitive becomes AuthenticationFailure
    """

    __slots__ = ("_random_bytes",)

    def __init__(self, random_bytes: Optional[Callable[[int], bytes]] = None) -> None:
        """
        Initialize the cipher.

        Args:
            random_bytes: CSPRNG used for nonces (default: secrets.token_bytes)
        """
        self._random_bytes = random_bytes or secrets.token_bytes

    def generate_nonce(self) -> bytes:
        """
        Generate a fresh nonce.

        Returns:
            12 bytes from the configured random source

        Security:
            96-bit nonces with random generation have negligible collision
            probability for up to 2^32 encryptions under same key.
        """
        nonce = self._random_bytes(NONCE_SIZE)
        if len(nonce) != NONCE_SIZE:
            raise ConfigurationError(f"Random source returned {len(nonce)} bytes, expected {NONCE_SIZE}")
        return nonce

    def encrypt(
        self,
        plaintext: bytes,
        key: KeyMaterial,
        aad: Optional[bytes] = None,
    ) -> AesGcmResult:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: Data to encrypt (can be empty)
            key: Base64 key string or 32 raw key bytes
            aad: Additional Authenticated Data (authenticated but not encrypted)

        Returns:
            AesGcmResult containing ciphertext, nonce, and tag

        Raises:
            ConfigurationError: If the key is unusable
        """
        raw_key = resolve_key(key)
        nonce = self.generate_nonce()

        # The primitive appends the tag to the ciphertext
        sealed = AESGCM(raw_key).encrypt(nonce, bytes(plaintext), aad)

        return AesGcmResult(
            ciphertext=sealed[:-TAG_SIZE],
            nonce=nonce,
            tag=sealed[-TAG_SIZE:],
        )

    def decrypt(
        self,
        ciphertext: bytes,
        nonce: bytes,
        tag: bytes,
        key: KeyMaterial,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt ciphertext using AES-256-GCM with integrity verification.

        Args:
            ciphertext: Encrypted data (without tag)
            nonce: The nonce used during encryption
            tag: The authentication tag produced during encryption
            key: Base64 key string or 32 raw key bytes
            aad: Additional Authenticated Data (must match encryption AAD)

        Returns:
            Decrypted plaintext bytes

        Raises:
            ConfigurationError: If the key is unusable
            MalformedInput: If nonce or tag have the wrong size
            AuthenticationFailure: If tag verification fails
        """
        raw_key = resolve_key(key)

        if len(nonce) != NONCE_SIZE:
            raise MalformedInput(f"Nonce must be exactly {NONCE_SIZE} bytes")
        if len(tag) != TAG_SIZE:
            raise MalformedInput(f"Tag must be exactly {TAG_SIZE} bytes")

        try:
            return AESGCM(raw_key).decrypt(bytes(nonce), bytes(ciphertext) + bytes(tag), aad)
        except InvalidTag as e:
            raise AuthenticationFailure("Authentication tag verification failed") from e
