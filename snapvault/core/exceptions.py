"""
SnapVault Error Taxonomy
========================

Every failure in the encryption core surfaces as one of these types.
None of them are caught and ignored inside the library, and nothing
is retried: a caller that wants to retry re-invokes the whole
operation (which, for encryption, produces fresh nonces).
"""

from __future__ import annotations


class SnapVaultError(Exception):
    """Base class for all SnapVault errors."""
    pass


class ConfigurationError(SnapVaultError):
    """
    Raised when the key is missing, empty, malformed or of the wrong
    length, or when a chunk size is unusable.
    """
    pass


class AuthenticationFailure(SnapVaultError):
    """
    Raised when tag verification fails during decryption.

    This indicates tampering, corruption, or a wrong key/nonce/tag.
    No plaintext is ever returned alongside this error.
    """
    pass


class MalformedInput(SnapVaultError, ValueError):
    """Raised when encrypted input cannot be framed correctly."""
    pass


class MalformedPackage(MalformedInput):
    """Raised when a package blob is shorter than the fixed overhead."""
    pass


class MalformedManifest(MalformedInput):
    """
    Raised when a chunk manifest does not correspond to the amount of
    ciphertext available, or cannot be deserialized.
    """
    pass


class IOFailure(SnapVaultError):
    """Raised when an underlying stream read, write or seek fails."""
    pass


class Cancelled(SnapVaultError):
    """Raised when cooperative cancellation is observed between units."""
    pass
