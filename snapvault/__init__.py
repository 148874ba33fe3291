"""
SnapVault - Authenticated Encryption for Database Snapshots
===========================================================

Encrypts opaque byte payloads and arbitrarily large files (such as a
Redis ``dump.rdb``) with AES-256-GCM, as single-shot payloads,
self-describing packages, or chunked streams of either.

Security Notice:
- No secrets are logged
- Fail-closed design pattern
- A fresh nonce for every encryption
"""

from snapvault.core.config import SnapVaultConfig
from snapvault.core.logging import get_secure_logger
from snapvault.core.crypto import AesGcmCipher, PackageCodec, encode_package, decode_package
from snapvault.core.file_ops import ChunkManifest, ChunkedStreamProcessor

__version__ = "0.1.0"
__author__ = "SnapVault Team"

__all__ = [
    "SnapVaultConfig",
    "get_secure_logger",
    "AesGcmCipher",
    "PackageCodec",
    "encode_package",
    "decode_package",
    "ChunkManifest",
    "ChunkedStreamProcessor",
    "__version__",
]
