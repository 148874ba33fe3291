"""
SnapVault File Operations Module
================================

Chunked and whole-payload encryption of byte streams and snapshot files.

Components:
- manifest.py: per-chunk nonce/tag list for split mode
- chunked.py: the read/transform/write loop over streams
- snapshot.py: path-based wrappers with scoped file handles
"""

from snapvault.core.file_ops.manifest import ChunkManifest, ManifestEntry
from snapvault.core.file_ops.chunked import (
    CancellationToken,
    ChunkedStreamProcessor,
    PayloadSeal,
)
from snapvault.core.file_ops.snapshot import (
    decrypt_file_packages,
    decrypt_file_split,
    decrypt_file_whole,
    encrypt_file_packages,
    encrypt_file_split,
    encrypt_file_whole,
)

__all__ = [
    "ChunkManifest",
    "ManifestEntry",
    "CancellationToken",
    "ChunkedStreamProcessor",
    "PayloadSeal",
    "encrypt_file_split",
    "decrypt_file_split",
    "encrypt_file_packages",
    "decrypt_file_packages",
    "encrypt_file_whole",
    "decrypt_file_whole",
]
