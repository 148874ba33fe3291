"""
Cryptographic Constants
=======================

Sizes and defaults shared by the cipher, the package codec and the
chunked stream processor. Changing any of these changes the on-disk
format of every file produced with them.
"""

from typing import Final

# AES-256-GCM
ENCRYPTION_ALGORITHM: Final[str] = "AES-256-GCM"
KEY_SIZE: Final[int] = 32  # 256 bits
NONCE_SIZE: Final[int] = 12  # 96 bits (NIST recommended for GCM)
TAG_SIZE: Final[int] = 16  # 128 bits

# Package blob: NONCE | CIPHERTEXT | TAG
PACKAGE_OVERHEAD: Final[int] = NONCE_SIZE + TAG_SIZE

# Streaming
CHUNK_SIZE: Final[int] = 4096  # 4 KB

# Snapshot file names
ENCRYPTED_FILE_NAME: Final[str] = "dump.rdb.crypt"
DECRYPTED_FILE_NAME: Final[str] = "dump.rdb.dcrypt"
MANIFEST_SUFFIX: Final[str] = ".manifest.json"
