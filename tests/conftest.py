import base64
import io
import os

import pytest

from snapvault.core.crypto.aes_gcm import AesGcmCipher
from snapvault.core.crypto.package import PackageCodec
from snapvault.core.file_ops.chunked import ChunkedStreamProcessor


ZERO_KEY = base64.b64encode(bytes(32)).decode()


class NonSeekableReader:
    """Read-only stream without seek support, returning short reads."""

    def __init__(self, data: bytes, max_read: int = 1000) -> None:
        self._buffer = io.BytesIO(data)
        self._max_read = max_read

    def read(self, size: int = -1) -> bytes:
        if size < 0:
            return self._buffer.read()
        return self._buffer.read(min(size, self._max_read))


class FailingStream:
    """Stream whose reads and writes always fail."""

    def read(self, size: int = -1) -> bytes:
        raise OSError("disk on fire")

    def write(self, data: bytes) -> int:
        raise OSError("disk full")


@pytest.fixture
def zero_key() -> str:
    return ZERO_KEY


@pytest.fixture
def key() -> str:
    return base64.b64encode(os.urandom(32)).decode()


@pytest.fixture
def cipher() -> AesGcmCipher:
    return AesGcmCipher()


@pytest.fixture
def codec() -> PackageCodec:
    return PackageCodec()


@pytest.fixture
def processor() -> ChunkedStreamProcessor:
    return ChunkedStreamProcessor()


@pytest.fixture
def small_processor() -> ChunkedStreamProcessor:
    return ChunkedStreamProcessor(chunk_size=64)
