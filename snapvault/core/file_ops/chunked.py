"""
Chunked Stream Processing
=========================

Drives the cipher or the package codec over bounded reads from an input
stream, so arbitrarily large files (e.g. a Redis snapshot) never have
to fit in memory.

Modes:
    split / encrypt      ciphertext only on disk, manifest returned
    split / decrypt      manifest required, chunk boundaries rebuilt from it
    package / encrypt    each chunk written as NONCE | CIPHERTEXT | TAG
    package / decrypt    each unit opened as an independent package
    whole payload        one AEAD call over the entire input (not streamed)

Unit sizes for a chunk size C:
    split                C bytes of plaintext, C bytes on disk
    package              C bytes of plaintext, C + 28 bytes on disk
    package (derived)    C - 28 bytes of plaintext, C bytes on disk

Only the final unit of a stream may be shorter, and it is never padded.

Failure Policy:
    - Any error aborts the whole operation immediately
    - No skipping, retrying or resuming at the failing unit
    - Units written before the failure are left as-is; the output must
      be discarded and the operation restarted

Every loop is a generator yielding one transformed unit per step and
checking for cancellation once per step, never mid-unit.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator, Optional, Protocol, Tuple

from snapvault.core.constants import CHUNK_SIZE, PACKAGE_OVERHEAD
from snapvault.core.crypto.aes_gcm import AesGcmCipher, KeyMaterial, resolve_key
from snapvault.core.crypto.package import PackageCodec
from snapvault.core.exceptions import (
    Cancelled,
    ConfigurationError,
    IOFailure,
    MalformedManifest,
    SnapVaultError,
)
from snapvault.core.file_ops.manifest import ChunkManifest


class CancellationToken(Protocol):
    """Anything with an ``is_set()`` method, e.g. threading.Event."""

    def is_set(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class PayloadSeal:
    """Out-of-band nonce and tag of a whole-payload encryption."""

    nonce: bytes
    tag: bytes

    def __repr__(self) -> str:
        return "PayloadSeal(nonce=..., tag=...)"


def read_exact(source: BinaryIO, size: int) -> bytes:
    """
    Read up to ``size`` bytes, looping over short reads.

    Returns fewer than ``size`` bytes only at end of stream.

    Raises:
        IOFailure: If the underlying read fails
    """
    buffer = bytearray()
    while len(buffer) < size:
        try:
            piece = source.read(size - len(buffer))
        except (OSError, ValueError) as e:
            raise IOFailure(f"Failed to read from input stream: {e}") from e
        if not piece:
            break
        buffer += piece
    return bytes(buffer)


def remaining_length(source: BinaryIO) -> Optional[int]:
    """
    Bytes left between the current position and the end of a seekable
    stream, or None when the stream cannot seek. The position is restored.

    Raises:
        IOFailure: If seeking fails
    """
    seekable = getattr(source, "seekable", None)
    try:
        if seekable is None or not seekable():
            return None
        position = source.tell()
        end = source.seek(0, io.SEEK_END)
        source.seek(position, io.SEEK_SET)
    except (OSError, ValueError) as e:
        raise IOFailure(f"Failed to seek input stream: {e}") from e
    return end - position


class ChunkedStreamProcessor:
    """
    Sequential read/transform/write loop over byte streams.

    One unit is read, transformed and written at a time. Output order
    and manifest order always match input order. The processor keeps
    no state between operations, so one instance can serve concurrent
    operations on different streams.

    Usage:
        processor = ChunkedStreamProcessor()

        with open("dump.rdb", "rb") as src, open("dump.rdb.crypt", "wb") as dst:
            manifest = processor.encrypt_split(src, dst, key)

        with open("dump.rdb.crypt", "rb") as src, open("dump.rdb.dcrypt", "wb") as dst:
            processor.decrypt_split(src, dst, key, manifest)
    """

    __slots__ = ("_codec", "_chunk_size", "_log")

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        codec: Optional[PackageCodec] = None,
    ) -> None:
        """
        Initialize the processor.

        Args:
            chunk_size: Plaintext bytes per chunk (default 4096)
            codec: Package codec to use (its cipher is used for split mode)

        Raises:
            ConfigurationError: If chunk_size is not a positive integer
        """
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be a positive integer: {chunk_size!r}")

        self._chunk_size = chunk_size
        self._codec = codec or PackageCodec()
        self._log = logging.getLogger("snapvault.stream")

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def cipher(self) -> AesGcmCipher:
        return self._codec.cipher

    def package_unit_sizes(self, derive_sub_chunk: bool = False) -> Tuple[int, int]:
        """
        Plaintext bytes per package and package bytes on disk.

        Raises:
            ConfigurationError: If the derived sub-chunk would be empty
        """
        if not derive_sub_chunk:
            return self._chunk_size, self._chunk_size + PACKAGE_OVERHEAD

        if self._chunk_size <= PACKAGE_OVERHEAD:
            raise ConfigurationError(
                f"Chunk size must exceed {PACKAGE_OVERHEAD} bytes to derive sub-chunks"
            )
        return self._chunk_size - PACKAGE_OVERHEAD, self._chunk_size

    # ------------------------------------------------------------------ #
    # Generators
    # ------------------------------------------------------------------ #

    def iter_encrypt_split(
        self,
        source: BinaryIO,
        key: KeyMaterial,
        manifest: ChunkManifest,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[bytes]:
        """
        Yield ciphertext chunks, appending each chunk's nonce and tag to
        ``manifest``.

        Raises:
            ConfigurationError: If the key is unusable or the manifest was
                built for a different chunk size
            MalformedManifest: If the manifest already holds entries
        """
        raw_key = resolve_key(key)
        if manifest.chunk_size != self._chunk_size:
            raise ConfigurationError(
                f"Manifest chunk size {manifest.chunk_size} does not match {self._chunk_size}"
            )
        if len(manifest):
            raise MalformedManifest("Manifest must be empty before encryption")

        for chunk in self._iter_units(source, self._chunk_size, cancel):
            result = self.cipher.encrypt(chunk, raw_key)
            manifest.append(result.nonce, result.tag)
            yield result.ciphertext

    def iter_decrypt_split(
        self,
        source: BinaryIO,
        key: KeyMaterial,
        manifest: ChunkManifest,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[bytes]:
        """
        Yield plaintext chunks, one per manifest entry, in manifest order.

        Raises:
            MalformedManifest: If the entry count does not match the
                ciphertext available
            AuthenticationFailure: If any chunk fails verification
        """
        raw_key = resolve_key(key)
        if manifest.chunk_size != self._chunk_size:
            raise MalformedManifest(
                f"Manifest chunk size {manifest.chunk_size} does not match {self._chunk_size}"
            )

        # Validate up front when possible so nothing is written for a bad manifest
        available = remaining_length(source)
        if available is not None:
            manifest.validate(available, self._chunk_size)

        last_index = len(manifest) - 1
        for entry in manifest:
            self._check_cancelled(cancel)
            chunk = read_exact(source, self._chunk_size)
            if not chunk:
                raise MalformedManifest(f"Ciphertext ends before chunk {entry.index}")
            if len(chunk) < self._chunk_size and entry.index != last_index:
                raise MalformedManifest(f"Chunk {entry.index} is shorter than the chunk size")
            yield self.cipher.decrypt(chunk, entry.nonce, entry.tag, raw_key)

        if read_exact(source, 1):
            raise MalformedManifest("Ciphertext continues past the last manifest entry")

    def iter_encrypt_packages(
        self,
        source: BinaryIO,
        key: KeyMaterial,
        cancel: Optional[CancellationToken] = None,
        derive_sub_chunk: bool = False,
    ) -> Iterator[bytes]:
        """Yield one package blob per plaintext chunk."""
        plaintext_size, _ = self.package_unit_sizes(derive_sub_chunk)
        raw_key = resolve_key(key)

        for chunk in self._iter_units(source, plaintext_size, cancel):
            yield self._codec.encode(chunk, raw_key)

    def iter_decrypt_packages(
        self,
        source: BinaryIO,
        key: KeyMaterial,
        cancel: Optional[CancellationToken] = None,
        derive_sub_chunk: bool = False,
    ) -> Iterator[bytes]:
        """
        Yield plaintext for each fixed-size package unit.

        Raises:
            MalformedPackage: If the final unit is shorter than 28 bytes
            AuthenticationFailure: If any package fails verification
        """
        _, package_size = self.package_unit_sizes(derive_sub_chunk)
        raw_key = resolve_key(key)

        for unit in self._iter_units(source, package_size, cancel):
            yield self._codec.decode(unit, raw_key)

    # ------------------------------------------------------------------ #
    # Stream writers
    # ------------------------------------------------------------------ #

    def encrypt_split(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        key: KeyMaterial,
        cancel: Optional[CancellationToken] = None,
    ) -> ChunkManifest:
        """
        Encrypt ``source`` into unframed ciphertext chunks on ``sink``.

        Returns:
            The manifest needed to decrypt the output
        """
        manifest = ChunkManifest(chunk_size=self._chunk_size)
        self._drain(self.iter_encrypt_split(source, key, manifest, cancel), sink, "split encrypt")
        return manifest

    def decrypt_split(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        key: KeyMaterial,
        manifest: ChunkManifest,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Decrypt split ciphertext using ``manifest``. Returns bytes written."""
        return self._drain(
            self.iter_decrypt_split(source, key, manifest, cancel), sink, "split decrypt"
        )

    def encrypt_packages(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        key: KeyMaterial,
        cancel: Optional[CancellationToken] = None,
        derive_sub_chunk: bool = False,
    ) -> int:
        """Encrypt ``source`` into concatenated packages. Returns bytes written."""
        return self._drain(
            self.iter_encrypt_packages(source, key, cancel, derive_sub_chunk),
            sink,
            "package encrypt",
        )

    def decrypt_packages(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        key: KeyMaterial,
        cancel: Optional[CancellationToken] = None,
        derive_sub_chunk: bool = False,
    ) -> int:
        """Decrypt concatenated packages. Returns bytes written."""
        return self._drain(
            self.iter_decrypt_packages(source, key, cancel, derive_sub_chunk),
            sink,
            "package decrypt",
        )

    # ------------------------------------------------------------------ #
    # Whole payload
    # ------------------------------------------------------------------ #

    def encrypt_whole(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        key: KeyMaterial,
        cancel: Optional[CancellationToken] = None,
    ) -> PayloadSeal:
        """
        Encrypt the entire input with a single AEAD call.

        The whole input is held in memory. Nonce and tag are returned
        and must be stored by the caller.
        """
        raw_key = resolve_key(key)
        self._check_cancelled(cancel)

        result = self.cipher.encrypt(self._read_all(source), raw_key)
        self._write(sink, result.ciphertext)

        self._log.debug("whole encrypt finished: %d bytes written", len(result.ciphertext))
        return PayloadSeal(nonce=result.nonce, tag=result.tag)

    def decrypt_whole(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        key: KeyMaterial,
        seal: PayloadSeal,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Decrypt a whole-payload ciphertext. Returns bytes written."""
        raw_key = resolve_key(key)
        self._check_cancelled(cancel)

        try:
            plaintext = self.cipher.decrypt(self._read_all(source), seal.nonce, seal.tag, raw_key)
        except SnapVaultError as e:
            self._log.warning("whole decrypt aborted: %s", type(e).__name__)
            raise
        self._write(sink, plaintext)

        self._log.debug("whole decrypt finished: %d bytes written", len(plaintext))
        return len(plaintext)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _iter_units(
        self,
        source: BinaryIO,
        size: int,
        cancel: Optional[CancellationToken],
    ) -> Iterator[bytes]:
        while True:
            self._check_cancelled(cancel)
            unit = read_exact(source, size)
            if not unit:
                return
            yield unit

    def _drain(self, units: Iterable[bytes], sink: BinaryIO, operation: str) -> int:
        count = 0
        written = 0
        try:
            for unit in units:
                self._write(sink, unit)
                count += 1
                written += len(unit)
        except SnapVaultError as e:
            self._log.warning("%s aborted after %d units: %s", operation, count, type(e).__name__)
            raise

        self._log.debug("%s finished: %d units, %d bytes written", operation, count, written)
        return written

    @staticmethod
    def _check_cancelled(cancel: Optional[CancellationToken]) -> None:
        if cancel is not None and cancel.is_set():
            raise Cancelled("Operation cancelled")

    @staticmethod
    def _read_all(source: BinaryIO) -> bytes:
        try:
            return source.read()
        except (OSError, ValueError) as e:
            raise IOFailure(f"Failed to read from input stream: {e}") from e

    @staticmethod
    def _write(sink: BinaryIO, data: bytes) -> None:
        try:
            sink.write(data)
        except (OSError, ValueError) as e:
            raise IOFailure(f"Failed to write to output stream: {e}") from e
