"""
Snapshot File Encryption
========================

Path-based wrappers around ChunkedStreamProcessor for database snapshot
files (by default ``dump.rdb`` -> ``dump.rdb.crypt`` -> ``dump.rdb.dcrypt``).

Input and output files are opened in ``with`` blocks, so handles are
released on every exit path including errors and cancellation. There is
no rollback: a failed or cancelled operation leaves whatever units were
already written in the output file, which must be discarded.

Split mode stores its manifest next to the ciphertext as
``<output>.manifest.json``. Whole-payload mode stores its nonce and tag
in the same kind of sidecar file.
"""

from __future__ import annotations

import json
from base64 import b64decode, b64encode
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple

from snapvault.core.constants import (
    CHUNK_SIZE,
    DECRYPTED_FILE_NAME,
    ENCRYPTED_FILE_NAME,
    MANIFEST_SUFFIX,
)
from snapvault.core.crypto.aes_gcm import KeyMaterial
from snapvault.core.exceptions import IOFailure, MalformedManifest
from snapvault.core.file_ops.chunked import (
    CancellationToken,
    ChunkedStreamProcessor,
    PayloadSeal,
)
from snapvault.core.file_ops.manifest import ChunkManifest


def default_encrypted_path(source_path: Path | str) -> Path:
    """``dump.rdb.crypt`` next to the source file."""
    return Path(source_path).with_name(ENCRYPTED_FILE_NAME)


def default_decrypted_path(source_path: Path | str) -> Path:
    """``dump.rdb.dcrypt`` next to the encrypted file."""
    return Path(source_path).with_name(DECRYPTED_FILE_NAME)


def manifest_path_for(encrypted_path: Path | str) -> Path:
    encrypted_path = Path(encrypted_path)
    return encrypted_path.with_name(encrypted_path.name + MANIFEST_SUFFIX)


@contextmanager
def _open_pair(source_path: Path, output_path: Path) -> Iterator[Tuple[BinaryIO, BinaryIO]]:
    if output_path.resolve() == source_path.resolve():
        raise IOFailure(f"Output file {output_path.name} would overwrite its own input")

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        src = open(source_path, "rb")
    except OSError as e:
        raise IOFailure(f"Cannot open input file {source_path.name}: {e}") from e

    with src:
        try:
            dst = open(output_path, "wb")
        except OSError as e:
            raise IOFailure(f"Cannot open output file {output_path.name}: {e}") from e
        with dst:
            yield src, dst


def _write_sidecar(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise IOFailure(f"Cannot write {path.name}: {e}") from e


def _read_sidecar(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise IOFailure(f"Cannot read {path.name}: {e}") from e


def encrypt_file_split(
    source_path: Path | str,
    key: KeyMaterial,
    output_path: Optional[Path | str] = None,
    chunk_size: int = CHUNK_SIZE,
    cancel: Optional[CancellationToken] = None,
) -> Tuple[Path, ChunkManifest]:
    """
    Encrypt a file in split mode and save its manifest alongside.

    Returns:
        Tuple of (encrypted path, manifest)
    """
    source_path = Path(source_path)
    output_path = Path(output_path) if output_path else default_encrypted_path(source_path)

    processor = ChunkedStreamProcessor(chunk_size=chunk_size)
    with _open_pair(source_path, output_path) as (src, dst):
        manifest = processor.encrypt_split(src, dst, key, cancel)

    _write_sidecar(manifest_path_for(output_path), manifest.to_json())
    return output_path, manifest


def decrypt_file_split(
    encrypted_path: Path | str,
    key: KeyMaterial,
    output_path: Optional[Path | str] = None,
    manifest: Optional[ChunkManifest] = None,
    cancel: Optional[CancellationToken] = None,
) -> Path:
    """
    Decrypt a split-mode file.

    The manifest is loaded from ``<encrypted>.manifest.json`` unless given.
    """
    encrypted_path = Path(encrypted_path)
    output_path = Path(output_path) if output_path else default_decrypted_path(encrypted_path)

    if manifest is None:
        manifest = ChunkManifest.from_json(_read_sidecar(manifest_path_for(encrypted_path)))

    processor = ChunkedStreamProcessor(chunk_size=manifest.chunk_size)
    with _open_pair(encrypted_path, output_path) as (src, dst):
        processor.decrypt_split(src, dst, key, manifest, cancel)

    return output_path


def encrypt_file_packages(
    source_path: Path | str,
    key: KeyMaterial,
    output_path: Optional[Path | str] = None,
    chunk_size: int = CHUNK_SIZE,
    derive_sub_chunk: bool = False,
    cancel: Optional[CancellationToken] = None,
) -> Path:
    """Encrypt a file as concatenated self-describing packages."""
    source_path = Path(source_path)
    output_path = Path(output_path) if output_path else default_encrypted_path(source_path)

    processor = ChunkedStreamProcessor(chunk_size=chunk_size)
    with _open_pair(source_path, output_path) as (src, dst):
        processor.encrypt_packages(src, dst, key, cancel, derive_sub_chunk)

    return output_path


def decrypt_file_packages(
    encrypted_path: Path | str,
    key: KeyMaterial,
    output_path: Optional[Path | str] = None,
    chunk_size: int = CHUNK_SIZE,
    derive_sub_chunk: bool = False,
    cancel: Optional[CancellationToken] = None,
) -> Path:
    """Decrypt a file of concatenated packages."""
    encrypted_path = Path(encrypted_path)
    output_path = Path(output_path) if output_path else default_decrypted_path(encrypted_path)

    processor = ChunkedStreamProcessor(chunk_size=chunk_size)
    with _open_pair(encrypted_path, output_path) as (src, dst):
        processor.decrypt_packages(src, dst, key, cancel, derive_sub_chunk)

    return output_path


def encrypt_file_whole(
    source_path: Path | str,
    key: KeyMaterial,
    output_path: Optional[Path | str] = None,
) -> Tuple[Path, PayloadSeal]:
    """
    Encrypt a file with one AEAD call over its entire contents.

    The whole file is read into memory. Nonce and tag are saved to
    ``<output>.manifest.json``.
    """
    source_path = Path(source_path)
    output_path = Path(output_path) if output_path else default_encrypted_path(source_path)

    processor = ChunkedStreamProcessor()
    with _open_pair(source_path, output_path) as (src, dst):
        seal = processor.encrypt_whole(src, dst, key)

    _write_sidecar(
        manifest_path_for(output_path),
        json.dumps({"nonce": b64encode(seal.nonce).decode(), "tag": b64encode(seal.tag).decode()}),
    )
    return output_path, seal


def decrypt_file_whole(
    encrypted_path: Path | str,
    key: KeyMaterial,
    output_path: Optional[Path | str] = None,
    seal: Optional[PayloadSeal] = None,
) -> Path:
    """Decrypt a whole-payload file, loading its seal from the sidecar unless given."""
    encrypted_path = Path(encrypted_path)
    output_path = Path(output_path) if output_path else default_decrypted_path(encrypted_path)

    if seal is None:
        try:
            data = json.loads(_read_sidecar(manifest_path_for(encrypted_path)))
            seal = PayloadSeal(
                nonce=b64decode(data["nonce"], validate=True),
                tag=b64decode(data["tag"], validate=True),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedManifest(f"Invalid seal document: {e}") from e

    processor = ChunkedStreamProcessor()
    with _open_pair(encrypted_path, output_path) as (src, dst):
        processor.decrypt_whole(src, dst, key, seal)

    return output_path
