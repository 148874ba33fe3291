"""
Chunk Manifest
==============

Ordered, out-of-band list of per-chunk (nonce, tag) pairs produced by
split-mode chunked encryption and required by split-mode decryption.

Split-mode ciphertext files carry no framing at all: chunk boundaries
are rebuilt from manifest order plus the chunk size, and the final
chunk's length is whatever remains in the stream. Entries therefore
carry no length.
"""

from __future__ import annotations

import binascii
import json
from base64 import b64decode, b64encode
from dataclasses import dataclass
from typing import Iterator, List, Optional

from snapvault.core.constants import CHUNK_SIZE, NONCE_SIZE, TAG_SIZE
from snapvault.core.exceptions import ConfigurationError, MalformedManifest

MANIFEST_VERSION = 1


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """Nonce and tag for one chunk, by position in the stream."""

    index: int
    nonce: bytes
    tag: bytes

    def __repr__(self) -> str:
        return f"ManifestEntry(index={self.index})"


def expected_entries(ciphertext_length: int, chunk_size: int) -> int:
    """Number of chunks a split ciphertext of the given length holds."""
    return -(-ciphertext_length // chunk_size)


class ChunkManifest:
    """
    Append-only sequence of ManifestEntry objects.

    Usage:
        manifest = ChunkManifest()
        manifest.append(result.nonce, result.tag)

        for entry in manifest:
            ...

        Path("dump.rdb.crypt.manifest.json").write_text(manifest.to_json())
    """

    __slots__ = ("_entries", "_chunk_size")

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be a positive integer: {chunk_size!r}")

        self._entries: List[ManifestEntry] = []
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        """Chunk size the manifest was built with."""
        return self._chunk_size

    def append(self, nonce: bytes, tag: bytes) -> ManifestEntry:
        """Record the nonce and tag of the next chunk."""
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise MalformedManifest("Manifest entries need a 12-byte nonce and a 16-byte tag")

        entry = ManifestEntry(index=len(self._entries), nonce=bytes(nonce), tag=bytes(tag))
        self._entries.append(entry)
        return entry

    def validate(self, ciphertext_length: int, chunk_size: Optional[int] = None) -> None:
        """
        Check that the entry count matches the ciphertext available.

        Raises:
            MalformedManifest: If there are too many or too few entries
            ConfigurationError: If the chunk size is not positive
        """
        size = self._chunk_size if chunk_size is None else chunk_size
        if size <= 0:
            raise ConfigurationError(f"Chunk size must be a positive integer: {size!r}")
        expected = expected_entries(ciphertext_length, size)
        if expected != len(self._entries):
            raise MalformedManifest(
                f"Manifest has {len(self._entries)} entries but "
                f"{ciphertext_length} bytes of ciphertext need {expected}"
            )

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> ManifestEntry:
        return self._entries[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChunkManifest):
            return NotImplemented
        return self._chunk_size == other._chunk_size and self._entries == other._entries

    def __repr__(self) -> str:
        return f"ChunkManifest(entries={len(self._entries)}, chunk_size={self._chunk_size})"

    def to_json(self) -> str:
        """Serialize to JSON with base64-encoded nonces and tags."""
        return json.dumps({
            "version": MANIFEST_VERSION,
            "chunk_size": self._chunk_size,
            "entries": [
                {
                    "index": entry.index,
                    "nonce": b64encode(entry.nonce).decode(),
                    "tag": b64encode(entry.tag).decode(),
                }
                for entry in self._entries
            ],
        })

    @classmethod
    def from_json(cls, json_str: str) -> "ChunkManifest":
        """
        Deserialize from JSON.

        Raises:
            MalformedManifest: If the document is malformed or entries
                are out of order
        """
        try:
            data = json.loads(json_str)
            if data["version"] != MANIFEST_VERSION:
                raise MalformedManifest(f"Unsupported manifest version: {data['version']}")

            chunk_size = data["chunk_size"]
            if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
                raise MalformedManifest(f"Manifest chunk size must be a positive integer: {chunk_size!r}")

            manifest = cls(chunk_size=chunk_size)
            for position, raw in enumerate(data["entries"]):
                if raw["index"] != position:
                    raise MalformedManifest(f"Manifest entry {raw['index']} out of order")
                manifest.append(
                    b64decode(raw["nonce"], validate=True),
                    b64decode(raw["tag"], validate=True),
                )
        except MalformedManifest:
            raise
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise MalformedManifest(f"Invalid manifest document: {e}") from e

        return manifest
