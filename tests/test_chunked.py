import io
import os
import threading

import pytest

from snapvault.core.exceptions import (
    AuthenticationFailure,
    Cancelled,
    ConfigurationError,
    IOFailure,
    MalformedManifest,
    MalformedPackage,
)
from snapvault.core.file_ops.chunked import ChunkedStreamProcessor, remaining_length
from snapvault.core.file_ops.manifest import ChunkManifest

from tests.conftest import FailingStream, NonSeekableReader


C = 64


class CancellingSink(io.BytesIO):
    """Sets the event after the first write."""

    def __init__(self, event: threading.Event) -> None:
        super().__init__()
        self._event = event

    def write(self, data) -> int:
        written = super().write(data)
        self._event.set()
        return written


def _split_round_trip(processor, key, plaintext):
    encrypted = io.BytesIO()
    manifest = processor.encrypt_split(io.BytesIO(plaintext), encrypted, key)

    decrypted = io.BytesIO()
    processor.decrypt_split(io.BytesIO(encrypted.getvalue()), decrypted, key, manifest)
    return encrypted.getvalue(), manifest, decrypted.getvalue()


@pytest.mark.parametrize("size", [0, C - 1, C, C + 1, 3 * C + 5])
def test_split_mode_round_trips_every_boundary(small_processor, key, size):
    plaintext = os.urandom(size)

    ciphertext, manifest, decrypted = _split_round_trip(small_processor, key, plaintext)

    assert decrypted == plaintext
    assert len(ciphertext) == size
    assert len(manifest) == -(-size // C)


def test_split_mode_10000_bytes(processor, key):
    plaintext = os.urandom(10_000)
    manifest = ChunkManifest(chunk_size=4096)

    chunks = list(processor.iter_encrypt_split(io.BytesIO(plaintext), key, manifest))

    assert [len(chunk) for chunk in chunks] == [4096, 4096, 1808]
    assert len(manifest) == 3

    decrypted = b"".join(processor.iter_decrypt_split(io.BytesIO(b"".join(chunks)), key, manifest))
    assert decrypted == plaintext


def test_split_mode_with_non_seekable_short_reads(small_processor, key):
    plaintext = os.urandom(5 * C + 3)
    encrypted = io.BytesIO()
    manifest = small_processor.encrypt_split(NonSeekableReader(plaintext, max_read=7), encrypted, key)

    decrypted = io.BytesIO()
    small_processor.decrypt_split(NonSeekableReader(encrypted.getvalue(), max_read=5), decrypted, key, manifest)

    assert decrypted.getvalue() == plaintext


def test_split_final_chunk_is_not_padded(small_processor, key):
    manifest = ChunkManifest(chunk_size=C)

    chunks = list(small_processor.iter_encrypt_split(io.BytesIO(b"abc"), key, manifest))

    assert [len(chunk) for chunk in chunks] == [3]


@pytest.mark.parametrize("entries", [2, 4])
def test_split_manifest_count_mismatch_is_rejected_before_output(small_processor, key, entries):
    plaintext = os.urandom(3 * C)
    encrypted = io.BytesIO()
    manifest = small_processor.encrypt_split(io.BytesIO(plaintext), encrypted, key)

    wrong = ChunkManifest(chunk_size=C)
    for i in range(entries):
        source = manifest[min(i, len(manifest) - 1)]
        wrong.append(source.nonce, source.tag)

    sink = io.BytesIO()
    with pytest.raises(MalformedManifest):
        small_processor.decrypt_split(io.BytesIO(encrypted.getvalue()), sink, key, wrong)
    assert sink.getvalue() == b""


def test_split_too_few_entries_detected_on_non_seekable_stream(small_processor, key):
    encrypted = io.BytesIO()
    manifest = small_processor.encrypt_split(io.BytesIO(os.urandom(3 * C)), encrypted, key)

    truncated = ChunkManifest(chunk_size=C)
    for entry in list(manifest)[:2]:
        truncated.append(entry.nonce, entry.tag)

    with pytest.raises(MalformedManifest):
        small_processor.decrypt_split(NonSeekableReader(encrypted.getvalue()), io.BytesIO(), key, truncated)


def test_split_too_many_entries_detected_on_non_seekable_stream(small_processor, key):
    encrypted = io.BytesIO()
    manifest = small_processor.encrypt_split(io.BytesIO(os.urandom(2 * C)), encrypted, key)
    manifest.append(os.urandom(12), os.urandom(16))

    with pytest.raises(MalformedManifest):
        small_processor.decrypt_split(NonSeekableReader(encrypted.getvalue()), io.BytesIO(), key, manifest)


def test_split_manifest_for_other_chunk_size_is_rejected(small_processor, key):
    with pytest.raises(MalformedManifest):
        small_processor.decrypt_split(io.BytesIO(), io.BytesIO(), key, ChunkManifest(chunk_size=4096))


def test_split_encrypt_requires_empty_matching_manifest(small_processor, key):
    with pytest.raises(ConfigurationError):
        list(small_processor.iter_encrypt_split(io.BytesIO(b"x"), key, ChunkManifest(chunk_size=4096)))

    used = ChunkManifest(chunk_size=C)
    used.append(bytes(12), bytes(16))
    with pytest.raises(MalformedManifest):
        list(small_processor.iter_encrypt_split(io.BytesIO(b"x"), key, used))


def test_split_tampered_chunk_aborts_and_keeps_earlier_output(small_processor, key):
    plaintext = os.urandom(3 * C)
    encrypted = io.BytesIO()
    manifest = small_processor.encrypt_split(io.BytesIO(plaintext), encrypted, key)

    tampered = bytearray(encrypted.getvalue())
    tampered[C + 1] ^= 0x80

    sink = io.BytesIO()
    with pytest.raises(AuthenticationFailure):
        small_processor.decrypt_split(io.BytesIO(bytes(tampered)), sink, key, manifest)
    assert sink.getvalue() == plaintext[:C]


def test_split_swapped_manifest_entries_fail(small_processor, key):
    encrypted = io.BytesIO()
    manifest = small_processor.encrypt_split(io.BytesIO(os.urandom(2 * C)), encrypted, key)

    swapped = ChunkManifest(chunk_size=C)
    swapped.append(manifest[1].nonce, manifest[1].tag)
    swapped.append(manifest[0].nonce, manifest[0].tag)

    with pytest.raises(AuthenticationFailure):
        small_processor.decrypt_split(io.BytesIO(encrypted.getvalue()), io.BytesIO(), key, swapped)


@pytest.mark.parametrize("size", [0, C - 1, C, C + 1, 3 * C + 5])
def test_package_mode_round_trips(small_processor, key, size):
    plaintext = os.urandom(size)
    encrypted = io.BytesIO()

    written = small_processor.encrypt_packages(io.BytesIO(plaintext), encrypted, key)

    units = -(-size // C)
    assert written == size + 28 * units
    assert len(encrypted.getvalue()) == written

    decrypted = io.BytesIO()
    small_processor.decrypt_packages(io.BytesIO(encrypted.getvalue()), decrypted, key)
    assert decrypted.getvalue() == plaintext


def test_derived_sub_chunk_packages_fill_the_chunk_size(small_processor, key):
    plaintext = os.urandom(5 * (C - 28) + 10)

    packages = list(small_processor.iter_encrypt_packages(io.BytesIO(plaintext), key, derive_sub_chunk=True))

    assert [len(p) for p in packages] == [C] * 5 + [10 + 28]

    decrypted = b"".join(
        small_processor.iter_decrypt_packages(io.BytesIO(b"".join(packages)), key, derive_sub_chunk=True)
    )
    assert decrypted == plaintext


def test_package_unit_sizes(processor):
    assert processor.package_unit_sizes() == (4096, 4124)
    assert processor.package_unit_sizes(derive_sub_chunk=True) == (4068, 4096)


def test_derived_sub_chunk_needs_room_for_overhead(key):
    processor = ChunkedStreamProcessor(chunk_size=28)

    with pytest.raises(ConfigurationError):
        processor.encrypt_packages(io.BytesIO(b"data"), io.BytesIO(), key, derive_sub_chunk=True)


def test_truncated_final_package_is_malformed(small_processor, key):
    encrypted = io.BytesIO()
    small_processor.encrypt_packages(io.BytesIO(os.urandom(C)), encrypted, key)

    with pytest.raises(MalformedPackage):
        small_processor.decrypt_packages(io.BytesIO(encrypted.getvalue() + bytes(27)), io.BytesIO(), key)


def test_tampered_package_stream_aborts(small_processor, key):
    plaintext = os.urandom(2 * C)
    encrypted = io.BytesIO()
    small_processor.encrypt_packages(io.BytesIO(plaintext), encrypted, key)
    tampered = bytearray(encrypted.getvalue())
    tampered[-1] ^= 0x01

    sink = io.BytesIO()
    with pytest.raises(AuthenticationFailure):
        small_processor.decrypt_packages(io.BytesIO(bytes(tampered)), sink, key)
    assert sink.getvalue() == plaintext[:C]


def test_cancellation_between_units_in_generator(small_processor, key):
    cancel = threading.Event()
    units = small_processor.iter_encrypt_packages(io.BytesIO(os.urandom(3 * C)), key, cancel=cancel)

    first = next(units)
    cancel.set()

    assert len(first) == C + 28
    with pytest.raises(Cancelled):
        next(units)


def test_cancellation_leaves_partial_output(small_processor, key):
    cancel = threading.Event()
    sink = CancellingSink(cancel)

    with pytest.raises(Cancelled):
        small_processor.encrypt_split(io.BytesIO(os.urandom(3 * C)), sink, key, cancel=cancel)
    assert len(sink.getvalue()) == C


def test_cancel_before_start_writes_nothing(small_processor, key):
    cancel = threading.Event()
    cancel.set()
    sink = io.BytesIO()

    with pytest.raises(Cancelled):
        small_processor.encrypt_packages(io.BytesIO(b"data"), sink, key, cancel=cancel)
    assert sink.getvalue() == b""


def test_read_failure_is_io_failure(small_processor, key):
    with pytest.raises(IOFailure) as excinfo:
        small_processor.encrypt_split(FailingStream(), io.BytesIO(), key)
    assert isinstance(excinfo.value.__cause__, OSError)


def test_write_failure_is_io_failure(small_processor, key):
    with pytest.raises(IOFailure):
        small_processor.encrypt_packages(io.BytesIO(b"data"), FailingStream(), key)


def _closed(data=b""):
    stream = io.BytesIO(data)
    stream.close()
    return stream


def test_closed_source_is_io_failure(small_processor, key):
    with pytest.raises(IOFailure):
        small_processor.encrypt_packages(_closed(b"abc"), io.BytesIO(), key)
    with pytest.raises(IOFailure):
        small_processor.encrypt_whole(_closed(b"abc"), io.BytesIO(), key)
    with pytest.raises(IOFailure):
        small_processor.decrypt_split(_closed(b"abc"), io.BytesIO(), key, ChunkManifest(64))


def test_closed_sink_is_io_failure(small_processor, key):
    with pytest.raises(IOFailure):
        small_processor.encrypt_packages(io.BytesIO(b"abc"), _closed(), key)
    with pytest.raises(IOFailure):
        small_processor.encrypt_whole(io.BytesIO(b"abc"), _closed(), key)


def test_remaining_length_of_closed_stream_is_io_failure():
    with pytest.raises(IOFailure):
        remaining_length(_closed(b"abc"))


def test_empty_key_fails_even_for_empty_input(small_processor):
    with pytest.raises(ConfigurationError):
        small_processor.encrypt_split(io.BytesIO(b""), io.BytesIO(), "")


@pytest.mark.parametrize("chunk_size", [0, -1, True, 4.5])
def test_invalid_chunk_size(chunk_size):
    with pytest.raises(ConfigurationError):
        ChunkedStreamProcessor(chunk_size=chunk_size)


@pytest.mark.parametrize("size", [0, 1, 10_000])
def test_whole_payload_round_trip(processor, key, size):
    plaintext = os.urandom(size)
    encrypted = io.BytesIO()

    seal = processor.encrypt_whole(io.BytesIO(plaintext), encrypted, key)

    assert len(encrypted.getvalue()) == size
    decrypted = io.BytesIO()
    assert processor.decrypt_whole(io.BytesIO(encrypted.getvalue()), decrypted, key, seal) == size
    assert decrypted.getvalue() == plaintext


def test_whole_payload_tamper_writes_nothing(processor, key):
    encrypted = io.BytesIO()
    seal = processor.encrypt_whole(io.BytesIO(b"whole snapshot"), encrypted, key)
    tampered = bytearray(encrypted.getvalue())
    tampered[0] ^= 0x01

    sink = io.BytesIO()
    with pytest.raises(AuthenticationFailure):
        processor.decrypt_whole(io.BytesIO(bytes(tampered)), sink, key, seal)
    assert sink.getvalue() == b""


def test_remaining_length_restores_position():
    stream = io.BytesIO(b"0123456789")
    stream.seek(3)

    assert remaining_length(stream) == 7
    assert stream.tell() == 3
    assert remaining_length(NonSeekableReader(b"abc")) is None
