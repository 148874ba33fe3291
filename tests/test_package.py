import pytest

from snapvault.core.crypto.package import (
    PackageCodec,
    decode_package,
    encode_package,
    split_package,
)
from snapvault.core.exceptions import AuthenticationFailure, MalformedPackage


def test_hello_redis_package(zero_key):
    blob = encode_package(b"hello redis", zero_key)

    assert len(blob) == 39
    assert decode_package(blob, zero_key) == b"hello redis"


@pytest.mark.parametrize("length", [0, 1, 27, 28, 100, 4096])
def test_package_size_is_plaintext_plus_28(codec, key, length):
    plaintext = bytes(length)

    blob = codec.encode(plaintext, key)

    assert len(blob) == length + 28
    assert codec.decode(blob, key) == plaintext


def test_empty_plaintext_round_trips(codec, key):
    blob = codec.encode(b"", key)
    nonce, ciphertext, tag = split_package(blob)

    assert len(blob) == 28
    assert ciphertext == b""
    assert codec.decode(blob, key) == b""


def test_layout_is_nonce_ciphertext_tag(cipher, key):
    codec = PackageCodec(cipher)
    blob = codec.encode(b"layout check", key)

    nonce, ciphertext, tag = split_package(blob)

    assert blob[:12] == nonce
    assert blob[-16:] == tag
    assert cipher.decrypt(ciphertext, nonce, tag, key) == b"layout check"


def test_blob_one_byte_short_is_malformed(codec, zero_key):
    with pytest.raises(MalformedPackage):
        codec.decode(bytes(27), zero_key)


def test_minimum_length_garbage_fails_authentication(codec, zero_key):
    with pytest.raises(AuthenticationFailure):
        codec.decode(bytes(28), zero_key)


@pytest.mark.parametrize("index", [0, 11, 12, 20, -16, -1])
def test_tampered_package_fails_authentication(codec, key, index):
    blob = bytearray(codec.encode(b"some snapshot bytes", key))
    blob[index] ^= 0x01

    with pytest.raises(AuthenticationFailure):
        codec.decode(bytes(blob), key)


def test_each_package_gets_a_fresh_nonce(codec, key):
    first = codec.encode(b"same", key)
    second = codec.encode(b"same", key)

    assert first[:12] != second[:12]
    assert first != second
