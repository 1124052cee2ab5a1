"""Tests for per-chunk authenticated encryption."""

import pytest

from chunkstore.crypto.cipher import (
    KEY_SIZE, NONCE_SIZE, Cipher, KdfParams, derive_key,
)
from chunkstore.errors import AuthenticationFailure, EncryptionFailure, MalformedCiphertext

# Cheap scrypt cost so the suite stays fast
FAST_KDF = KdfParams(salt=b"0123456789abcdef", n=2 ** 4)


@pytest.fixture
def cipher():
    return Cipher.from_password("correct horse", FAST_KDF)


def test_round_trip(cipher):
    blob = cipher.encrypt(b"chunk bytes")
    assert cipher.decrypt(blob) == b"chunk bytes"


def test_blob_layout(cipher):
    blob = cipher.encrypt(b"abc")
    # nonce + ciphertext + 16-byte tag
    assert len(blob) == NONCE_SIZE + 3 + 16


def test_fresh_nonce_per_call(cipher):
    first = cipher.encrypt(b"same plaintext")
    second = cipher.encrypt(b"same plaintext")
    assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
    assert first != second


def test_tampered_ciphertext(cipher):
    blob = bytearray(cipher.encrypt(b"payload"))
    blob[-1] ^= 0x01
    with pytest.raises(AuthenticationFailure):
        cipher.decrypt(bytes(blob))


def test_wrong_password():
    blob = Cipher.from_password("right", FAST_KDF).encrypt(b"payload")
    with pytest.raises(AuthenticationFailure):
        Cipher.from_password("wrong", FAST_KDF).decrypt(blob)


def test_short_ciphertext(cipher):
    with pytest.raises(MalformedCiphertext):
        cipher.decrypt(b"\x00" * (NONCE_SIZE - 1))


def test_authentication_errors_are_encryption_failures():
    assert issubclass(AuthenticationFailure, EncryptionFailure)
    assert issubclass(MalformedCiphertext, EncryptionFailure)


def test_disabled_is_identity():
    cipher = Cipher.disabled()
    assert not cipher.enabled
    assert cipher.encrypt(b"plain") == b"plain"
    assert cipher.decrypt(b"plain") == b"plain"


def test_same_salt_same_key():
    assert derive_key("pw", FAST_KDF).key == derive_key("pw", FAST_KDF).key
    assert len(derive_key("pw", FAST_KDF).key) == KEY_SIZE


def test_different_salt_different_key():
    first = derive_key("pw", KdfParams(salt=b"a" * 16, n=2 ** 4))
    second = derive_key("pw", KdfParams(salt=b"b" * 16, n=2 ** 4))
    assert first.key != second.key
    assert KdfParams.generate().salt != KdfParams.generate().salt


def test_kdf_params_dict_round_trip():
    params = KdfParams.generate()
    assert KdfParams.from_dict(params.to_dict()) == params
    assert params.to_dict()["salt"] == params.salt.hex()


def test_unsupported_kdf():
    with pytest.raises(EncryptionFailure):
        derive_key("pw", KdfParams(salt=b"x" * 16, algorithm="md5"))


def test_bad_key_length():
    with pytest.raises(EncryptionFailure):
        Cipher(key=b"short")
