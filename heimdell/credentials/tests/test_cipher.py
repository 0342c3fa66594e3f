"""Tests for credential encryption."""

import hashlib
import json

import pytest

from heimdell.credentials import cipher
from heimdell.credentials.cipher import EncryptedEnvelope, decrypt, derive_key, encrypt
from heimdell.credentials.errors import CredentialError, CredentialErrorKind

DOC = json.dumps(
    {
        "baseUrl": "https://heimdell.example.com",
        "username": "deployer",
        "password": "hunter2",
        "tag": "app",
        "platforms": ["android", "ios"],
    }
)


class TestEncryptDecrypt:
    def test_roundtrip(self):
        envelope = encrypt(DOC, "correct horse")
        assert decrypt(envelope, "correct horse") == DOC

    def test_empty_string(self):
        assert decrypt(encrypt("", "key-1234"), "key-1234") == ""

    def test_unicode(self):
        plaintext = "sekrit: \U0001f511 ключ"
        assert decrypt(encrypt(plaintext, "key-1234"), "key-1234") == plaintext

    def test_wrong_password_is_invalid_key(self):
        envelope = encrypt(DOC, "password-one")
        with pytest.raises(CredentialError) as exc:
            decrypt(envelope, "password-two")
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY

    def test_fresh_salt_iv_and_ciphertext(self):
        a = encrypt(DOC, "same-password")
        b = encrypt(DOC, "same-password")
        assert a.salt != b.salt
        assert a.iv != b.iv
        assert a.encrypted != b.encrypted

    def test_field_sizes(self):
        envelope = encrypt(DOC, "key-1234")
        assert len(bytes.fromhex(envelope.salt)) == 32
        assert len(bytes.fromhex(envelope.iv)) == 16
        assert len(bytes.fromhex(envelope.tag)) == 16
        # GCM is a stream mode: ciphertext is as long as the plaintext
        assert len(bytes.fromhex(envelope.encrypted)) == len(DOC.encode())

    def test_tampered_ciphertext_is_invalid_key(self):
        envelope = encrypt(DOC, "key-1234")
        raw = bytearray(bytes.fromhex(envelope.encrypted))
        raw[0] ^= 0x01
        tampered = EncryptedEnvelope(raw.hex(), envelope.iv, envelope.tag, envelope.salt)
        with pytest.raises(CredentialError) as exc:
            decrypt(tampered, "key-1234")
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY

    def test_tampered_tag_is_invalid_key(self):
        envelope = encrypt(DOC, "key-1234")
        bad_tag = "00" * 16 if envelope.tag != "00" * 16 else "11" * 16
        with pytest.raises(CredentialError) as exc:
            decrypt(EncryptedEnvelope(envelope.encrypted, envelope.iv, bad_tag, envelope.salt), "key-1234")
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY

    def test_non_hex_is_invalid_key(self):
        envelope = encrypt(DOC, "key-1234")
        with pytest.raises(CredentialError) as exc:
            decrypt(EncryptedEnvelope("zz", envelope.iv, envelope.tag, envelope.salt), "key-1234")
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY

    def test_different_associated_data_fails(self, monkeypatch):
        envelope = encrypt(DOC, "key-1234")
        monkeypatch.setattr(cipher, "ASSOCIATED_DATA", b"something-else")
        with pytest.raises(CredentialError):
            decrypt(envelope, "key-1234")

    def test_production_iteration_count_roundtrip(self, monkeypatch):
        monkeypatch.setattr(cipher, "KDF_ITERATIONS", 100_000)
        assert decrypt(encrypt("payload", "key-1234"), "key-1234") == "payload"


class TestDeriveKey:
    def test_matches_pbkdf2_sha256(self):
        salt = bytes(range(32))
        expected = hashlib.pbkdf2_hmac("sha256", b"passphrase", salt, cipher.KDF_ITERATIONS, 32)
        assert derive_key("passphrase", salt) == expected

    def test_key_length(self):
        assert len(derive_key("x", b"\x00" * 32)) == 32


class TestEnvelopeParsing:
    def test_from_dict_roundtrip(self):
        envelope = encrypt(DOC, "key-1234")
        assert EncryptedEnvelope.from_dict(envelope.to_dict()) == envelope

    def test_plain_document_is_not_envelope(self):
        assert EncryptedEnvelope.from_dict(json.loads(DOC)) is None

    def test_partial_envelope_is_not_envelope(self):
        data = encrypt(DOC, "key-1234").to_dict()
        del data["salt"]
        assert EncryptedEnvelope.from_dict(data) is None

    def test_extra_field_is_not_envelope(self):
        data = encrypt(DOC, "key-1234").to_dict()
        data["username"] = "u"
        assert EncryptedEnvelope.from_dict(data) is None

    def test_wrong_iv_length_is_not_envelope(self):
        data = encrypt(DOC, "key-1234").to_dict()
        data["iv"] = "00" * 12
        assert EncryptedEnvelope.from_dict(data) is None

    def test_non_hex_is_not_envelope(self):
        data = encrypt(DOC, "key-1234").to_dict()
        data["salt"] = "not-hex"
        assert EncryptedEnvelope.from_dict(data) is None

    def test_non_dict_is_not_envelope(self):
        assert EncryptedEnvelope.from_dict(["encrypted", "iv", "tag", "salt"]) is None
