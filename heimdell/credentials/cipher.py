"""
AES-256-GCM encryption for credential documents.

The key is derived from a user passphrase with PBKDF2-HMAC-SHA256 and a fresh
32-byte salt per encryption. Every binary field of the envelope is hex encoded:

    {"encrypted": "...", "iv": "...", "tag": "...", "salt": "..."}

The parameters below are part of the on-disk format. Changing any of them makes
existing envelopes unreadable.
"""

from __future__ import annotations

import secrets
from dataclasses import asdict, dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from heimdell.credentials.errors import CredentialError, CredentialErrorKind

# --- Parameters ---
KDF_ITERATIONS = 100_000
KEY_LEN = 32
SALT_LEN = 32
IV_LEN = 16
TAG_LEN = 16
ASSOCIATED_DATA = b"heimdell-credentials"

ENVELOPE_FIELDS = frozenset({"encrypted", "iv", "tag", "salt"})


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Hex-encoded ciphertext, IV, GCM tag and KDF salt."""

    encrypted: str
    iv: str
    tag: str
    salt: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> EncryptedEnvelope | None:
        """Parse an envelope. Returns None for any other shape (plain JSON)."""
        if not isinstance(data, dict) or set(data) != ENVELOPE_FIELDS:
            return None
        if not all(isinstance(data[k], str) for k in ENVELOPE_FIELDS):
            return None
        try:
            bytes.fromhex(data["encrypted"])
            iv = bytes.fromhex(data["iv"])
            tag = bytes.fromhex(data["tag"])
            salt = bytes.fromhex(data["salt"])
        except ValueError:
            return None
        if len(iv) != IV_LEN or len(tag) != TAG_LEN or len(salt) != SALT_LEN:
            return None
        return cls(
            encrypted=data["encrypted"],
            iv=data["iv"],
            tag=data["tag"],
            salt=data["salt"],
        )


def derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: str, password: str) -> EncryptedEnvelope:
    """Encrypt plaintext under a passphrase. Salt and IV are fresh on every call."""
    salt = secrets.token_bytes(SALT_LEN)
    iv = secrets.token_bytes(IV_LEN)
    aesgcm = AESGCM(derive_key(password, salt))
    sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), ASSOCIATED_DATA)
    ciphertext, tag = sealed[:-TAG_LEN], sealed[-TAG_LEN:]
    return EncryptedEnvelope(
        encrypted=ciphertext.hex(),
        iv=iv.hex(),
        tag=tag.hex(),
        salt=salt.hex(),
    )


def decrypt(envelope: EncryptedEnvelope, password: str) -> str:
    """Decrypt and authenticate an envelope.

    Raises CredentialError(INVALID_KEY) when the tag does not verify, which
    covers both a wrong passphrase and a tampered or truncated envelope.
    """
    try:
        salt = bytes.fromhex(envelope.salt)
        iv = bytes.fromhex(envelope.iv)
        sealed = bytes.fromhex(envelope.encrypted) + bytes.fromhex(envelope.tag)
    except ValueError as e:
        raise CredentialError(
            CredentialErrorKind.INVALID_KEY,
            "Encrypted credentials are corrupt",
            operation="decrypt",
        ) from e
    if len(salt) != SALT_LEN or len(iv) != IV_LEN or len(sealed) < TAG_LEN:
        raise CredentialError(
            CredentialErrorKind.INVALID_KEY,
            "Encrypted credentials are corrupt",
            operation="decrypt",
        )

    aesgcm = AESGCM(derive_key(password, salt))
    try:
        plaintext = aesgcm.decrypt(iv, sealed, ASSOCIATED_DATA)
    except InvalidTag as e:
        raise CredentialError(CredentialErrorKind.INVALID_KEY, operation="decrypt") from e
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            "Decrypted credentials are not valid UTF-8",
            operation="decrypt",
        ) from e
