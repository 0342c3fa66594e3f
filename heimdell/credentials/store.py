"""
Credential file store — read and write ``credentials.json`` in either envelope.

A credentials file is one of:
  - a plain Credential Document: {baseUrl, username, password, tag, platforms, environment?}
  - an Encrypted Envelope:       {encrypted, iv, tag, salt}

Plain files stay supported permanently; encryption is opt-in per file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from heimdell.credentials.cipher import EncryptedEnvelope, decrypt, encrypt
from heimdell.credentials.errors import CredentialError, CredentialErrorKind
from heimdell.credentials.files import atomic_write_text
from heimdell.credentials.models import CredentialDocument

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "credentials.json"


def _read_text(path: Path, operation: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise CredentialError(CredentialErrorKind.NOT_FOUND, path=path, operation=operation) from e
    except UnicodeDecodeError as e:
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            "Credentials file is not valid UTF-8",
            path=path,
            operation=operation,
        ) from e
    except OSError as e:
        raise CredentialError(
            CredentialErrorKind.UNREADABLE,
            f"Cannot read credentials file: {e.strerror or e}",
            path=path,
            operation=operation,
        ) from e


def _parse_json(text: str, path: Path, operation: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            f"Credentials file is not valid JSON: {e.msg}",
            path=path,
            operation=operation,
        ) from e


def parse_document(data: Any, path: Path | None = None, operation: str = "read") -> CredentialDocument:
    """Validate a decoded JSON value as a Credential Document."""
    if not isinstance(data, dict):
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            "Credentials file must contain a JSON object",
            path=path,
            operation=operation,
        )
    try:
        return CredentialDocument.model_validate(data)
    except ValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            f"Credentials file has missing or invalid fields: {', '.join(missing)}",
            path=path,
            operation=operation,
        ) from e


def _serialize(document: CredentialDocument) -> str:
    return json.dumps(document.to_json_dict(), indent=2) + "\n"


def read_envelope(path: Path) -> EncryptedEnvelope | None:
    """Return the file's envelope, or None when it is missing, unreadable or plain JSON."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return EncryptedEnvelope.from_dict(data)


def is_encrypted(path: Path) -> bool:
    """True iff the file exists, parses as JSON and is a complete Encrypted Envelope."""
    return read_envelope(path) is not None


def read_plain(path: Path) -> CredentialDocument:
    path = Path(path)
    text = _read_text(path, "read")
    return parse_document(_parse_json(text, path, "read"), path)


def read_encrypted(path: Path, password: str) -> CredentialDocument:
    """Decrypt and parse an encrypted file. A plain file is returned as-is."""
    path = Path(path)
    text = _read_text(path, "decrypt")
    data = _parse_json(text, path, "decrypt")
    envelope = EncryptedEnvelope.from_dict(data)
    if envelope is None:
        return parse_document(data, path)
    try:
        plaintext = decrypt(envelope, password)
    except CredentialError as e:
        raise CredentialError(e.kind, e.detail, path=path, operation="decrypt") from e
    return parse_document(_parse_json(plaintext, path, "decrypt"), path, "decrypt")


def read_credentials(path: Path, password: str | None = None) -> CredentialDocument:
    """Read a credentials file in whichever envelope it uses.

    An encrypted file read without a password fails with INVALID_KEY so the
    caller can ask for one.
    """
    path = Path(path)
    if not is_encrypted(path):
        return read_plain(path)
    if password is None:
        raise CredentialError(
            CredentialErrorKind.INVALID_KEY,
            "Credentials are encrypted; an encryption key is required",
            path=path,
            operation="read",
        )
    return read_encrypted(path, password)


def write(path: Path, document: CredentialDocument) -> None:
    """Write a plain Credential Document."""
    atomic_write_text(Path(path), _serialize(document))
    logger.debug("Wrote plain credentials to %s", path)


def write_encrypted(
    path: Path, document: CredentialDocument, password: str, *, replace: bool = False
) -> None:
    """Encrypt and write a document.

    Refuses to write over an existing envelope unless ``replace`` is set, in
    which case the old file is discarded (fresh login), never re-encrypted.
    """
    path = Path(path)
    if not replace and is_encrypted(path):
        raise CredentialError(
            CredentialErrorKind.ALREADY_ENCRYPTED, path=path, operation="encrypt"
        )
    envelope = encrypt(_serialize(document), password)
    atomic_write_text(path, json.dumps(envelope.to_dict(), indent=2) + "\n")
    logger.debug("Wrote encrypted credentials to %s", path)


def encrypt_file(path: Path, password: str) -> None:
    """Encrypt a plain credentials file in place, keeping its exact content.

    The file is left untouched on any failure.
    """
    path = Path(path)
    if not path.exists():
        raise CredentialError(CredentialErrorKind.NOT_FOUND, path=path, operation="encrypt")
    if is_encrypted(path):
        raise CredentialError(
            CredentialErrorKind.ALREADY_ENCRYPTED, path=path, operation="encrypt"
        )
    original = _read_text(path, "encrypt")
    parse_document(_parse_json(original, path, "encrypt"), path, "encrypt")
    envelope = encrypt(original, password)
    atomic_write_text(path, json.dumps(envelope.to_dict(), indent=2) + "\n")
    logger.debug("Encrypted %s", path)


def decrypt_file(path: Path, password: str) -> bool:
    """Decrypt an encrypted credentials file in place.

    Returns False (and changes nothing) when the file is already plain.
    """
    path = Path(path)
    envelope = read_envelope(path)
    if envelope is None:
        if not path.exists():
            raise CredentialError(CredentialErrorKind.NOT_FOUND, path=path, operation="decrypt")
        return False
    try:
        plaintext = decrypt(envelope, password)
    except CredentialError as e:
        raise CredentialError(e.kind, e.detail, path=path, operation="decrypt") from e
    parse_document(_parse_json(plaintext, path, "decrypt"), path, "decrypt")
    atomic_write_text(path, plaintext)
    logger.debug("Decrypted %s", path)
    return True


def _environment_files(store_dir: Path) -> list[Path]:
    store_dir = Path(store_dir)
    if not store_dir.is_dir():
        return []
    return [
        entry / CREDENTIALS_FILENAME
        for entry in sorted(store_dir.iterdir())
        if entry.is_dir() and not entry.name.startswith(".") and (entry / CREDENTIALS_FILENAME).is_file()
    ]


def find_unencrypted_credentials(store_dir: Path) -> list[Path]:
    """Per-environment credentials files under store_dir that are still plain."""
    return [p for p in _environment_files(store_dir) if not is_encrypted(p)]


def find_encrypted_credentials(store_dir: Path) -> list[Path]:
    return [p for p in _environment_files(store_dir) if is_encrypted(p)]
