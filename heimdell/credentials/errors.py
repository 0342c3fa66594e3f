"""
Credential error taxonomy.

Every failure raised by the credential subsystem is a ``CredentialError``
tagged with a ``CredentialErrorKind``. Callers branch on ``error.kind``:

    try:
        load_credentials(path)
    except CredentialError as e:
        if e.kind is CredentialErrorKind.INVALID_KEY:
            ...  # prompt for a new key
        raise
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path


class CredentialErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    INVALID_KEY = "invalid_key"
    MALFORMED_DOCUMENT = "malformed_document"
    ALREADY_ENCRYPTED = "already_encrypted"
    ENVIRONMENT_NOT_FOUND = "environment_not_found"
    INVALID_ENVIRONMENT_NAME = "invalid_environment_name"
    UNREADABLE = "unreadable"


_DEFAULT_MESSAGES = {
    CredentialErrorKind.NOT_FOUND: "Credentials file not found",
    CredentialErrorKind.INVALID_KEY: "Invalid encryption key",
    CredentialErrorKind.MALFORMED_DOCUMENT: "Credentials file is malformed",
    CredentialErrorKind.ALREADY_ENCRYPTED: "Credentials file is already encrypted",
    CredentialErrorKind.ENVIRONMENT_NOT_FOUND: "Environment not found",
    CredentialErrorKind.INVALID_ENVIRONMENT_NAME: "The environment name is invalid",
    CredentialErrorKind.UNREADABLE: "Credentials file cannot be read",
}


class CredentialError(Exception):
    """A credential operation failed. ``kind`` says why."""

    def __init__(
        self,
        kind: CredentialErrorKind,
        message: str | None = None,
        *,
        path: Path | str | None = None,
        operation: str | None = None,
    ):
        self.kind = kind
        self.path = Path(path) if path is not None else None
        self.operation = operation
        self.detail = message or _DEFAULT_MESSAGES[kind]
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.detail]
        if self.operation:
            parts.append(f"during {self.operation}")
        if self.path is not None:
            parts.append(f"({self.path})")
        return " ".join(parts)

    @property
    def is_key_error(self) -> bool:
        """True when re-prompting for an encryption key can fix this failure."""
        return self.kind is CredentialErrorKind.INVALID_KEY


__all__ = ["CredentialError", "CredentialErrorKind"]
