"""Tests for the credential error taxonomy."""

from pathlib import Path

from heimdell.credentials.errors import CredentialError, CredentialErrorKind


class TestCredentialError:
    def test_default_message(self):
        err = CredentialError(CredentialErrorKind.NOT_FOUND)
        assert str(err) == "Credentials file not found"
        assert err.path is None

    def test_context_in_message(self):
        err = CredentialError(
            CredentialErrorKind.INVALID_KEY, path="/tmp/creds.json", operation="decrypt"
        )
        assert str(err) == "Invalid encryption key during decrypt (/tmp/creds.json)"
        assert err.path == Path("/tmp/creds.json")
        assert err.detail == "Invalid encryption key"

    def test_only_invalid_key_is_key_error(self):
        assert CredentialError(CredentialErrorKind.INVALID_KEY).is_key_error
        for kind in CredentialErrorKind:
            if kind is not CredentialErrorKind.INVALID_KEY:
                assert not CredentialError(kind).is_key_error

    def test_kind_is_string(self):
        assert CredentialErrorKind.ALREADY_ENCRYPTED == "already_encrypted"
