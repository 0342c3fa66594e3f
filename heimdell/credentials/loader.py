"""
Credential loader — turns the canonical credentials file into a CredentialSession.

Resolution order for one command:
  1. no file                        → NOT_FOUND (caller shows "please log in")
  2. plain file                     → loaded
  3. encrypted, key in session cache → loaded, or cache cleared on a wrong key
  4. encrypted, no usable key       → INVALID_KEY, or prompt until a key works

The loaded document is also published as the process-wide "current
credentials" for collaborators that are not handed the session explicitly.
"""

from __future__ import annotations

import getpass
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from heimdell.credentials.errors import CredentialError, CredentialErrorKind
from heimdell.credentials.models import CredentialDocument
from heimdell.credentials.session import SessionKeyCache, TempFileSessionKeyCache
from heimdell.credentials.store import is_encrypted, read_encrypted, read_plain

logger = logging.getLogger(__name__)

INVALID_KEY_MESSAGE = "Invalid encryption key. Please try again."

# (message, error or None) -> entered key
KeyPrompt = Callable[[str, str | None], str]


@dataclass(frozen=True)
class CredentialSession:
    """Credentials loaded for the running command."""

    credentials: CredentialDocument
    path: Path
    encrypted: bool = False

    @property
    def environment(self) -> str | None:
        return self.credentials.environment


# Process-wide current credentials
_current: CredentialDocument | None = None


def get_current_credentials() -> CredentialDocument | None:
    """Most recently loaded credentials. Do not keep beyond the current command."""
    return _current


def set_current_credentials(credentials: CredentialDocument | None) -> None:
    global _current
    _current = credentials


def reset_current_credentials() -> None:
    """Forget the loaded credentials (for testing)."""
    global _current
    _current = None


def prompt_for_key(message: str, error: str | None = None) -> str:
    """Masked terminal prompt. EOF is treated like Ctrl-C."""
    if error:
        print(f"  ! {error}", file=sys.stderr)
    try:
        return getpass.getpass(f"{message} ")
    except EOFError:
        raise KeyboardInterrupt from None


def _default_path() -> Path:
    from heimdell.config import get_config

    return get_config().store.credentials_path


class CredentialLoader:
    """Loads one credentials file, consulting the session cache and the user for a key."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        session_cache: SessionKeyCache | None = None,
        prompt: KeyPrompt | None = None,
    ):
        self.path = Path(path) if path is not None else _default_path()
        self.session_cache = session_cache if session_cache is not None else TempFileSessionKeyCache()
        self.prompt = prompt or prompt_for_key

    def load(self, *, interactive: bool = False, command_name: str | None = None) -> CredentialSession:
        """Load credentials, prompting for a key only if ``interactive``."""
        try:
            return self._load_without_prompt()
        except CredentialError as e:
            if not (interactive and e.is_key_error):
                raise
        return self.prompt_until_valid(command_name=command_name)

    def _load_without_prompt(self) -> CredentialSession:
        path = self.path
        if not path.exists():
            raise CredentialError(CredentialErrorKind.NOT_FOUND, path=path, operation="load")

        if not is_encrypted(path):
            return self._publish(read_plain(path), encrypted=False)

        cached = self.session_cache.get()
        if cached:
            try:
                return self._publish(read_encrypted(path, cached), encrypted=True)
            except CredentialError as e:
                if not e.is_key_error:
                    raise
                logger.warning("Stored encryption key is invalid; clearing it")
                self.session_cache.clear()
                raise
        raise CredentialError(
            CredentialErrorKind.INVALID_KEY,
            "Credentials are encrypted; an encryption key is required",
            path=path,
            operation="load",
        )

    def prompt_until_valid(self, *, command_name: str | None = None) -> CredentialSession:
        """Ask for the key until one decrypts the file. There is no retry limit."""
        if command_name:
            message = f"Command '{command_name}' requires encrypted credentials. Please enter your encryption key:"
        else:
            message = "Please enter your encryption key:"
        error: str | None = None
        while True:
            key = self.prompt(message, error)
            try:
                document = read_encrypted(self.path, key)
            except CredentialError as e:
                if not e.is_key_error:
                    raise
                error = INVALID_KEY_MESSAGE
                continue
            self.session_cache.set(key)
            return self._publish(document, encrypted=True)

    def _publish(self, document: CredentialDocument, *, encrypted: bool) -> CredentialSession:
        set_current_credentials(document)
        return CredentialSession(credentials=document, path=self.path, encrypted=encrypted)


def load_credentials(
    path: Path,
    *,
    password: str | None = None,
    session_cache: SessionKeyCache | None = None,
) -> CredentialDocument:
    """Load a credentials file without prompting.

    Uses ``password`` when given, else the session cache. Raises CredentialError
    (NOT_FOUND, INVALID_KEY, MALFORMED_DOCUMENT).
    """
    path = Path(path)
    if password is not None:
        if not path.exists():
            raise CredentialError(CredentialErrorKind.NOT_FOUND, path=path, operation="load")
        document = read_encrypted(path, password)
        set_current_credentials(document)
        return document
    loader = CredentialLoader(path, session_cache=session_cache)
    return loader.load().credentials


def autoload_credentials(
    path: Path | None = None,
    *,
    session_cache: SessionKeyCache | None = None,
) -> CredentialDocument | None:
    """Best-effort load of the canonical credentials. Never raises."""
    try:
        loader = CredentialLoader(path, session_cache=session_cache)
        return loader.load().credentials
    except (CredentialError, OSError) as e:
        logger.debug("Credentials not autoloaded: %s", e)
        return None
