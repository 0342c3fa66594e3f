"""
Session key cache — remembers the encryption key for one terminal session.

The key is stored twice:
  1. in the ``HEIMDELL_SESSION_KEY`` environment variable of the current process
     (also the way CI and scripts pass a key non-interactively), and
  2. in ``$TMPDIR/.heimdell_session_<ppid>`` (mode 600), so later heimdell runs
     from the same shell (same parent pid) reuse it without prompting.

The side file holds the raw passphrase protected only by file permissions.
This is a convenience cache for the lifetime of the OS temp directory, not a
secret store. Anyone able to read the user's temp files can read the key.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import MutableMapping
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

SESSION_ENV_VAR = "HEIMDELL_SESSION_KEY"
SESSION_FILE_PREFIX = ".heimdell_session_"


class SessionKeyCache(Protocol):
    def get(self) -> str | None: ...

    def set(self, key: str) -> None: ...

    def clear(self) -> None: ...


def _session_id() -> int:
    return os.getppid() or os.getpid()


class TempFileSessionKeyCache:
    """Production cache: environment variable first, then the per-shell temp file."""

    def __init__(
        self,
        *,
        session_id: int | None = None,
        directory: Path | None = None,
        environ: MutableMapping[str, str] | None = None,
        env_var: str = SESSION_ENV_VAR,
    ):
        self.session_id = session_id if session_id is not None else _session_id()
        self.directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        self.environ = environ if environ is not None else os.environ
        self.env_var = env_var

    @property
    def path(self) -> Path:
        return self.directory / f"{SESSION_FILE_PREFIX}{self.session_id}"

    def get(self) -> str | None:
        key = self.environ.get(self.env_var)
        if key:
            return key
        return self._read_file()

    def set(self, key: str) -> None:
        self.environ[self.env_var] = key
        self._write_file(key)

    def clear(self) -> None:
        self.environ.pop(self.env_var, None)
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove session key file %s: %s", self.path, e)

    def _read_file(self) -> str | None:
        # Another heimdell run may be rewriting the file; any failure means "no key".
        try:
            key = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Ignoring unreadable session key file %s: %s", self.path, e)
            return None
        return key or None

    def _write_file(self, key: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f"{SESSION_FILE_PREFIX}{self.session_id}.", dir=self.directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(key)
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Could not persist session key to %s: %s", self.path, e)


class MemorySessionKeyCache:
    """In-process cache with no side effects, for tests and one-shot runs."""

    def __init__(self, key: str | None = None):
        self._key = key

    def get(self) -> str | None:
        return self._key

    def set(self, key: str) -> None:
        self._key = key

    def clear(self) -> None:
        self._key = None
