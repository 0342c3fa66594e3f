"""
Environment directory manager — one credentials file per named environment.

Layout under the project:

    .heimdell/credentials.json            canonical file (symlink or copy)
    .heimdell/<env>/credentials.json      per-environment file
    .heimdell/.current-env                name of the active environment
    .heimdell/.temp/                      backup of the default credentials
    .heimdell/.gitignore

Switching to an environment points the canonical file at the environment's
file with a relative symlink. Where symlinks cannot be created the file is
copied instead and the result says so, because edits to the environment file
are then not visible until the next switch.

A canonical file that is a real file and not an environment copy holds the
default credentials. It is moved to .temp/ before the pointer replaces it, and
restored on ``switch_to(None)``. A copy counts as a copy only while its bytes
match the marked environment's file; an edited copy is moved to its own
``.<env>.bak`` in .temp/ instead of being overwritten, and the default backup
is left alone. These steps are not transactional: a crash
between the backup and the new pointer leaves the canonical file missing, with
the default credentials still in .temp/.
"""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from heimdell.credentials.errors import CredentialError, CredentialErrorKind
from heimdell.credentials.files import atomic_write_text, copy_file_atomic, move_file
from heimdell.credentials.models import CredentialDocument
from heimdell.credentials.store import (
    CREDENTIALS_FILENAME,
    is_encrypted,
    read_plain,
    write,
    write_encrypted,
)

logger = logging.getLogger(__name__)

MAX_ENVIRONMENT_NAME_LENGTH = 30

GITIGNORE_ENTRIES = ["credentials.json", ".current-env", ".temp"]


def _move_replacing(source: Path, destination: Path) -> None:
    if destination.exists() or destination.is_symlink():
        destination.unlink()
    move_file(source, destination)


def sanitize_environment_name(name: str | None) -> str:
    """Lowercase, turn whitespace into underscores, drop anything outside [a-z0-9_].

    Returns "" when nothing usable is left.
    """
    if not name:
        return ""
    cleaned = re.sub(r"\s+", "_", name.strip().lower())
    return re.sub(r"[^a-z0-9_]", "", cleaned)


def validate_environment_name(name: str | None) -> str:
    """Validate a user-supplied environment name and return its sanitized form."""
    if name is None or not name.strip():
        raise CredentialError(
            CredentialErrorKind.INVALID_ENVIRONMENT_NAME, "The environment name cannot be empty"
        )
    if len(name.strip()) > MAX_ENVIRONMENT_NAME_LENGTH:
        raise CredentialError(
            CredentialErrorKind.INVALID_ENVIRONMENT_NAME,
            f"The environment name is too long (max {MAX_ENVIRONMENT_NAME_LENGTH} characters)",
        )
    sanitized = sanitize_environment_name(name)
    if not sanitized:
        raise CredentialError(
            CredentialErrorKind.INVALID_ENVIRONMENT_NAME,
            "The environment name is invalid; use letters, numbers and underscores",
        )
    return sanitized


class ActivationMode(StrEnum):
    SYMLINKED = "symlinked"
    COPIED = "copied"


@dataclass(frozen=True)
class ActivationResult:
    mode: ActivationMode
    target: Path

    @property
    def real_time_sync(self) -> bool:
        """False when the canonical file is a copy that will not follow later edits."""
        return self.mode is ActivationMode.SYMLINKED


@dataclass(frozen=True)
class SwitchResult:
    environment: str | None
    activation: ActivationResult | None = None
    restored_backup: bool = False

    @property
    def copied(self) -> bool:
        return self.activation is not None and self.activation.mode is ActivationMode.COPIED


class EnvironmentStore:
    """Manages the per-environment files and the canonical pointer of one project."""

    def __init__(self, store_root: Path, *, project_dir: Path | None = None):
        self.store_root = Path(store_root)
        self.project_dir = Path(project_dir) if project_dir is not None else self.store_root.parent
        self.credentials_path = self.store_root / CREDENTIALS_FILENAME
        self.backup_dir = self.store_root / ".temp"
        self.current_env_path = self.store_root / ".current-env"
        self.gitignore_path = self.store_root / ".gitignore"

    @classmethod
    def from_config(cls, cfg=None) -> EnvironmentStore:
        if cfg is None:
            from heimdell.config import get_config

            cfg = get_config()
        return cls(cfg.store.store_root, project_dir=cfg.store.project_dir)

    # ── Paths ─────────────────────────────────────────────────────────

    def environment_dir(self, name: str) -> Path:
        return self.store_root / name

    def environment_file(self, name: str) -> Path:
        return self.environment_dir(name) / CREDENTIALS_FILENAME

    def _flattened_canonical(self) -> str:
        try:
            relative = self.credentials_path.relative_to(self.project_dir)
        except ValueError:
            relative = Path(*self.credentials_path.parts[1:])
        return "_".join(relative.parts)

    @property
    def backup_path(self) -> Path:
        """Backup location for the default credentials: the canonical path flattened."""
        return self.backup_dir / f"{self._flattened_canonical()}.bak"

    def edited_copy_backup_path(self, name: str) -> Path:
        """Where an edited copy of environment ``name`` is kept when it is replaced."""
        return self.backup_dir / f"{self._flattened_canonical()}.{name}.bak"

    def backup_files(self) -> list[Path]:
        if not self.backup_dir.is_dir():
            return []
        return sorted(p for p in self.backup_dir.glob("*.bak") if p.is_file() and not p.is_symlink())

    # ── State ─────────────────────────────────────────────────────────

    def list_environments(self) -> list[str]:
        if not self.store_root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.store_root.iterdir()
            if entry.is_dir()
            and not entry.name.startswith(".")
            and (entry / CREDENTIALS_FILENAME).is_file()
        )

    def current_environment(self) -> str | None:
        """Active environment from the .current-env marker, None for default."""
        try:
            name = self.current_env_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None
        return name or None

    def set_current_environment(self, name: str | None) -> None:
        if name is None:
            self.current_env_path.unlink(missing_ok=True)
            return
        atomic_write_text(self.current_env_path, name + "\n", follow_symlinks=False)

    def is_using_symlinks(self) -> bool:
        return self.credentials_path.is_symlink()

    def ensure_gitignore(self) -> None:
        """Keep the canonical file, marker and backups out of version control."""
        existing: list[str] = []
        if self.gitignore_path.exists():
            existing = self.gitignore_path.read_text(encoding="utf-8").splitlines()
        updated = existing + [e for e in GITIGNORE_ENTRIES if e not in existing]
        if updated != existing or not self.gitignore_path.exists():
            atomic_write_text(self.gitignore_path, "\n".join(updated) + "\n", follow_symlinks=False)

    # ── Pointer ───────────────────────────────────────────────────────

    def activate_pointer(self, target: Path) -> ActivationResult:
        """Point the canonical credentials path at target (symlink, else copy)."""
        target = Path(target)
        if not target.is_file():
            raise CredentialError(
                CredentialErrorKind.NOT_FOUND,
                "Source file does not exist",
                path=target,
                operation="activate",
            )
        canonical = self.credentials_path
        canonical.parent.mkdir(parents=True, exist_ok=True)
        backup = self._release_canonical()
        try:
            return self._create_pointer(target)
        except BaseException:
            if backup is not None and not canonical.exists() and not canonical.is_symlink():
                logger.debug("Pointer creation failed, restoring %s", canonical)
                move_file(backup, canonical)
            raise

    def _release_canonical(self) -> Path | None:
        """Move a regular canonical file out of the way. Returns where it went.

        Symlinks and unedited fallback copies are left in place; the new
        pointer replaces them atomically.
        """
        canonical = self.credentials_path
        if canonical.is_symlink() or not canonical.exists():
            return None
        marked = self.current_environment()
        if marked is None:
            backup = self.backup_path
        elif self._holds_environment_copy(marked):
            logger.debug("%s is a copy of %s, replacing it", canonical, marked)
            return None
        else:
            return self._keep_edited_copy(marked)
        _move_replacing(canonical, backup)
        logger.debug("Backed up %s to %s", canonical, backup)
        return backup

    def _holds_environment_copy(self, name: str) -> bool:
        """True when the canonical file is a byte-identical copy of environment ``name``."""
        canonical = self.credentials_path
        env_file = self.environment_file(name)
        if canonical.is_symlink() or not canonical.is_file() or not env_file.is_file():
            return False
        try:
            return canonical.read_bytes() == env_file.read_bytes()
        except OSError:
            return False

    def _keep_edited_copy(self, name: str) -> Path:
        backup = self.edited_copy_backup_path(name)
        logger.warning(
            "%s differs from the %s environment file; keeping it as %s",
            self.credentials_path,
            name,
            backup,
        )
        _move_replacing(self.credentials_path, backup)
        return backup

    def _discard_pointer(self, marked: str | None) -> None:
        """Remove the canonical symlink or environment copy, keeping an edited copy."""
        canonical = self.credentials_path
        if canonical.is_symlink() or marked is None or self._holds_environment_copy(marked):
            canonical.unlink()
        else:
            self._keep_edited_copy(marked)

    def _create_pointer(self, target: Path) -> ActivationResult:
        canonical = self.credentials_path
        relative = os.path.relpath(target, canonical.parent)
        staging = canonical.with_name(f".{canonical.name}.{secrets.token_hex(4)}.link")
        try:
            os.symlink(relative, staging)
        except (OSError, NotImplementedError) as e:
            logger.warning("Symlink creation failed (%s); copying %s instead", e, target)
            copy_file_atomic(target, canonical)
            return ActivationResult(ActivationMode.COPIED, target)
        try:
            os.replace(staging, canonical)
        except BaseException:
            staging.unlink(missing_ok=True)
            raise
        logger.debug("Linked %s -> %s", canonical, relative)
        return ActivationResult(ActivationMode.SYMLINKED, target)

    # ── Switching ─────────────────────────────────────────────────────

    def switch_to(self, name: str | None) -> SwitchResult:
        """Make ``name`` the active environment, or the default when None."""
        if name is None:
            return self._switch_to_default()

        env_name = validate_environment_name(name)
        env_file = self.environment_file(env_name)
        if not env_file.is_file():
            raise CredentialError(
                CredentialErrorKind.ENVIRONMENT_NOT_FOUND,
                f'No credentials found for environment "{env_name}"',
                path=env_file,
                operation="switch",
            )
        self._sync_environment_field(env_file, env_name)
        activation = self.activate_pointer(env_file)
        self.set_current_environment(env_name)
        return SwitchResult(environment=env_name, activation=activation)

    def _switch_to_default(self) -> SwitchResult:
        canonical = self.credentials_path
        marked = self.current_environment()
        restored = False
        if canonical.is_symlink() or (canonical.is_file() and marked is not None):
            self._discard_pointer(marked)
            backup = self.backup_path
            if backup.is_file():
                move_file(backup, canonical)
                self._strip_environment_field(canonical)
                restored = True
                logger.debug("Restored default credentials from %s", backup)
            else:
                logger.debug("No default credentials backup at %s", backup)
        self.set_current_environment(None)
        return SwitchResult(environment=None, restored_backup=restored)

    def _sync_environment_field(self, env_file: Path, name: str) -> None:
        """Rewrite a plain environment file whose ``environment`` field disagrees with its directory."""
        if is_encrypted(env_file):
            return
        read_plain(env_file)
        data = json.loads(env_file.read_text(encoding="utf-8"))
        if data.get("environment") == name:
            return
        data["environment"] = name
        atomic_write_text(env_file, json.dumps(data, indent=2) + "\n")
        logger.debug("Set environment=%s in %s", name, env_file)

    def _strip_environment_field(self, path: Path) -> None:
        if is_encrypted(path):
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug("Leaving restored %s untouched: %s", path, e)
            return
        if not isinstance(data, dict) or "environment" not in data:
            return
        del data["environment"]
        atomic_write_text(path, json.dumps(data, indent=2) + "\n", follow_symlinks=False)

    # ── Saving ────────────────────────────────────────────────────────

    def save_environment(
        self,
        name: str | None,
        document: CredentialDocument,
        password: str | None = None,
    ) -> Path:
        """Store credentials for an environment (or the default when None).

        Encrypts when a password is given. Returns the file written.
        """
        if name is None:
            path = self.credentials_path
            doc = document.with_environment(None)
            marked = self.current_environment()
            if path.is_symlink() or (path.is_file() and marked is not None):
                self._discard_pointer(marked)
            self.set_current_environment(None)
        else:
            env_name = validate_environment_name(name)
            path = self.environment_file(env_name)
            doc = document.with_environment(env_name)

        path.parent.mkdir(parents=True, exist_ok=True)
        if password:
            write_encrypted(path, doc, password, replace=True)
        else:
            write(path, doc)
        self.ensure_gitignore()
        return path
