"""File replacement helpers shared by the credential store and environment switching."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str, *, follow_symlinks: bool = True) -> Path:
    """Write text via a temp file in the destination directory, then os.replace.

    With ``follow_symlinks`` the write lands on the symlink's target so the link
    itself survives. The temp file is created 0600 and keeps that mode.
    Returns the path actually written.
    """
    target = Path(os.path.realpath(path)) if follow_symlinks else Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return target


def copy_file_atomic(source: Path, destination: Path) -> None:
    """Copy source over destination without ever leaving a half-written destination."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
    os.close(fd)
    try:
        shutil.copyfile(source, tmp)
        os.replace(tmp, destination)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def move_file(source: Path, destination: Path) -> None:
    """Rename source to destination, falling back to copy-then-delete across devices."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.replace(source, destination)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.debug("Cross-device move %s -> %s, copying instead", source, destination)
        copy_file_atomic(source, destination)
        source.unlink()
