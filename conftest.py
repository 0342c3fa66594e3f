"""
Root-level shared test fixtures.

Every test runs against an isolated project directory and temp directory, so
nothing touches the real ~/.heimdell or the shell's session key file.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from heimdell.config import reset_config
from heimdell.credentials import cipher
from heimdell.credentials.loader import reset_current_credentials
from heimdell.credentials.models import CredentialDocument

HEIMDELL_ENV_VARS = [
    "HEIMDELL_PROJECT_DIR",
    "HEIMDELL_STORE_DIRNAME",
    "HEIMDELL_HOME",
    "HEIMDELL_HTTP_TIMEOUT",
    "HEIMDELL_LOG_LEVEL",
    "HEIMDELL_SESSION_KEY",
]


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    """Fresh config, no leaked env vars, private temp dir, fast key derivation."""
    for key in HEIMDELL_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    session_tmp = tmp_path / "session-tmp"
    session_tmp.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(session_tmp))
    monkeypatch.setattr(cipher, "KDF_ITERATIONS", 1_000)
    reset_config()
    reset_current_credentials()
    yield
    reset_current_credentials()
    reset_config()


@pytest.fixture
def project_dir(tmp_path, monkeypatch) -> Path:
    """A project directory wired into the config via HEIMDELL_PROJECT_DIR."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setenv("HEIMDELL_PROJECT_DIR", str(project))
    monkeypatch.setenv("HEIMDELL_HOME", str(tmp_path / "home-heimdell"))
    reset_config()
    return project


@pytest.fixture
def store_root(project_dir) -> Path:
    return project_dir / ".heimdell"


@pytest.fixture
def document() -> CredentialDocument:
    return CredentialDocument(
        baseUrl="https://s",
        username="u",
        password="p",
        tag="t",
        platforms=["android"],
    )
