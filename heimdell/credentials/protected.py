"""Run a command body only once credentials are loaded, prompting for the key if needed."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from heimdell.credentials.loader import CredentialLoader, CredentialSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


def execute_protected_command(
    command_name: str,
    body: Callable[[CredentialSession], T],
    *,
    loader: CredentialLoader | None = None,
) -> T:
    """Load credentials, then call ``body(session)`` exactly once.

    A missing or wrong encryption key is resolved by prompting until a key
    works. Every other CredentialError (no credentials, corrupt file) reaches
    the caller unchanged and the body is not called.
    """
    loader = loader or CredentialLoader()
    session = loader.load(interactive=True, command_name=command_name)
    logger.debug("Running %s with credentials from %s", command_name, session.path)
    return body(session)


def create_protected_command(
    command_name: str,
    body: Callable[[CredentialSession], T],
    *,
    loader_factory: Callable[[], CredentialLoader] = CredentialLoader,
) -> Callable[[], T]:
    """Wrap ``body`` so calling the result runs it through execute_protected_command."""

    def run() -> T:
        return execute_protected_command(command_name, body, loader=loader_factory())

    return run
