"""
Heimdell credentials — encrypted storage, environments and session keys.

Public API:
    load_credentials(path)          → CredentialDocument or CredentialError
    autoload_credentials()          → CredentialDocument or None, never raises
    get_current_credentials()       → last loaded CredentialDocument or None
    execute_protected_command(name, body)
                                    → body(session) once credentials are loaded
    EnvironmentStore(store_root)    → save_environment, switch_to, list_environments
"""

from __future__ import annotations

from heimdell.credentials.environments import (
    ActivationMode,
    ActivationResult,
    EnvironmentStore,
    SwitchResult,
    sanitize_environment_name,
    validate_environment_name,
)
from heimdell.credentials.errors import CredentialError, CredentialErrorKind
from heimdell.credentials.loader import (
    CredentialLoader,
    CredentialSession,
    autoload_credentials,
    get_current_credentials,
    load_credentials,
)
from heimdell.credentials.models import CredentialDocument
from heimdell.credentials.protected import create_protected_command, execute_protected_command
from heimdell.credentials.session import (
    MemorySessionKeyCache,
    SessionKeyCache,
    TempFileSessionKeyCache,
)

__all__ = [
    "ActivationMode",
    "ActivationResult",
    "CredentialDocument",
    "CredentialError",
    "CredentialErrorKind",
    "CredentialLoader",
    "CredentialSession",
    "EnvironmentStore",
    "MemorySessionKeyCache",
    "SessionKeyCache",
    "SwitchResult",
    "TempFileSessionKeyCache",
    "autoload_credentials",
    "create_protected_command",
    "execute_protected_command",
    "get_current_credentials",
    "load_credentials",
    "sanitize_environment_name",
    "validate_environment_name",
]
