"""
Heimdell CLI — entry point for credential and environment management.

Usage:
    heimdell login                  # Log in and save credentials for this project
    heimdell login -e staging       # Log in to a named environment and switch to it
    heimdell env staging            # Switch the active environment
    heimdell env --default          # Switch back to the default credentials
    heimdell env --list             # List environments
    heimdell encrypt-credentials    # Encrypt all plain credentials files
    heimdell decrypt-credentials    # Decrypt them again (e.g. to change the key)
    heimdell whoami                 # Show the active credentials
    heimdell version                # Show version
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from heimdell.api.client import HeimdellClient
from heimdell.credentials.environments import EnvironmentStore, SwitchResult, validate_environment_name
from heimdell.credentials.errors import CredentialError, CredentialErrorKind
from heimdell.credentials.loader import CredentialLoader, CredentialSession
from heimdell.credentials.models import CredentialDocument
from heimdell.credentials.protected import execute_protected_command
from heimdell.credentials.session import TempFileSessionKeyCache
from heimdell.credentials.store import (
    decrypt_file,
    encrypt_file,
    find_encrypted_credentials,
    find_unencrypted_credentials,
    is_encrypted,
    read_plain,
)

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "Not logged in. Run 'heimdell login' first."
PLATFORMS = ("android", "ios")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="heimdell",
        description="Heimdell: over-the-air updates for React Native.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    # login
    login_parser = subparsers.add_parser("login", help="Log in and save credentials")
    login_parser.add_argument("--server", help="Heimdell server address")
    login_parser.add_argument("--username", help="Username")
    login_parser.add_argument("--password", help="Password (prompted if omitted)")
    login_parser.add_argument("--tag", help="Project tag")
    login_parser.add_argument(
        "--platform",
        action="append",
        choices=PLATFORMS,
        help="Target platform (repeatable)",
    )
    login_parser.add_argument("--environment", "-e", help="Environment to log in to")
    login_parser.add_argument(
        "--encrypt", action="store_true", help="Encrypt the saved credentials with a key"
    )

    # env
    env_parser = subparsers.add_parser("env", help="Switch the active environment")
    env_parser.add_argument("environment", nargs="?", help="Environment to switch into")
    env_group = env_parser.add_mutually_exclusive_group()
    env_group.add_argument("--default", action="store_true", help="Switch back to default credentials")
    env_group.add_argument("--list", action="store_true", help="List environments")

    # encrypt / decrypt
    subparsers.add_parser("encrypt-credentials", help="Encrypt plain credentials files")
    subparsers.add_parser("decrypt-credentials", help="Decrypt encrypted credentials files")

    # whoami
    subparsers.add_parser("whoami", help="Show the active credentials")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)
    _configure_logging()

    if args.version or args.command == "version":
        from heimdell import __version__

        print(f"heimdell {__version__}")
        return 0

    try:
        if args.command == "login":
            return _cmd_login(args)
        elif args.command == "env":
            return _cmd_env(args)
        elif args.command == "encrypt-credentials":
            return _cmd_encrypt(args)
        elif args.command == "decrypt-credentials":
            return _cmd_decrypt(args)
        elif args.command == "whoami":
            return _cmd_whoami(args)
        else:
            parser.print_help()
            return 0
    except KeyboardInterrupt:
        print()
        print("Aborted.")
        return 130
    except CredentialError as e:
        logger.debug("Command %s failed: %s", args.command, e.kind)
        print(f"Error: {e}")
        return 1


def _configure_logging() -> None:
    from heimdell.config import get_config

    level = getattr(logging, get_config().log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Prompts ───────────────────────────────────────────────────────────


def _ask(label: str) -> str:
    while True:
        try:
            value = input(f"{label} ").strip()
        except EOFError:
            raise KeyboardInterrupt from None
        if value:
            return value


def _ask_secret(label: str) -> str:
    try:
        return getpass.getpass(f"{label} ")
    except EOFError:
        raise KeyboardInterrupt from None


def _ask_platforms() -> list[str]:
    while True:
        raw = _ask("Platforms (android, ios):")
        chosen = [p.strip().lower() for p in raw.replace(",", " ").split()]
        invalid = [p for p in chosen if p not in PLATFORMS]
        if chosen and not invalid:
            return chosen
        print(f"  ! Choose one or more of: {', '.join(PLATFORMS)}")


def _choose_encryption_key(min_length: int) -> str:
    """Ask for a new key twice until it is long enough and both entries match."""
    while True:
        key = _ask_secret(f"Encryption key (minimum {min_length} characters):")
        if len(key) < min_length:
            print(f"  ! Encryption key must be at least {min_length} characters long")
            continue
        confirm = _ask_secret("Re-enter encryption key:")
        if confirm != key:
            print("  ! Encryption keys do not match")
            continue
        print("  Note: you will need this key to access your credentials. Keep it secure!")
        return key


# ── Commands ──────────────────────────────────────────────────────────


def _verify_login(credentials: CredentialDocument) -> bool:
    client = HeimdellClient.from_credentials(credentials)
    try:
        result = client.login()
    finally:
        client.close()
    if not result.ok:
        print(f"Login failed: {result.status_code} - {result.detail}")
        return False
    return True


def _report_switch(store: EnvironmentStore, result: SwitchResult) -> None:
    print("ENVIRONMENT SWITCHED")
    if result.copied and result.activation is not None:
        print(
            f"Warning: symbolic links are not available, so {store.credentials_path} is a copy of "
            f"{result.activation.target}. Edits to {result.activation.target} will not be "
            f"picked up until you run 'heimdell env {result.environment}' again."
        )


def _cmd_login(args: argparse.Namespace) -> int:
    from heimdell.config import get_config

    cfg = get_config()
    store = EnvironmentStore.from_config(cfg)
    environment = validate_environment_name(args.environment) if args.environment else None

    server = args.server or _ask("Server address:")
    username = args.username or _ask("Username:")
    password = args.password or _ask_secret(f"Password for {username}:")
    tag = args.tag or _ask("Project tag:")
    platforms = args.platform or _ask_platforms()

    try:
        document = CredentialDocument(
            baseUrl=server,
            username=username,
            password=password,
            tag=tag,
            platforms=platforms,
            environment=environment,
        )
    except ValidationError as e:
        print(f"Error: invalid login details: {e.errors()[0]['msg']}")
        return 1

    print(f"Logging in to {server}...")
    if not _verify_login(document):
        return 1

    key = _choose_encryption_key(cfg.min_key_length) if args.encrypt else None
    path = store.save_environment(environment, document, key)
    if key:
        TempFileSessionKeyCache().set(key)
    print(f"Credentials saved to {path}")

    if environment:
        _report_switch(store, store.switch_to(environment))
    return 0


def _cmd_env(args: argparse.Namespace) -> int:
    store = EnvironmentStore.from_config()

    if args.list:
        environments = store.list_environments()
        if not environments:
            print("No environments. Log in to one with: heimdell login -e <name>")
            return 0
        current = store.current_environment()
        for name in environments:
            mark = "*" if name == current else " "
            print(f"  {mark} {name}")
        if current is None:
            print("  (default credentials active)")
        return 0

    if args.default:
        result = store.switch_to(None)
        print("Switched to default credentials.")
        if result.restored_backup:
            print(f"Restored {store.credentials_path} from backup.")
        return 0

    if not args.environment:
        print("You must provide an environment to switch into (or --default / --list).")
        return 1

    name = validate_environment_name(args.environment)
    env_file = store.environment_file(name)
    if not env_file.is_file():
        print(
            f'No credentials found for environment "{name}". Please make sure you have logged in '
            f"to this environment before switching to it.\n"
            f'You can use heimdell login -e "{args.environment}" to log in.'
        )
        return 1

    session = CredentialLoader(env_file).load(interactive=True, command_name="env")
    print(f"Switching to {name} environment...")
    if not _verify_login(session.credentials):
        return 1

    _report_switch(store, store.switch_to(name))
    return 0


def _plain_canonical(store: EnvironmentStore) -> list[Path]:
    canonical = store.credentials_path
    if canonical.is_file() and not canonical.is_symlink() and not is_encrypted(canonical):
        return [canonical]
    return []


def _plain_backups(store: EnvironmentStore) -> list[Path]:
    """Plain credentials kept in .temp/ (the default backup and edited copies)."""
    found = []
    for path in store.backup_files():
        if is_encrypted(path):
            continue
        try:
            read_plain(path)
        except CredentialError as e:
            logger.warning("Skipping backup that is not a credentials document: %s", e)
            continue
        found.append(path)
    return found


def _cmd_encrypt(args: argparse.Namespace) -> int:
    from heimdell.config import get_config

    cfg = get_config()
    store = EnvironmentStore.from_config(cfg)

    files = (
        _plain_canonical(store)
        + find_unencrypted_credentials(store.store_root)
        + _plain_backups(store)
    )
    if cfg.store.global_dir.resolve() != cfg.store.store_root.resolve():
        files += find_unencrypted_credentials(cfg.store.global_dir)

    if not files:
        print(
            "No unencrypted credentials found. All your credentials are already "
            "encrypted or don't exist."
        )
        return 0

    print(f"Found {len(files)} unencrypted credential file(s):")
    for path in files:
        print(f"  - {path}")

    key = _choose_encryption_key(cfg.min_key_length)
    for i, path in enumerate(files, 1):
        encrypt_file(path, key)
        print(f"  [{i}/{len(files)}] Encrypted {path}")

    print(f"Successfully encrypted {len(files)} credential file(s)!")
    print("You will be prompted for the encryption key when using commands that require credentials.")
    return 0


def _cmd_decrypt(args: argparse.Namespace) -> int:
    store = EnvironmentStore.from_config()
    canonical = store.credentials_path

    files = find_encrypted_credentials(store.store_root)
    files += [path for path in store.backup_files() if is_encrypted(path)]
    if canonical.is_file() and not canonical.is_symlink() and is_encrypted(canonical):
        files.insert(0, canonical)

    if not files:
        print("No encrypted credentials found.")
        return 0

    key = _ask_secret("Encryption key:")
    failed = 0
    for path in files:
        try:
            decrypt_file(path, key)
        except CredentialError as e:
            if not e.is_key_error:
                raise
            failed += 1
            print(f"  x {path}: invalid encryption key, left encrypted")
            continue
        print(f"  + Decrypted {path}")

    TempFileSessionKeyCache().clear()
    if failed:
        print(f"{failed} file(s) could not be decrypted with this key.")
        return 1
    print(f"Decrypted {len(files)} credential file(s).")
    return 0


def _cmd_whoami(args: argparse.Namespace) -> int:
    store = EnvironmentStore.from_config()

    def show(session: CredentialSession) -> int:
        creds = session.credentials
        print(f"  Server:      {creds.baseUrl}")
        print(f"  Username:    {creds.username}")
        print(f"  Project tag: {creds.tag}")
        print(f"  Platforms:   {', '.join(creds.platforms)}")
        print(f"  Environment: {creds.environment or 'default'}")
        if creds.environment:
            mode = "symlink" if store.is_using_symlinks() else "copy"
            print(f"  Active via:  {mode}")
        print(f"  Encrypted:   {'yes' if session.encrypted else 'no'}")
        return 0

    try:
        return execute_protected_command(
            "whoami", show, loader=CredentialLoader(store.credentials_path)
        )
    except CredentialError as e:
        if e.kind is CredentialErrorKind.NOT_FOUND:
            print(NOT_LOGGED_IN)
            return 1
        raise


if __name__ == "__main__":
    sys.exit(main())
