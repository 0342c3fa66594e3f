"""Tests for the credential loader and the current-credentials slot."""

from pathlib import Path

import pytest

from heimdell.config import reset_config
from heimdell.credentials.errors import CredentialError, CredentialErrorKind
from heimdell.credentials.loader import (
    INVALID_KEY_MESSAGE,
    CredentialLoader,
    autoload_credentials,
    get_current_credentials,
    load_credentials,
    prompt_for_key,
)
from heimdell.credentials.session import MemorySessionKeyCache
from heimdell.credentials.store import write, write_encrypted


class FakePrompt:
    """Returns queued answers and records each (message, error) it was shown."""

    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.calls: list[tuple[str, str | None]] = []

    def __call__(self, message: str, error: str | None) -> str:
        self.calls.append((message, error))
        if not self.answers:
            raise AssertionError("prompted more often than expected")
        return self.answers.pop(0)


@pytest.fixture
def plain_file(tmp_path: Path, document) -> Path:
    path = tmp_path / "credentials.json"
    write(path, document)
    return path


@pytest.fixture
def encrypted_file(tmp_path: Path, document) -> Path:
    path = tmp_path / "credentials.json"
    write_encrypted(path, document, "right-key")
    return path


class TestLoadWithoutPrompt:
    def test_missing_file(self, tmp_path: Path):
        loader = CredentialLoader(tmp_path / "nope.json", session_cache=MemorySessionKeyCache())
        with pytest.raises(CredentialError) as exc:
            loader.load()
        assert exc.value.kind is CredentialErrorKind.NOT_FOUND

    def test_plain_file(self, plain_file: Path, document):
        session = CredentialLoader(plain_file, session_cache=MemorySessionKeyCache()).load()
        assert session.credentials == document
        assert session.encrypted is False
        assert session.path == plain_file
        assert get_current_credentials() == document

    def test_plain_file_never_prompts(self, plain_file: Path):
        prompt = FakePrompt()
        CredentialLoader(plain_file, session_cache=MemorySessionKeyCache(), prompt=prompt).load(
            interactive=True
        )
        assert prompt.calls == []

    def test_encrypted_with_cached_key(self, encrypted_file: Path, document):
        session = CredentialLoader(encrypted_file, session_cache=MemorySessionKeyCache("right-key")).load()
        assert session.credentials == document
        assert session.encrypted is True

    def test_encrypted_without_key(self, encrypted_file: Path):
        loader = CredentialLoader(encrypted_file, session_cache=MemorySessionKeyCache())
        with pytest.raises(CredentialError) as exc:
            loader.load()
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY
        assert get_current_credentials() is None

    def test_wrong_cached_key_is_cleared(self, encrypted_file: Path):
        cache = MemorySessionKeyCache("wrong-key")
        loader = CredentialLoader(encrypted_file, session_cache=cache)
        with pytest.raises(CredentialError) as exc:
            loader.load()
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY
        assert cache.get() is None

    def test_malformed_file(self, tmp_path: Path):
        path = tmp_path / "credentials.json"
        path.write_text("[]")
        loader = CredentialLoader(path, session_cache=MemorySessionKeyCache())
        with pytest.raises(CredentialError) as exc:
            loader.load(interactive=True)
        assert exc.value.kind is CredentialErrorKind.MALFORMED_DOCUMENT

    def test_default_path_from_config(self, project_dir: Path):
        loader = CredentialLoader(session_cache=MemorySessionKeyCache())
        assert loader.path == project_dir / ".heimdell" / "credentials.json"


class TestInteractive:
    def test_prompt_until_valid(self, encrypted_file: Path, document):
        cache = MemorySessionKeyCache()
        prompt = FakePrompt("bad-1", "bad-2", "right-key")
        session = CredentialLoader(encrypted_file, session_cache=cache, prompt=prompt).load(
            interactive=True, command_name="whoami"
        )
        assert session.credentials == document
        assert len(prompt.calls) == 3
        assert prompt.calls[0][1] is None
        assert prompt.calls[1][1] == INVALID_KEY_MESSAGE
        assert "whoami" in prompt.calls[0][0]
        assert cache.get() == "right-key"

    def test_wrong_cached_key_then_prompt(self, encrypted_file: Path, document):
        cache = MemorySessionKeyCache("stale-key")
        prompt = FakePrompt("right-key")
        session = CredentialLoader(encrypted_file, session_cache=cache, prompt=prompt).load(interactive=True)
        assert session.credentials == document
        assert cache.get() == "right-key"
        assert len(prompt.calls) == 1

    def test_cached_key_skips_prompt(self, encrypted_file: Path):
        prompt = FakePrompt()
        CredentialLoader(
            encrypted_file, session_cache=MemorySessionKeyCache("right-key"), prompt=prompt
        ).load(interactive=True)
        assert prompt.calls == []

    def test_interrupt_propagates(self, encrypted_file: Path):
        def prompt(message, error):
            raise KeyboardInterrupt

        loader = CredentialLoader(encrypted_file, session_cache=MemorySessionKeyCache(), prompt=prompt)
        with pytest.raises(KeyboardInterrupt):
            loader.load(interactive=True)

    def test_missing_file_does_not_prompt(self, tmp_path: Path):
        prompt = FakePrompt()
        loader = CredentialLoader(tmp_path / "nope.json", session_cache=MemorySessionKeyCache(), prompt=prompt)
        with pytest.raises(CredentialError):
            loader.load(interactive=True)
        assert prompt.calls == []


class TestPromptForKey:
    def test_returns_entered_key(self, monkeypatch):
        monkeypatch.setattr("getpass.getpass", lambda prompt: "typed")
        assert prompt_for_key("Key:") == "typed"

    def test_eof_is_interrupt(self, monkeypatch):
        def eof(prompt):
            raise EOFError

        monkeypatch.setattr("getpass.getpass", eof)
        with pytest.raises(KeyboardInterrupt):
            prompt_for_key("Key:")

    def test_error_shown(self, monkeypatch, capsys):
        monkeypatch.setattr("getpass.getpass", lambda prompt: "typed")
        prompt_for_key("Key:", INVALID_KEY_MESSAGE)
        assert INVALID_KEY_MESSAGE in capsys.readouterr().err


class TestHelpers:
    def test_load_credentials_with_password(self, encrypted_file: Path, document):
        assert load_credentials(encrypted_file, password="right-key") == document
        assert get_current_credentials() == document

    def test_load_credentials_wrong_password(self, encrypted_file: Path):
        with pytest.raises(CredentialError) as exc:
            load_credentials(encrypted_file, password="nope")
        assert exc.value.kind is CredentialErrorKind.INVALID_KEY

    def test_load_credentials_uses_cache(self, encrypted_file: Path, document):
        cache = MemorySessionKeyCache("right-key")
        assert load_credentials(encrypted_file, session_cache=cache) == document

    def test_load_credentials_missing(self, tmp_path: Path):
        with pytest.raises(CredentialError) as exc:
            load_credentials(tmp_path / "nope.json", password="x")
        assert exc.value.kind is CredentialErrorKind.NOT_FOUND

    def test_autoload_plain(self, plain_file: Path, document):
        assert autoload_credentials(plain_file, session_cache=MemorySessionKeyCache()) == document

    def test_autoload_with_bad_timeout_setting(self, store_root: Path, document, monkeypatch):
        write(store_root / "credentials.json", document)
        monkeypatch.setenv("HEIMDELL_HTTP_TIMEOUT", "not-a-number")
        reset_config()
        assert autoload_credentials(session_cache=MemorySessionKeyCache()) == document

    def test_autoload_never_raises(self, tmp_path: Path, encrypted_file: Path):
        cache = MemorySessionKeyCache()
        assert autoload_credentials(tmp_path / "nope.json", session_cache=cache) is None
        assert autoload_credentials(encrypted_file, session_cache=cache) is None
        broken = tmp_path / "broken.json"
        broken.write_text("{")
        assert autoload_credentials(broken, session_cache=cache) is None
