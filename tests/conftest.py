"""Pytest fixtures and utilities for lifecrypt tests."""

import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lifecrypt import crypt, staging
from lifecrypt.crypt import ScryptParams, encrypt
from lifecrypt.staging import NativeVolatileFS

# Cheap work factors so the suite does not spend seconds in scrypt
FAST_SCRYPT = ScryptParams(n=2 ** 4, r=1, p=1)


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Use cheap scrypt parameters unless a test passes its own."""
    monkeypatch.setattr(crypt, "SCRYPT_PARAMS", FAST_SCRYPT)
    yield FAST_SCRYPT


@pytest.fixture
def temp_vault_dir():
    """Create a temporary directory for vault files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_shm(tmp_path, monkeypatch):
    """Stand-in for /dev/shm: staging goes to a private temp directory."""
    shm = tmp_path / "shm"
    shm.mkdir()
    monkeypatch.setattr(staging, "open_volatile_fs", lambda platform=None: NativeVolatileFS(shm))
    yield shm


@pytest.fixture
def test_vault(temp_vault_dir):
    """Create a vault file with known contents."""
    vault_path = temp_vault_dir / "notes.vault"
    password = "test_password_123"
    plaintext = b"bank pin: 1234\nwifi: hunter2\n"

    vault_path.write_text(encrypt(plaintext, password).to_text())

    return {
        "path": vault_path,
        "password": password,
        "plaintext": plaintext,
    }


def prompter(*answers):
    """A password prompt that replays answers in order and records prompts."""
    replies = list(answers)
    asked = []

    def prompt(text):
        asked.append(text)
        return replies.pop(0)

    prompt.asked = asked
    return prompt


def editor_writing(content, returncode=0):
    """An editor stand-in that saves content, then exits with returncode."""
    seen = []

    def editor(path):
        seen.append(Path(path))
        assert Path(path).exists()
        if content is not None:
            Path(path).write_bytes(content)
        if returncode != 0:
            from lifecrypt.errors import EditorAborted
            raise EditorAborted(f"editor exited with status {returncode}")

    editor.seen = seen
    return editor
