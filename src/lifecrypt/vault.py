#!/usr/bin/env python3
"""Vault operations - view, edit and change-password.

Each operation is strictly sequential: load, decrypt, (edit), encrypt, write.
The new container is serialized completely before anything touches the
target path, and the write itself goes through a sibling temp file and an
atomic rename, so a failure at any step leaves the old vault as it was.

Password prompting and the editor are passed in as callables.
"""

import hmac
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from . import staging
from .container import VaultContainer
from .crypt import decrypt, encrypt
from .editor import run_editor
from .errors import EditorAborted, LifecryptError, PasswordMismatch, VaultIOError

Prompt = Callable[[str], str]
Editor = Callable[[Path], None]


@contextmanager
def operation(name: str, path) -> Iterator[None]:
    """Tag errors raised inside with the operation and file; wrap OSError."""
    try:
        yield
    except LifecryptError as e:
        e.add_context(name, path)
        raise
    except OSError as e:
        raise VaultIOError(e.strerror or str(e), operation=name, path=path) from e


def load_container(path: Path) -> VaultContainer:
    """Read and parse the vault file."""
    return VaultContainer.from_text(Path(path).read_bytes())


def write_container(path: Path, container: VaultContainer) -> None:
    """Replace the vault file with container, atomically.

    The file is written under a random name next to the target (mode 0600),
    synced, then renamed over it.
    """
    path = Path(path)
    data = container.to_text().encode('utf-8')

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def confirm_new_password(prompt: Prompt) -> str:
    """Ask for a new password twice; raise PasswordMismatch if they differ."""
    password = prompt("New password: ")
    confirm = prompt("Confirm password: ")

    if not hmac.compare_digest(password.encode('utf-8'), confirm.encode('utf-8')):
        raise PasswordMismatch()
    return password


def view_vault(path: Path, prompt: Prompt) -> bytes:
    """Decrypt and return the vault contents. Writes nothing."""
    with operation("view", path):
        container = load_container(path)
        password = prompt("Password: ")
        return decrypt(container, password)


def edit_vault(path: Path, prompt: Prompt, editor: Optional[Editor] = None) -> bool:
    """Edit the vault in an external editor, creating it if it does not exist.

    Returns:
        True if the vault was written, False if the editor exited non-zero
        (the file on disk is then untouched)

    Raises:
        PasswordMismatch: creating a vault and the two passwords differ
        AuthenticationFailed: wrong password or corrupted file
        MalformedContainer: the existing file is not a vault
        StagingUnavailable: no memory-backed place for the plaintext

    """
    path = Path(path)
    if editor is None:
        editor = run_editor

    with operation("edit", path):
        if path.exists():
            container = load_container(path)
            password = prompt("Password: ")
            plaintext = decrypt(container, password)
        else:
            password = confirm_new_password(prompt)
            plaintext = b""

        with staging.stage(plaintext) as staged:
            try:
                editor(staged.path)
            except EditorAborted:
                return False
            edited = staged.read()

        write_container(path, encrypt(edited, password))
        return True


def change_password(path: Path, prompt: Prompt) -> None:
    """Re-encrypt the vault contents under a new password. No editor involved."""
    path = Path(path)

    with operation("change-password", path):
        container = load_container(path)
        plaintext = decrypt(container, prompt("Current password: "))
        new_password = confirm_new_password(prompt)
        write_container(path, encrypt(plaintext, new_password))
