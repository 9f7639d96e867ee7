#!/usr/bin/env python3
"""Errors raised by vault operations.

Every error carries optional context (operation name and vault path) so the
CLI can print one readable line without knowing where the failure happened.
"""

from typing import Optional


class LifecryptError(Exception):
    """Base class for all vault errors."""

    default_message = "vault operation failed"

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        path: Optional[str] = None
    ):
        self.message = message or self.default_message
        self.operation = operation
        self.path = None if path is None else str(path)
        super().__init__(self.message)

    def add_context(self, operation: str, path) -> None:
        """Attach operation/path if nothing more specific was set already."""
        if self.operation is None:
            self.operation = operation
        if self.path is None:
            self.path = str(path)

    def __str__(self) -> str:
        prefix = " ".join(p for p in (self.operation, self.path) if p)
        if prefix:
            return f"{prefix}: {self.message}"
        return self.message


class MalformedContainer(LifecryptError):
    # bad on-disk format
    default_message = "malformed vault file"


class AuthenticationFailed(LifecryptError):
    # wrong password and tampering are indistinguishable
    default_message = "wrong password or corrupted file"


class PasswordMismatch(LifecryptError):
    default_message = "passwords do not match"


class StagingUnavailable(LifecryptError):
    default_message = "no memory-backed location available for the plaintext"


class EditorAborted(LifecryptError):
    # not a failure: the user quit the editor without accepting changes
    default_message = "editor exited non-zero"


class KeyDerivationError(LifecryptError):
    # invalid KDF configuration, a programming error
    default_message = "key derivation failed"


class VaultIOError(LifecryptError):
    default_message = "I/O error"
