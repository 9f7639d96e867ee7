#!/usr/bin/env python3
"""Password-based encryption for vault contents.

scrypt turns the password and a per-encryption salt into a 32-byte key;
ChaCha20-Poly1305 (the original construction with a 64-bit nonce, no
associated data) seals the plaintext. Both come from libsodium via pynacl.
"""

import ctypes
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

import nacl.bindings
import nacl.exceptions
import nacl.utils

from .container import NONCE_SIZE, SALT_SIZE, TAG_SIZE, VaultContainer
from .errors import AuthenticationFailed, KeyDerivationError

KEY_SIZE = 32


@dataclass(frozen=True)
class ScryptParams:
    """scrypt work factors: cost ``n`` (a power of two), block size ``r``, parallelism ``p``."""

    n: int
    r: int
    p: int

    def __post_init__(self):
        if self.n < 2 or self.n & (self.n - 1):
            raise KeyDerivationError(f"scrypt n must be a power of two > 1, got {self.n}")
        if self.r < 1 or self.p < 1:
            raise KeyDerivationError(f"scrypt r and p must be positive, got r={self.r} p={self.p}")

    @property
    def memory(self) -> int:
        """Bytes of memory one derivation needs."""
        return 128 * self.r * self.n * self.p


# Fixed for the lifetime of the file format: every vault ever written used
# these, so every future decrypt must as well.
SCRYPT_PARAMS = ScryptParams(n=2 ** 14, r=8, p=1)

Password = Union[str, bytes]


def _password_bytes(password: Password) -> bytes:
    if isinstance(password, str):
        return password.encode('utf-8')
    return bytes(password)


def derive_key(password: Password, salt: bytes, params: Optional[ScryptParams] = None) -> bytes:
    """Derive a 32-byte key from password and salt using scrypt."""
    if params is None:
        params = SCRYPT_PARAMS
    if len(salt) != SALT_SIZE:
        raise KeyDerivationError(f"salt must be {SALT_SIZE} bytes, got {len(salt)}")

    try:
        return nacl.bindings.crypto_pwhash_scryptsalsa208sha256_ll(
            _password_bytes(password),
            bytes(salt),
            params.n,
            params.r,
            params.p,
            dklen=KEY_SIZE,
            maxmem=4 * params.memory
        )
    except nacl.exceptions.CryptoError as e:
        raise KeyDerivationError(f"scrypt rejected parameters {params}: {e}") from e


_BYTES_HEADER = sys.getsizeof(b"") - 1


def wipe(buf) -> None:
    """Zero a key buffer in place.

    Best effort: bytearrays are cleared directly, bytes objects only on
    CPython where the buffer layout is known. Copies made elsewhere (inside
    libsodium calls, for instance) are not reachable from here.
    """
    if isinstance(buf, bytearray):
        for i in range(len(buf)):
            buf[i] = 0
    elif isinstance(buf, bytes) and len(buf) > 1 and sys.implementation.name == "cpython":
        ctypes.memset(id(buf) + _BYTES_HEADER, 0, len(buf))


@contextmanager
def derived_key(password: Password, salt: bytes, params: Optional[ScryptParams] = None) -> Iterator[bytes]:
    """Yield the derived key and wipe it on exit, whatever happens inside."""
    key = derive_key(password, salt, params)
    try:
        yield key
    finally:
        wipe(key)


def _check_sizes(key: bytes, nonce: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(key)}")
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")


def encrypt_bytes(plaintext: bytes, key: bytes, nonce: bytes) -> Tuple[bytes, bytes]:
    """Seal plaintext; returns (ciphertext, tag). Ciphertext has the plaintext's length."""
    _check_sizes(key, nonce)
    sealed = nacl.bindings.crypto_aead_chacha20poly1305_encrypt(
        bytes(plaintext), None, bytes(nonce), bytes(key)
    )
    # libsodium appends the tag to the ciphertext
    return sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]


def decrypt_bytes(ciphertext: bytes, key: bytes, nonce: bytes, tag: bytes) -> bytes:
    """Verify the tag and open ciphertext.

    libsodium checks the tag in constant time before decrypting anything, so
    on failure no plaintext is produced at all.
    """
    _check_sizes(key, nonce)
    if len(tag) != TAG_SIZE:
        raise ValueError(f"tag must be {TAG_SIZE} bytes, got {len(tag)}")

    try:
        return nacl.bindings.crypto_aead_chacha20poly1305_decrypt(
            bytes(ciphertext) + bytes(tag), None, bytes(nonce), bytes(key)
        )
    except nacl.exceptions.CryptoError:
        raise AuthenticationFailed() from None


def encrypt(plaintext: bytes, password: Password, params: Optional[ScryptParams] = None) -> VaultContainer:
    """Encrypt plaintext under password with a fresh random salt and nonce."""
    salt = nacl.utils.random(SALT_SIZE)
    nonce = nacl.utils.random(NONCE_SIZE)

    with derived_key(password, salt, params) as key:
        ciphertext, tag = encrypt_bytes(plaintext, key, nonce)

    return VaultContainer(salt=salt, nonce=nonce, ciphertext=ciphertext, tag=tag)


def decrypt(container: VaultContainer, password: Password, params: Optional[ScryptParams] = None) -> bytes:
    """Decrypt a container; raises AuthenticationFailed on wrong password or tampering."""
    with derived_key(password, container.salt, params) as key:
        return decrypt_bytes(container.ciphertext, key, container.nonce, container.tag)
