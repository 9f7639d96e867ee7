#!/usr/bin/env python3
"""Vault container - the on-disk envelope and its text encoding.

The file is a JSON object with four base64 fields (standard alphabet, no
padding):

    {
      "salt": "...",
      "nonce": "...",
      "ciphertext": "...",
      "tag": "..."
    }

Field names and order are fixed. Readers ignore keys they do not know.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Union

from .errors import MalformedContainer

SALT_SIZE = 32
NONCE_SIZE = 8
TAG_SIZE = 16

FIELDS = ("salt", "nonce", "ciphertext", "tag")
FIXED_SIZES = {"salt": SALT_SIZE, "nonce": NONCE_SIZE, "tag": TAG_SIZE}


def b64encode(data: bytes) -> str:
    """Standard base64 without '=' padding."""
    return base64.b64encode(data).decode('ascii').rstrip('=')


def b64decode(value: str) -> bytes:
    """Decode standard base64, padded or not.

    Raises:
        ValueError: on characters outside the alphabet or an impossible length

    """
    stripped = value.rstrip('=')
    if len(stripped) % 4 == 1:
        raise ValueError(f"invalid base64 length {len(stripped)}")
    padded = stripped + '=' * (-len(stripped) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except binascii.Error as e:
        raise ValueError(str(e)) from e


@dataclass(frozen=True)
class VaultContainer:
    """Salt, nonce, ciphertext and tag produced together by one encryption."""

    salt: bytes
    nonce: bytes
    ciphertext: bytes
    tag: bytes

    def __post_init__(self):
        for name in FIELDS:
            if not isinstance(getattr(self, name), bytes):
                raise MalformedContainer(f"field '{name}' must be bytes")
        for name, size in FIXED_SIZES.items():
            actual = len(getattr(self, name))
            if actual != size:
                raise MalformedContainer(f"field '{name}' must be {size} bytes, got {actual}")

    def to_text(self) -> str:
        """Serialize as pretty-printed JSON with fields in fixed order."""
        obj = {name: b64encode(getattr(self, name)) for name in FIELDS}
        return json.dumps(obj, indent=2) + "\n"

    @classmethod
    def from_text(cls, text: Union[str, bytes]) -> "VaultContainer":
        """Parse the text produced by :meth:`to_text`.

        Raises:
            MalformedContainer: if the text is not a JSON object, a field is
                missing or not a string, a field is not valid base64, or a
                fixed-size field has the wrong length

        """
        if isinstance(text, bytes):
            try:
                text = text.decode('utf-8')
            except UnicodeDecodeError as e:
                raise MalformedContainer(f"not UTF-8 text: {e}") from e

        try:
            obj = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise MalformedContainer(f"invalid JSON: {e}") from e

        if not isinstance(obj, dict):
            raise MalformedContainer("expected a JSON object")

        fields = {}
        for name in FIELDS:
            if name not in obj:
                raise MalformedContainer(f"missing field '{name}'")
            value = obj[name]
            if not isinstance(value, str):
                raise MalformedContainer(f"field '{name}' must be a string")
            try:
                fields[name] = b64decode(value)
            except ValueError as e:
                raise MalformedContainer(f"field '{name}' is not valid base64: {e}") from e

        return cls(**fields)
