#!/usr/bin/env python3
"""lifecrypt - encrypt your life.
A single-file vault: edit plaintext in your editor, keep only ciphertext on disk.
Uses scrypt and ChaCha20-Poly1305 from libsodium via pynacl.
"""

import argparse
import getpass
import os
import signal
import sys
from pathlib import Path

from . import __version__
from .errors import LifecryptError
from .vault import change_password, edit_vault, view_vault

PASSWORD_ENV = "LIFECRYPT_PASSWORD"


def get_password(prompt="Password: "):
    """Get password from environment variable or prompt.

    Checks LIFECRYPT_PASSWORD first for automation/testing; the same value
    then answers every prompt, including confirmations.
    Falls back to interactive getpass prompt if not set.

    Security note: passwords in environment variables may be visible in
    process listings. Only use in isolated environments.
    """
    env_password = os.environ.get(PASSWORD_ENV)
    if env_password:
        return env_password
    return getpass.getpass(prompt)


def cmd_view(args):
    """Print the contents of a vault to stdout."""
    plaintext = view_vault(Path(args.file), get_password)
    sys.stdout.buffer.write(plaintext)
    sys.stdout.flush()


def cmd_edit(args):
    """Edit a vault, creating it if needed."""
    vault_path = Path(args.file)
    creating = not vault_path.exists()

    if edit_vault(vault_path, get_password):
        if creating:
            print(f"Vault created at {vault_path}", file=sys.stderr)
        else:
            print("Saved.", file=sys.stderr)
    else:
        print("Editor exited non-zero; vault unchanged.", file=sys.stderr)


def cmd_change_password(args):
    """Change the password of a vault."""
    change_password(Path(args.file), get_password)
    print("Password changed.", file=sys.stderr)


def _handle_termination(signum, frame):
    # Unwind through finally/__exit__ so staged plaintext gets removed
    raise SystemExit(128 + signum)


def _install_signal_handlers():
    previous = {}
    for name in ("SIGTERM", "SIGHUP"):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, _handle_termination)
    return previous


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='lifecrypt',
        description="encrypt your life"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    edit_parser = subparsers.add_parser('edit', help='Edit the contents of a vault (creates it if missing)')
    edit_parser.add_argument('file', metavar='FILE', help='Path to vault file')

    view_parser = subparsers.add_parser('view', help='Print the contents of a vault to stdout')
    view_parser.add_argument('file', metavar='FILE', help='Path to vault file')

    passwd_parser = subparsers.add_parser('change-password', help='Change the password of a vault')
    passwd_parser.add_argument('file', metavar='FILE', help='Path to vault file')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'edit': cmd_edit,
        'view': cmd_view,
        'change-password': cmd_change_password,
    }

    previous_handlers = _install_signal_handlers()
    try:
        commands[args.command](args)
    except LifecryptError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print(file=sys.stderr)
        sys.exit(130)
    finally:
        for signum, handler in previous_handlers.items():
            if handler is not None:
                signal.signal(signum, handler)


if __name__ == '__main__':
    main()
