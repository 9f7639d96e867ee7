#!/usr/bin/env python3
"""External editor invocation.

The editor gets the staged file path as its only positional argument and
blocks until it exits. Exit status 0 accepts whatever is saved in the file;
anything else means the user backed out.
"""

import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .errors import EditorAborted, VaultIOError

# "-n" disables swap files, which would otherwise land on disk
DEFAULT_EDITOR = ("vim", "-n")


def editor_command(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Editor command from $VISUAL, then $EDITOR, else vim without swap files."""
    env = os.environ if environ is None else environ
    for var in ("VISUAL", "EDITOR"):
        value = env.get(var, "").strip()
        if value:
            return shlex.split(value)
    return list(DEFAULT_EDITOR)


def run_editor(path: Path, command: Optional[Sequence[str]] = None) -> None:
    """Run the editor on path and wait for it.

    Raises:
        EditorAborted: if the editor exits non-zero
        VaultIOError: if the editor cannot be started

    """
    cmd = list(command) if command else editor_command()
    cmd.append(str(path))

    try:
        result = subprocess.run(cmd)
    except OSError as e:
        raise VaultIOError(f"could not start editor '{cmd[0]}': {e.strerror or e}") from e

    if result.returncode != 0:
        raise EditorAborted(f"editor exited with status {result.returncode}")
