#!/usr/bin/env python3
"""Plaintext staging - memory-backed files for handing plaintext to an editor.

Linux ships a tmpfs at /dev/shm, so the staged file goes there. macOS has no
RAM filesystem by default, so one is created for the duration of the edit:

    hdiutil attach -nomount ram://<sectors>      # prints /dev/diskN
    diskutil eraseVolume HFS+ <name> /dev/diskN  # mounts at /Volumes/<name>
    hdiutil detach /dev/diskN                    # when done

Anything else is refused with StagingUnavailable rather than falling back to
a durable temp directory.
"""

import os
import secrets
import subprocess
import sys
import tempfile
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .errors import StagingUnavailable

LINUX_VOLATILE_DIRS = ("/dev/shm",)
MEMORY_FS_TYPES = frozenset({"tmpfs", "ramfs"})
MOUNTS_FILE = "/proc/self/mounts"
RAM_VOLUME_MB = 10
SECTORS_PER_MB = 2048  # 512-byte sectors
STAGED_PREFIX = "lifecrypt-"


@dataclass(frozen=True)
class NativeVolatileFS:
    """A memory-backed directory the OS already provides; nothing to tear down."""

    directory: Path


@dataclass(frozen=True)
class ProvisionedRamVolume:
    """A RAM disk created for one operation and detached afterwards."""

    device: str
    volume: Path


VolatileFS = Union[NativeVolatileFS, ProvisionedRamVolume]


# ============================================================================
# Linux: find an existing tmpfs
# ============================================================================

def _unescape_mount_path(field: str) -> str:
    # /proc/mounts encodes space, tab, newline and backslash as \ooo
    out = []
    i = 0
    while i < len(field):
        if field[i] == "\\" and i + 3 < len(field) and field[i + 1:i + 4].isdigit():
            out.append(chr(int(field[i + 1:i + 4], 8)))
            i += 4
        else:
            out.append(field[i])
            i += 1
    return "".join(out)


def read_mount_types(mounts_file: str = MOUNTS_FILE) -> Dict[str, str]:
    """Map mount point -> filesystem type from a /proc/mounts style file."""
    mounts = {}
    try:
        with open(mounts_file) as f:
            for line in f:
                parts = line.split()
                if len(parts) >= 3:
                    mounts[_unescape_mount_path(parts[1])] = parts[2]
    except OSError:
        return {}
    return mounts


def filesystem_type(path: Path, mounts: Dict[str, str]) -> Optional[str]:
    """Filesystem type of the mount holding path (longest mount point prefix)."""
    resolved = Path(path).resolve()
    best = None
    for mount_point in mounts:
        mp = Path(mount_point)
        if resolved == mp or mp in resolved.parents:
            if best is None or len(mp.parts) > len(Path(best).parts):
                best = mount_point
    return mounts.get(best) if best is not None else None


def linux_candidates() -> list:
    """Directories to try, in order of preference."""
    candidates = [Path(d) for d in LINUX_VOLATILE_DIRS]
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        candidates.append(Path(runtime_dir))
    return candidates


def find_native_volatile_dir(
    candidates: Optional[Iterable[Path]] = None,
    mounts_file: str = MOUNTS_FILE
) -> Optional[Path]:
    """Return the first writable candidate directory backed by tmpfs/ramfs."""
    if candidates is None:
        candidates = linux_candidates()
    mounts = read_mount_types(mounts_file)

    for candidate in candidates:
        candidate = Path(candidate)
        if not candidate.is_dir() or not os.access(candidate, os.W_OK | os.X_OK):
            continue
        if filesystem_type(candidate, mounts) in MEMORY_FS_TYPES:
            return candidate
    return None


# ============================================================================
# macOS: provision a RAM disk
# ============================================================================

def provision_ram_volume(size_mb: int = RAM_VOLUME_MB) -> ProvisionedRamVolume:
    """Create and mount a RAM disk; the caller must detach it with teardown()."""
    try:
        attach = subprocess.run(
            ["hdiutil", "attach", "-nomount", f"ram://{size_mb * SECTORS_PER_MB}"],
            capture_output=True,
            text=True,
            check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise StagingUnavailable(f"could not create a RAM disk: {e}") from e

    device = attach.stdout.strip()
    if not device:
        raise StagingUnavailable("hdiutil did not report a device for the RAM disk")

    name = f"{STAGED_PREFIX}{secrets.token_hex(4)}"
    volume = ProvisionedRamVolume(device=device, volume=Path("/Volumes") / name)
    try:
        subprocess.run(
            ["diskutil", "eraseVolume", "HFS+", name, device],
            capture_output=True,
            check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        teardown(volume)
        raise StagingUnavailable(f"could not format RAM disk {device}: {e}") from e

    return volume


# ============================================================================
# Variant dispatch
# ============================================================================

def open_volatile_fs(platform: Optional[str] = None) -> VolatileFS:
    """Pick the volatile filesystem for this platform."""
    platform = platform or sys.platform

    if platform.startswith("linux"):
        directory = find_native_volatile_dir()
        if directory is None:
            looked = ", ".join(str(c) for c in linux_candidates())
            raise StagingUnavailable(f"no writable tmpfs found (looked in {looked})")
        return NativeVolatileFS(directory)

    if platform == "darwin":
        return provision_ram_volume()

    raise StagingUnavailable(f"no memory-backed storage support on platform '{platform}'")


def volatile_directory(fs: VolatileFS) -> Path:
    if isinstance(fs, NativeVolatileFS):
        return fs.directory
    return fs.volume


def teardown(fs: VolatileFS) -> None:
    """Release a volatile filesystem. A no-op for native ones."""
    if not isinstance(fs, ProvisionedRamVolume):
        return

    for cmd in (["hdiutil", "detach", fs.device], ["hdiutil", "detach", "-force", fs.device]):
        try:
            result = subprocess.run(cmd, capture_output=True)
        except OSError:
            break
        if result.returncode == 0:
            return

    print(f"Warning: could not detach RAM disk {fs.device}; run 'hdiutil detach {fs.device}'",
          file=sys.stderr)


# ============================================================================
# Staged file
# ============================================================================

def _overwrite(path: Path) -> None:
    try:
        size = path.stat().st_size
        with open(path, "r+b") as f:
            f.write(b"\0" * size)
            f.flush()
    except OSError:
        # best effort; the unlink below is what matters
        pass


def _cleanup(path: Path, fs: VolatileFS) -> None:
    # Runs once, from release(), garbage collection or interpreter exit.
    try:
        _overwrite(path)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
    finally:
        teardown(fs)


class StagedPlaintext:
    """A plaintext file in volatile storage, removed on release.

    Use as a context manager. If the handle is dropped or the interpreter
    exits without an explicit release, the file (and any RAM disk) is still
    removed.
    """

    def __init__(self, path: Path, fs: VolatileFS):
        self.path = Path(path)
        self.fs = fs
        self._finalizer = weakref.finalize(self, _cleanup, self.path, fs)

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def read(self) -> bytes:
        return self.path.read_bytes()

    def release(self) -> None:
        """Remove the file and tear down the volume. Safe to call twice."""
        self._finalizer()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def __repr__(self):
        state = "released" if self.released else "staged"
        return f"<StagedPlaintext {self.path} {state}>"


def stage(initial: bytes, fs: Optional[VolatileFS] = None) -> StagedPlaintext:
    """Write initial bytes to a new randomly named file in volatile storage.

    Raises:
        StagingUnavailable: if no memory-backed location can be provided

    """
    if fs is None:
        fs = open_volatile_fs()

    try:
        fd, name = tempfile.mkstemp(prefix=STAGED_PREFIX, dir=volatile_directory(fs))
    except OSError as e:
        teardown(fs)
        raise StagingUnavailable(f"could not create a file in {volatile_directory(fs)}: {e}") from e

    handle = StagedPlaintext(Path(name), fs)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(initial)
    except BaseException:
        handle.release()
        raise
    return handle


def release(handle: StagedPlaintext) -> None:
    handle.release()
