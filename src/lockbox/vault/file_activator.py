# Vault - File Activator
#
# Materializes a secret as a plaintext file (owner read/write only) and
# removes it again by overwriting with zeros before unlinking.
#
# Deletion is best effort. A single zero pass gives no erasure guarantee on
# copy-on-write filesystems or flash storage.

import logging
import os
from pathlib import Path
from typing import Iterable, Tuple

from .errors import FileActivationError

logger = logging.getLogger(__name__)

OWNER_READ_WRITE = 0o600

_CHUNK_SIZE = 64 * 1024


def expand_path(path: str) -> str:
    """Expand a leading ``~/`` to $HOME. Anything else is returned unchanged."""
    if path.startswith("~/"):
        home = os.environ.get("HOME")
        if home:
            return f"{home}/{path[2:]}"
    return path


def _restrict_permissions(path: str):
    # Permission bits only exist on POSIX; elsewhere this is a no-op.
    if os.name != "posix":
        return
    os.chmod(path, OWNER_READ_WRITE)


def activate_file(path: str, content: bytes) -> str:
    """
    Write ``content`` to ``path`` with 0600 permissions.

    Expands ``~/``, creates parent directories and replaces any existing
    file at that path.

    Returns:
        The expanded path that was written

    Raises:
        FileActivationError: On any filesystem failure
    """
    expanded = expand_path(path)
    try:
        Path(expanded).parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(expanded, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OWNER_READ_WRITE)
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        # O_CREAT mode does not apply to a file that already existed
        _restrict_permissions(expanded)
    except OSError as e:
        raise FileActivationError(f"Failed to write {expanded}: {e}") from e
    return expanded


def secure_delete(path: str) -> bool:
    """
    Overwrite a file with zeros, then remove it.

    Never raises: missing files, permission and I/O errors are logged at
    debug level and ignored.

    Returns:
        True if a file was removed by this call
    """
    expanded = expand_path(path)

    try:
        size = os.path.getsize(expanded)
        with open(expanded, "r+b") as f:
            remaining = size
            while remaining > 0:
                chunk = min(remaining, _CHUNK_SIZE)
                f.write(b"\x00" * chunk)
                remaining -= chunk
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.debug("secure_delete: overwrite skipped for %s: %s", expanded, e)

    try:
        os.remove(expanded)
    except OSError as e:
        logger.debug("secure_delete: remove failed for %s: %s", expanded, e)
        return False
    return True


def deactivate_all(pairs: Iterable[Tuple[str, str]]) -> int:
    """
    secure_delete() every ``(secret_id, file_path)`` pair.

    Returns:
        Number of files removed
    """
    removed = 0
    for _secret_id, file_path in pairs:
        if secure_delete(file_path):
            removed += 1
    return removed
