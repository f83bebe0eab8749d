"""
Filesystem helpers for writing pipeline outputs.

Every output file is written to a temporary sibling and renamed into place,
so an interrupted run never leaves a half-written file under its final name.
"""

import os
import shutil
import tempfile
import logging
from pathlib import Path
from typing import List, Union

from ..errors import WriteError

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> Path:
    """
    Write ``data`` to ``path`` via a temporary file and ``os.replace``.

    Raises:
        WriteError: If the directory cannot be created or the write fails
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(f"cannot create directory: {e}", path=path.parent) from e

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_name, path)
    except OSError as e:
        _discard(tmp_name)
        raise WriteError(f"cannot write file: {e}", path=path) from e

    logger.debug(f"Wrote {path} ({len(data)} bytes)")
    return path


def remove_tree(path: Union[str, Path]) -> List[Path]:
    """
    Remove a directory tree (or single file) and return the files removed.

    A missing path is not an error.

    Raises:
        WriteError: If removal fails
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return []

    removed = list_files(path) if path.is_dir() and not path.is_symlink() else [path]
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise WriteError(f"cannot remove stale outputs: {e}", path=path) from e

    logger.info(f"Removed {len(removed)} files under {path}")
    return removed


def list_files(path: Union[str, Path]) -> List[Path]:
    """All regular files under ``path``, sorted by their POSIX relative path."""
    path = Path(path)
    if not path.is_dir():
        return []
    files = [p for p in path.rglob("*") if p.is_file()]
    return sorted(files, key=lambda p: p.relative_to(path).as_posix())


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except FileNotFoundError:
        pass
