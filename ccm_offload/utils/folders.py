from __future__ import annotations

import os
import shutil
import stat
import sys
from pathlib import Path

from ccm_offload.domain.models import FolderState


def probe_folder(path: Path | str) -> FolderState:
    """Classify a path as a plain directory, a junction, or missing.

    Junctions carry the reparse-point attribute on Windows; symbolic links are
    treated the same way so the result is stable on every platform. A regular
    file is not a folder and probes as missing.
    """
    try:
        info = os.lstat(path)
    except FileNotFoundError:
        return FolderState.MISSING

    attributes = getattr(info, "st_file_attributes", 0)
    if stat.S_ISLNK(info.st_mode) or attributes & stat.FILE_ATTRIBUTE_REPARSE_POINT:
        return FolderState.JUNCTION
    if stat.S_ISDIR(info.st_mode):
        return FolderState.DIRECTORY
    return FolderState.MISSING


def _retry_writable(func, path, exc) -> None:
    # onerror passes an exc_info tuple, onexc the exception itself
    error = exc[1] if isinstance(exc, tuple) else exc
    if not isinstance(error, PermissionError):
        raise error
    os.chmod(path, stat.S_IWRITE)
    func(path)


def remove_path(path: Path | str) -> None:
    """Delete whatever sits at ``path``.

    Junctions and links are dropped without touching their target, directory
    trees are removed with read-only files made writable first, and anything
    else is unlinked. A path that does not exist is left alone.
    """
    state = probe_folder(path)
    if state is FolderState.JUNCTION:
        if os.path.islink(path):
            os.unlink(path)
        else:
            os.rmdir(path)
    elif state is FolderState.DIRECTORY:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_retry_writable)
        else:
            shutil.rmtree(path, onerror=_retry_writable)
    elif os.path.lexists(path):
        os.chmod(path, stat.S_IWRITE)
        os.unlink(path)


def normalize_location(path: Path | str) -> str:
    return os.path.normcase(os.path.normpath(str(path))).rstrip("\\/").lower()
